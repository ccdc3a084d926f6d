# globs.py
"""
Path glob compilation.

Patterns are matched against the whole path, segment by segment:

    *        any run of characters inside one segment (dotfiles included)
    ?        one character inside one segment
    [abc]    character class, [!abc] / [^abc] negated
    {a,b}    alternation
    **       as a whole segment: zero or more segments

So "*" only matches files at the repository root, "crates/**" matches
everything below crates/, and "**/Cargo.toml" matches Cargo.toml anywhere.

Malformed patterns raise ConfigError when compiled, never while matching.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List

from .errors import ConfigError

ROOT_FILES = "*"


@dataclass(frozen=True)
class Glob:
    pattern: str
    negated: bool
    regex: re.Pattern

    def match(self, path: str) -> bool:
        return self.regex.match(path) is not None


def compile_glob(pattern: str, *, allow_negation: bool = True) -> Glob:
    if not isinstance(pattern, str):
        raise ConfigError(f"Glob pattern must be a string, got {pattern!r}")

    raw = pattern.strip()
    negated = raw.startswith("!")
    if negated:
        if not allow_negation:
            raise ConfigError(f"Exclusion pattern {pattern!r} used in a rule that is not negatable")
        raw = raw[1:]

    while raw.startswith("./"):
        raw = raw[2:]

    if not raw:
        raise ConfigError(f"Empty glob pattern: {pattern!r}")
    if raw.startswith("/"):
        raise ConfigError(f"Glob pattern must be relative to the repository root: {pattern!r}")

    segments = raw.split("/")
    if any(seg == "" for seg in segments):
        raise ConfigError(f"Glob pattern has an empty path segment: {pattern!r}")

    parts: List[str] = []
    last = len(segments) - 1
    for i, seg in enumerate(segments):
        if seg == "**":
            # trailing ** needs at least one more segment; inner ** may match none
            parts.append(".+" if i == last else "(?:[^/]+/)*")
            continue
        if "**" in seg:
            raise ConfigError(f"'**' must be a whole path segment in {pattern!r}")
        parts.append(_translate_segment(seg, pattern))
        if i != last:
            parts.append("/")

    source = r"\A" + "".join(parts) + r"\Z"
    try:
        regex = re.compile(source, re.DOTALL)
    except re.error as e:
        raise ConfigError(f"Invalid glob pattern {pattern!r}: {e}") from e

    return Glob(pattern=pattern, negated=negated, regex=regex)


def _translate_segment(seg: str, pattern: str) -> str:
    out: List[str] = []
    i = 0
    n = len(seg)
    while i < n:
        c = seg[i]
        if c == "*":
            out.append("[^/]*")
            i += 1
        elif c == "?":
            out.append("[^/]")
            i += 1
        elif c == "[":
            end, cls = _char_class(seg, i, pattern)
            out.append(cls)
            i = end
        elif c == "{":
            end = _matching_brace(seg, i, pattern)
            options = _split_options(seg[i + 1:end])
            out.append("(?:" + "|".join(_translate_segment(o, pattern) if o else "" for o in options) + ")")
            i = end + 1
        elif c == "}":
            raise ConfigError(f"Unbalanced '}}' in glob pattern {pattern!r}")
        elif c == "\\":
            if i + 1 >= n:
                raise ConfigError(f"Dangling escape in glob pattern {pattern!r}")
            out.append(re.escape(seg[i + 1]))
            i += 2
        else:
            out.append(re.escape(c))
            i += 1
    return "".join(out)


def _char_class(seg: str, start: int, pattern: str) -> tuple[int, str]:
    j = start + 1
    negate = j < len(seg) and seg[j] in "!^"
    if negate:
        j += 1
    body_start = j
    # a leading ']' is a literal member of the class
    if j < len(seg) and seg[j] == "]":
        j += 1
    close = seg.find("]", j)
    if close == -1:
        raise ConfigError(f"Unbalanced '[' in glob pattern {pattern!r}")
    body = seg[body_start:close].replace("\\", "\\\\")
    if not body:
        raise ConfigError(f"Empty character class in glob pattern {pattern!r}")
    if body.startswith("]"):
        body = "\\" + body
    cls = f"[^/{body}]" if negate else f"[{body}]"
    return close + 1, cls


def _matching_brace(seg: str, start: int, pattern: str) -> int:
    depth = 0
    for k in range(start, len(seg)):
        if seg[k] == "{":
            depth += 1
        elif seg[k] == "}":
            depth -= 1
            if depth == 0:
                return k
    raise ConfigError(f"Unbalanced '{{' in glob pattern {pattern!r}")


def _split_options(body: str) -> List[str]:
    options: List[str] = []
    depth = 0
    current: List[str] = []
    for c in body:
        if c == "," and depth == 0:
            options.append("".join(current))
            current = []
            continue
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
        current.append(c)
    options.append("".join(current))
    return options
