# classifier.py
from __future__ import annotations

import sys
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

from .errors import ChangesetError, ConfigError
from .globs import Glob, compile_glob
from .model import Rule
from .predicate import RESERVED_NAMES, is_flag_name


# ---------------------------------------------------------------------
# Changed paths
# ---------------------------------------------------------------------

def normalize_path(path: str) -> str:
    """Normalize a changed path to the repository-relative, '/'-separated form."""
    if not isinstance(path, str):
        raise ChangesetError(f"Changed path must be a string, got {path!r}")
    p = path.strip().replace("\\", "/")
    while p.startswith("./"):
        p = p[2:]
    if not p:
        raise ChangesetError("Empty path in changeset")
    if p.startswith("/"):
        raise ChangesetError(f"Changed path must be relative to the repository root: {path!r}")
    return p


def normalize_paths(paths: Iterable[str]) -> frozenset[str]:
    return frozenset(normalize_path(p) for p in paths)


def read_changeset(source: str | Path) -> frozenset[str]:
    """
    Read a newline-delimited list of changed paths. "-" reads stdin.

    There is no best-effort mode: an unreadable list fails the whole run.
    """
    try:
        if str(source) == "-":
            text = sys.stdin.read()
        else:
            text = Path(source).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ChangesetError(f"Could not read changed paths from {source}: {e}") from e

    return normalize_paths(line for line in text.splitlines() if line.strip())


# ---------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class CompiledRule:
    name: str
    includes: Tuple[Glob, ...]
    excludes: Tuple[Glob, ...]

    @classmethod
    def compile(cls, rule: Rule) -> CompiledRule:
        if not rule.name:
            raise ConfigError("Classification rule must have a name")
        if not is_flag_name(rule.name):
            raise ConfigError(
                f"Rule name {rule.name!r} cannot be used in predicates: use letters, digits, "
                f"'_' or '-', and none of {sorted(RESERVED_NAMES)}"
            )
        globs = [compile_glob(p, allow_negation=rule.negatable) for p in rule.patterns]
        includes = tuple(g for g in globs if not g.negated)
        excludes = tuple(g for g in globs if g.negated)
        if not includes:
            raise ConfigError(f"Rule '{rule.name}' needs at least one inclusion pattern")
        return cls(name=rule.name, includes=includes, excludes=excludes)

    def matches(self, path: str) -> bool:
        # exclusions win over inclusions
        if any(g.match(path) for g in self.excludes):
            return False
        return any(g.match(path) for g in self.includes)


class FlagSet(Mapping):
    """
    Rule name -> "did this changeset touch the rule", one entry per rule.

    Also remembers which paths matched each rule (empty when rebuilt from
    stored booleans).
    """

    def __init__(self, flags: Mapping[str, bool], files: Mapping[str, Sequence[str]] | None = None):
        self._flags: Dict[str, bool] = {name: bool(v) for name, v in flags.items()}
        files = files or {}
        self._files: Dict[str, Tuple[str, ...]] = {
            name: tuple(sorted(files.get(name, ()))) for name in self._flags
        }

    @classmethod
    def from_matches(cls, files: Mapping[str, Sequence[str]]) -> FlagSet:
        return cls({name: bool(paths) for name, paths in files.items()}, files)

    def __getitem__(self, name: str) -> bool:
        return self._flags[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._flags)

    def __len__(self) -> int:
        return len(self._flags)

    def __repr__(self) -> str:
        return f"FlagSet({self._flags!r})"

    def files(self, name: str) -> Tuple[str, ...]:
        return self._files[name]

    def count(self, name: str) -> int:
        return len(self._files[name])

    def active(self) -> List[str]:
        return [name for name, hit in self._flags.items() if hit]

    def to_dict(self) -> Dict[str, bool]:
        return dict(self._flags)


class Classifier:
    """Compiles rules once (fail fast) and classifies changesets against them."""

    def __init__(self, rules: Iterable[Rule]):
        compiled: List[CompiledRule] = []
        seen: set[str] = set()
        for rule in rules:
            if rule.name in seen:
                raise ConfigError(f"Duplicate classification rule: {rule.name}")
            seen.add(rule.name)
            compiled.append(CompiledRule.compile(rule))
        self._rules = tuple(compiled)

    @property
    def names(self) -> List[str]:
        return [r.name for r in self._rules]

    def classify(self, changed_paths: Iterable[str]) -> FlagSet:
        paths = sorted(normalize_paths(changed_paths))
        return FlagSet.from_matches({r.name: [p for p in paths if r.matches(p)] for r in self._rules})


def classify(changed_paths: Iterable[str], rules: Iterable[Rule]) -> FlagSet:
    return Classifier(rules).classify(changed_paths)
