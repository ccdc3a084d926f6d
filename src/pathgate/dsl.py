# src/pathgate/dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from .errors import ConfigError
from .globs import ROOT_FILES
from .model import Job, Pipeline, Rule, Step
from .predicate import Expr, as_expr

Predicate = Union[Expr, str, bool, None]


# ---------------------------------------------------------------------
# Step helper
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, cwd: str | None = None) -> Step:
    """Describe a shell step. The execution layer decides how to run it."""
    return Step(name=name, run=cmd, cwd=cwd)


# ---------------------------------------------------------------------
# Classification rules
# ---------------------------------------------------------------------

def rule(name: str, *patterns: str, negatable: bool = False) -> Rule:
    """
    Declare a classification rule.

        rule("main", ROOT_FILES, "crates/**", "contracts/**")
        rule("src", "src/**", "!src/**/*.md", negatable=True)
    """
    if not patterns:
        raise ConfigError(f"rule({name!r}) must have at least one pattern")
    return Rule(name=name, patterns=tuple(patterns), negatable=negatable)


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", sh(...), sh(...))
    needs: Optional[List[str]] = None,
    when: Predicate = None,
    required: bool = True,
    env: Optional[Dict[str, Any]] = None,
    cwd: str | None = None,  # default cwd applied to steps missing cwd
) -> Job:
    steps_final = list(steps)
    if cwd is not None:
        steps_final = [s if s.cwd is not None else replace(s, cwd=cwd) for s in steps_final]

    return Job(
        name=name,
        needs=list(needs or []),
        when=as_expr(when),
        required=required,
        steps=steps_final,
        # force values to str so triggers serialize the same everywhere
        env={k: str(v) for k, v in (env or {}).items()},
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, name: str):
        self.name = name
        self._needs: list[str] = []
        self._steps: list[Step] = []
        self._env: dict[str, str] = {}
        self._when: Predicate = None
        self._required: bool = True

    def depends_on(self, *job_names: str):
        self._needs.extend(job_names)
        return self

    def define_step(self, name: str, run: str, cwd: str | None = None):
        self._steps.append(Step(name=name, run=run, cwd=cwd))
        return self

    def with_env(self, **env):
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def run_if(self, predicate: Predicate):
        self._when = predicate
        return self

    def optional(self, optional: bool = True):
        self._required = not optional
        return self

    def build(self) -> Job:
        return job(
            self.name,
            *self._steps,
            needs=self._needs,
            when=self._when,
            required=self._required,
            env=self._env,
        )


def build(name: str) -> JobBuilder:
    """Convenience: build('test').depends_on('lint').run_if('main').build()"""
    return JobBuilder(name)


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

class Matrix:
    """
    Minimal matrix expander.

    Example:
        matrix("os", ["linux", "macos"]).jobs(
            lambda v: job(f"test-{v}", sh("test", "cargo test"), when="main")
        )
    """
    def __init__(self, key: str, values: Iterable[Any]):
        self.key = key
        self.values = list(values)

    def jobs(self, builder: Callable[[Any], Job]) -> List[Job]:
        return [builder(v) for v in self.values]


def matrix(key: str, values: Iterable[Any]) -> Matrix:
    return Matrix(key, values)


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(*items: Union[Rule, Job, List[Job]], env: Optional[Mapping[str, Any]] = None) -> Pipeline:
    """
    Workflow definition helper.

        from pathgate import wf, rule, job, sh, ROOT_FILES

        def workflow():
            return wf(
                rule("main", ROOT_FILES, "crates/**"),
                job("rust", sh("test", "cargo test"), when="main"),
                env={"RUST_TOOLCHAIN": "1.88.0"},
            )

    Matrix output (a list of jobs) can be passed directly.
    """
    rules: List[Rule] = []
    jobs: List[Job] = []
    for item in items:
        if isinstance(item, Rule):
            rules.append(item)
        elif isinstance(item, Job):
            jobs.append(item)
        elif isinstance(item, (list, tuple)) and all(isinstance(j, Job) for j in item):
            jobs.extend(item)
        else:
            raise ConfigError(f"wf() accepts rules, jobs or lists of jobs, got {item!r}")

    return Pipeline(
        rules=tuple(rules),
        jobs=tuple(jobs),
        env={k: str(v) for k, v in (env or {}).items()},
    )


__all__ = ["sh", "rule", "job", "JobBuilder", "build", "matrix", "Matrix", "wf", "ROOT_FILES"]
