# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Tuple

from .predicate import ALWAYS, Expr


class JobState(str, Enum):
    """Lifecycle of a job within one run."""
    PENDING = "pending"
    RUNNING = "running"
    SKIPPED = "skipped"
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES

    @property
    def blocking(self) -> bool:
        """True if this outcome cancels dependents and fails the gate."""
        return self in (JobState.FAILURE, JobState.CANCELLED)


TERMINAL_STATES = frozenset(
    {JobState.SKIPPED, JobState.SUCCESS, JobState.FAILURE, JobState.CANCELLED}
)


@dataclass(frozen=True)
class Step:
    """An opaque command descriptor handed to the execution layer. Never run by pathgate."""
    name: str
    run: str
    cwd: str | None = None


@dataclass(frozen=True)
class Rule:
    """
    A named classification rule.

    Patterns starting with "!" are exclusions; they are only accepted when
    `negatable` is set.
    """
    name: str
    patterns: Tuple[str, ...]
    negatable: bool = False


@dataclass
class Job:
    """
    A CI job as seen by the gate: dependencies, gating predicate and whether
    its outcome counts toward the final status.
    """
    name: str
    needs: list[str] = field(default_factory=list)
    when: Expr = ALWAYS
    required: bool = True

    # Opaque payload for the execution layer
    steps: list[Step] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Pipeline:
    """
    Immutable configuration for a repository: classification rules, the job
    graph and shared environment (version pins) injected into every trigger.
    """
    rules: Tuple[Rule, ...] = ()
    jobs: Tuple[Job, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)

    def job(self, name: str) -> Job:
        for j in self.jobs:
            if j.name == name:
                return j
        raise KeyError(name)


@dataclass(frozen=True)
class JobTrigger:
    """What the execution layer receives for an eligible job."""
    name: str
    steps: Tuple[Step, ...]
    env: Mapping[str, str]

    @classmethod
    def for_job(cls, job: Job, pipeline_env: Mapping[str, str]) -> JobTrigger:
        env = dict(pipeline_env)
        env.update(job.env)
        return cls(name=job.name, steps=tuple(job.steps), env=env)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "steps": [{"name": s.name, "run": s.run, "cwd": s.cwd} for s in self.steps],
            "env": dict(self.env),
        }


@dataclass(frozen=True)
class RunResult:
    """Final, immutable verdict of a run."""
    passed: bool
    jobs: Mapping[str, JobState]
    failed_required: Tuple[str, ...] = ()

    @property
    def overall(self) -> JobState:
        return JobState.SUCCESS if self.passed else JobState.FAILURE

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1

    def to_dict(self) -> dict:
        return {
            "overall": self.overall.value,
            "jobs": {name: state.value for name, state in self.jobs.items()},
            "failed_required": list(self.failed_required),
        }

