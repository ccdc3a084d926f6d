# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


class PathgateError(Exception):
    """Base class for every error raised by pathgate."""


class ConfigError(PathgateError):
    """Invalid rules or job graph. Raised at load time, before any run starts."""


class ChangesetError(PathgateError):
    """The list of changed paths could not be read or contains invalid paths."""


class OutcomeConflict(PathgateError):
    """A job outcome was written twice, or moved through an illegal transition."""


class GateInvariantError(AssertionError):
    """
    Aggregation was asked for while required jobs are still pending/running.

    This is an integration bug (the caller aggregated too early), not a
    recoverable condition, hence an AssertionError.
    """


@dataclass
class JobFailure(Exception):
    """
    Structured failure reported by an execution callback, with enough context for:
      - clean CLI output
      - debugging without full tracebacks
    """
    job: str
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"job={self.job}: {self.message}"]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)
