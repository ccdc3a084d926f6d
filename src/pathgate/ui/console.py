"""Console output formatting utilities for pathgate."""

from __future__ import annotations

import sys
from typing import Mapping, Optional

from pathgate.model import JobState, RunResult


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_run_started(
        self,
        workflow: str,
        job_count: int,
        changed_count: int,
    ) -> None:
        """Print run start information."""
        print("\nRUN STARTED")
        print(f"Workflow: {workflow}")
        print(f"Jobs: {job_count}")
        print(f"Changed files: {changed_count}")
        print()

    def print_flags(self, flags: Mapping[str, bool], files: Optional[Mapping[str, tuple]] = None) -> None:
        """Print classification flags, optionally with the matching files."""
        self.print_header("FLAGS")
        for name, hit in flags.items():
            print(f"  {name}: {'true' if hit else 'false'}")
            if files and hit:
                for path in files.get(name, ()):
                    print(f"    {path}")

    def print_plan(self, plan: Mapping[str, bool], when: Mapping[str, str]) -> None:
        """Print which jobs the predicates enable."""
        self.print_header("PLAN")
        for name, ok in plan.items():
            if ok:
                print(f"  {name} (eligible: {when[name]})")
            else:
                print(f"  {name} (skipped: {when[name]} is false)")

    def print_job_start(self, name: str) -> None:
        """Print job start message."""
        print(f"JOB STARTED: {name}")

    def print_job_finished(self, name: str, state: JobState) -> None:
        print(f"JOB {state.value.upper()}: {name}")

    def print_job_resolved(self, name: str, state: JobState) -> None:
        """Print a job the engine settled without running it."""
        reason = "dependency failed" if state is JobState.CANCELLED else "predicate false"
        print(f"JOB {state.value.upper()}: {name} ({reason})")

    def print_failure(self, name: str, reason: str) -> None:
        """
        Print failure message.

        Args:
            name: Job name
            reason: Failure reason/error message
        """
        print(f"JOB FAILED: {name}")
        if self.debug:
            print(f"Error details: {reason}")
        else:
            # Show first line of error for non-debug mode
            error_line = reason.split("\n")[0] if reason else "Unknown error"
            print(f"Error: {error_line}")

    def print_results(self, result: RunResult) -> None:
        """Print final results summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for job, state in result.jobs.items():
            print(f"  {job}: {state.value.upper()}")
        print("-" * 40)
        print(f"  GATE: {result.overall.value.upper()}")
        if result.failed_required:
            print(f"  Failed required jobs: {', '.join(result.failed_required)}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
