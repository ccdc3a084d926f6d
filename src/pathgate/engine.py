# engine.py
"""
Gate & aggregate engine.

The engine never runs anything. Given the classifier flags and an outcome
board it decides, in topological order, which pending jobs are:

  - cancelled   (a dependency ended in failure/cancelled)
  - skipped     (the job's predicate is false)
  - ready       (handed back to the caller, who starts them)

and finally reduces the required jobs' outcomes into one RunResult.
"""
from __future__ import annotations

import threading
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Set, Union

from .classifier import Classifier, FlagSet
from .dag import ancestors, build_dag, topo_levels
from .errors import ConfigError, GateInvariantError, OutcomeConflict
from .model import Job, JobState, JobTrigger, Pipeline, RunResult

_TRANSITIONS = {
    JobState.PENDING: {JobState.RUNNING, JobState.SKIPPED, JobState.CANCELLED},
    JobState.RUNNING: {JobState.SUCCESS, JobState.FAILURE},
}


class OutcomeBoard:
    """
    Per-run job states. Each job moves forward through the state machine
    exactly once; any second write of a terminal outcome is rejected.
    """

    def __init__(self, names: Iterable[str], initial: Optional[Mapping[str, JobState]] = None):
        self._states: Dict[str, JobState] = {n: JobState.PENDING for n in names}
        for name, state in (initial or {}).items():
            if name not in self._states:
                raise OutcomeConflict(f"Unknown job '{name}'")
            self._states[name] = JobState(state)
        self._lock = threading.Lock()

    def state(self, name: str) -> JobState:
        return self._states[name]

    def record(self, name: str, state: JobState) -> None:
        state = JobState(state)
        with self._lock:
            if name not in self._states:
                raise OutcomeConflict(f"Unknown job '{name}'")
            current = self._states[name]
            if state not in _TRANSITIONS.get(current, set()):
                raise OutcomeConflict(
                    f"Job '{name}' cannot move from {current.value} to {state.value}"
                )
            self._states[name] = state

    def start(self, name: str) -> None:
        self.record(name, JobState.RUNNING)

    def snapshot(self) -> Dict[str, JobState]:
        with self._lock:
            return dict(self._states)


class GateEngine:
    """
    Validates a Pipeline once (rules, graph, predicates) and then answers
    eligibility / scheduling / aggregation questions for any number of runs.
    """

    def __init__(self, pipeline: Pipeline):
        self.pipeline = pipeline
        self.classifier = Classifier(pipeline.rules)

        jobs = list(pipeline.jobs)
        adj, indeg = build_dag(jobs)
        self.levels = topo_levels(adj, indeg)
        self.order: List[str] = [name for level in self.levels for name in level]
        self.jobs: Dict[str, Job] = {j.name: j for j in jobs}

        known = set(self.classifier.names)
        for j in jobs:
            unknown = sorted(j.when.flags() - known)
            if unknown:
                raise ConfigError(
                    f"Job '{j.name}' predicate references unknown flag(s) {unknown}. "
                    f"Known flags: {sorted(known)}"
                )

        required = {j.name for j in jobs if j.required}
        self._required_closure: Set[str] = required | ancestors(jobs, required)

    # -----------------------------------------------------------------
    # Classification / eligibility
    # -----------------------------------------------------------------

    def classify(self, changed_paths: Iterable[str]) -> FlagSet:
        return self.classifier.classify(changed_paths)

    def eligible(self, job: Union[Job, str], flags: Mapping[str, bool]) -> bool:
        if isinstance(job, str):
            job = self.jobs[job]
        return job.when.evaluate(flags)

    def plan(self, flags: Mapping[str, bool]) -> Dict[str, bool]:
        """Predicate verdict for every job, in topological order."""
        return {name: self.eligible(name, flags) for name in self.order}

    def trigger(self, name: str) -> JobTrigger:
        return JobTrigger.for_job(self.jobs[name], self.pipeline.env)

    # -----------------------------------------------------------------
    # Scheduling
    # -----------------------------------------------------------------

    def new_board(self) -> OutcomeBoard:
        return OutcomeBoard(self.order)

    def advance(self, flags: Mapping[str, bool], board: OutcomeBoard) -> List[str]:
        """
        Resolve every pending job whose dependencies are all terminal.

        Cancellations and skips are written to the board here. Jobs that
        should run are returned and stay pending; the caller starts them
        with board.start(name).
        """
        ready: List[str] = []
        for name in self.order:
            if board.state(name) is not JobState.PENDING:
                continue
            deps = [board.state(d) for d in self.jobs[name].needs]
            if not all(s.terminal for s in deps):
                continue
            if any(s.blocking for s in deps):
                board.record(name, JobState.CANCELLED)
            elif not self.eligible(name, flags):
                board.record(name, JobState.SKIPPED)
            else:
                ready.append(name)
        return ready

    def cancel_pending(self, board: OutcomeBoard) -> List[str]:
        """Cancel every job that has not started yet. Running jobs are left alone."""
        cancelled = []
        for name in self.order:
            if board.state(name) is JobState.PENDING:
                board.record(name, JobState.CANCELLED)
                cancelled.append(name)
        return cancelled

    def replay(self, flags: Mapping[str, bool], reported: Mapping[str, JobState]) -> OutcomeBoard:
        """
        Rebuild a board from outcomes reported by an external execution layer.

        Skips and cancellations are derived from flags and dependencies;
        reported outcomes are only applied to jobs the engine would have
        started. A job the engine would have started cannot be reported as
        skipped. Jobs with nothing reported stay pending.
        """
        unknown = sorted(set(reported) - set(self.jobs))
        if unknown:
            raise OutcomeConflict(f"Outcomes reported for unknown jobs: {unknown}")

        board = self.new_board()
        while True:
            progressed = False
            for name in self.advance(flags, board):
                state = reported.get(name)
                if state is None or not JobState(state).terminal:
                    continue
                state = JobState(state)
                if state is JobState.SKIPPED:
                    # only the predicate check may skip an eligible job
                    raise OutcomeConflict(
                        f"Job '{name}' reported as skipped but its predicate is true"
                    )
                if state in (JobState.SUCCESS, JobState.FAILURE):
                    board.start(name)
                board.record(name, state)
                progressed = True
            if not progressed:
                return board

    # -----------------------------------------------------------------
    # Aggregation
    # -----------------------------------------------------------------

    @property
    def required(self) -> List[str]:
        return [n for n in self.order if self.jobs[n].required]

    def required_closure(self) -> Set[str]:
        """Required jobs plus everything they transitively need."""
        return set(self._required_closure)

    def is_settled(self, board: Union[OutcomeBoard, Mapping[str, JobState]]) -> bool:
        states = board.snapshot() if isinstance(board, OutcomeBoard) else board
        return all(JobState(states[n]).terminal for n in self._required_closure)

    def aggregate(self, board: Union[OutcomeBoard, Mapping[str, JobState]]) -> RunResult:
        states = board.snapshot() if isinstance(board, OutcomeBoard) else dict(board)
        return aggregate(self.pipeline.jobs, states)


def aggregate(jobs: Iterable[Job], outcomes: Mapping[str, JobState]) -> RunResult:
    """
    Reduce required jobs' outcomes into one verdict.

    failure/cancelled -> failure; success/skipped -> pass. A required job
    without a terminal outcome means aggregation ran too early.
    """
    states = {name: JobState(s) for name, s in outcomes.items()}
    failed: List[str] = []
    unfinished: List[str] = []
    for job in jobs:
        if not job.required:
            continue
        state = states.get(job.name, JobState.PENDING)
        if not state.terminal:
            unfinished.append(job.name)
        elif state.blocking:
            failed.append(job.name)

    if unfinished:
        raise GateInvariantError(f"Aggregation ran before required jobs finished: {unfinished}")

    return RunResult(passed=not failed, jobs=MappingProxyType(states), failed_required=tuple(failed))


def eligible(job: Job, flags: Mapping[str, bool]) -> bool:
    return job.when.evaluate(flags)
