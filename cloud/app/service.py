"""Run bookkeeping for the control plane.

Pure functions over plain dicts so the API handlers only load and store
rows. Job states are pathgate JobState values, plus "queued" for jobs
that were released to the redis queue but not claimed yet.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from pathgate.classifier import FlagSet
from pathgate.engine import GateEngine, OutcomeBoard
from pathgate.manifest import pipeline_from_dict
from pathgate.model import JobState

QUEUED = "queued"


@dataclass
class RunPlan:
    flags: Dict[str, bool]
    states: Dict[str, str]
    queued: List[str]  # jobs released by this step, in topological order
    overall: Optional[str]  # success | failure once the gate is settled

    @property
    def status(self) -> str:
        return self.overall or "running"


def build_engine(pipeline_json: dict) -> GateEngine:
    return GateEngine(pipeline_from_dict(pipeline_json))


def _board(engine: GateEngine, states: Dict[str, str]) -> OutcomeBoard:
    # a queued job is out of the engine's hands, same as a running one
    return OutcomeBoard(
        engine.order,
        {n: JobState.RUNNING if s == QUEUED else JobState(s) for n, s in states.items()},
    )


def _settle(engine: GateEngine, flags: FlagSet, states: Dict[str, str]) -> RunPlan:
    board = _board(engine, states)
    released = engine.advance(flags, board)
    snapshot = board.snapshot()

    new_states: Dict[str, str] = {}
    for name in engine.order:
        if name in released or states.get(name) == QUEUED:
            new_states[name] = QUEUED
        else:
            new_states[name] = snapshot[name].value

    overall = None
    if engine.is_settled(board):
        overall = engine.aggregate(board).overall.value

    return RunPlan(flags=flags.to_dict(), states=new_states, queued=released, overall=overall)


def plan_run(pipeline_json: dict, changed_paths: Iterable[str]) -> RunPlan:
    """Classify a new run and release its first jobs."""
    engine = build_engine(pipeline_json)
    flags = engine.classify(changed_paths)
    return _settle(engine, flags, {name: JobState.PENDING.value for name in engine.order})


def settle_run(pipeline_json: dict, flags_json: Dict[str, bool], states: Dict[str, str]) -> RunPlan:
    engine = build_engine(pipeline_json)
    return _settle(engine, FlagSet(flags_json), states)


def complete_job(
    pipeline_json: dict,
    flags_json: Dict[str, bool],
    states: Dict[str, str],
    job_name: str,
    outcome: JobState,
) -> RunPlan:
    """
    Record one job's terminal outcome and move the run forward.

    Raises:
        OutcomeConflict: If the job is not running or already finished
    """
    engine = build_engine(pipeline_json)
    board = _board(engine, states)
    board.record(job_name, JobState(outcome))

    after = dict(states)
    after[job_name] = JobState(outcome).value
    return _settle(engine, FlagSet(flags_json), after)
