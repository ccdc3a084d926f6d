# runner.py
from __future__ import annotations

import os
import runpy
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Union

from .dsl import wf
from .engine import GateEngine
from .errors import ConfigError, JobFailure
from .manifest import load_manifest
from .model import JobState, JobTrigger, Pipeline, RunResult
from .ui.console import get_console

# The execution layer: receives a trigger, returns the job's outcome.
# True/False are accepted as success/failure; raising counts as failure.
ExecuteFn = Callable[[JobTrigger], Union[JobState, bool]]


# ----------------------------------------------------------------------
# Workflow loading (local file/module)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> Pipeline:
    """
    Load a pipeline from a python workflow file or a YAML manifest.

    A python file must define either:
      - workflow() -> Pipeline   (or a list of jobs/rules)
      - PIPELINE = Pipeline      (or JOBS = [Job, ...])

    The pipeline is validated before it is returned, so configuration
    errors surface before any run starts.
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")

    if wf_path.suffix in (".yml", ".yaml"):
        pipeline = load_manifest(wf_path)
    elif wf_path.suffix == ".py":
        pipeline = _load_python_workflow(wf_path)
    else:
        raise ConfigError(f"Workflow must be a .py, .yml or .yaml file, got: {wf_path.name}")

    GateEngine(pipeline)
    return pipeline


def _load_python_workflow(wf_path: Path) -> Pipeline:
    module_name = f"pathgate_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        loaded = globals_dict["workflow"]()
    elif "PIPELINE" in globals_dict:
        loaded = globals_dict["PIPELINE"]
    elif "JOBS" in globals_dict:
        loaded = globals_dict["JOBS"]
    else:
        raise ConfigError(
            f"{wf_path.name} must define workflow() -> Pipeline or PIPELINE = wf(...)"
        )

    if isinstance(loaded, Pipeline):
        return loaded
    if isinstance(loaded, list):
        return wf(*loaded)
    raise ConfigError(
        f"{wf_path.name}: workflow must be a Pipeline (use wf(...)), got {type(loaded).__name__}"
    )


# ----------------------------------------------------------------------
# Execution
# ----------------------------------------------------------------------

def _run_job(execute: ExecuteFn, trigger: JobTrigger) -> JobState:
    outcome = execute(trigger)
    if isinstance(outcome, JobState):
        if outcome not in (JobState.SUCCESS, JobState.FAILURE):
            raise JobFailure(
                job=trigger.name,
                message=f"execution layer returned non-final outcome '{outcome.value}'",
            )
        return outcome
    if isinstance(outcome, bool):
        return JobState.SUCCESS if outcome else JobState.FAILURE
    raise JobFailure(
        job=trigger.name,
        message=f"execution layer returned {outcome!r}, expected JobState or bool",
    )


def run_pipeline(
    pipeline: Pipeline,
    changed_paths: Iterable[str],
    execute: ExecuteFn,
    *,
    max_workers: int | None = None,
    fail_fast: bool = False,
    stop_when_settled: bool = False,
    print_plan: bool = True,
) -> RunResult:
    """
    Classify the changeset, then drive the job graph through `execute`.

    - Every ready job is submitted at once (fan-out); a job waits for all
      of its needs to be terminal (fan-in).
    - A failed/cancelled dependency cancels its dependents; running jobs
      are never cancelled.
    - fail_fast: after the first failure, cancel every job not yet started.
    - stop_when_settled: stop starting optional jobs once every required
      job (and what it needs) is terminal.
    """
    console = get_console()
    engine = GateEngine(pipeline)
    flags = engine.classify(changed_paths)
    board = engine.new_board()

    if print_plan:
        console.print_flags(flags)
        console.print_plan(engine.plan(flags), {n: str(j.when) for n, j in engine.jobs.items()})

    if max_workers is None:
        c = os.cpu_count() or 2
        max_workers = max(1, c - 1)

    in_flight: Dict[Future, str] = {}
    failed = False

    def resolve() -> List[str]:
        before = board.snapshot()
        ready = engine.advance(flags, board)
        for name, state in board.snapshot().items():
            if before[name] is JobState.PENDING and state.terminal:
                console.print_job_resolved(name, state)
        return ready

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        while True:
            ready = resolve()
            if fail_fast and failed:
                for name in engine.cancel_pending(board):
                    console.print_job_resolved(name, JobState.CANCELLED)
                ready = []
            elif stop_when_settled and engine.is_settled(board):
                ready = []

            # schedule all currently ready
            for name in ready:
                board.start(name)
                console.print_job_start(name)
                fut = pool.submit(_run_job, execute, engine.trigger(name))
                in_flight[fut] = name

            if not in_flight:
                break

            # wait for one completion, then loop to schedule newly-ready jobs
            fut = next(as_completed(list(in_flight.keys())))
            name = in_flight.pop(fut)

            try:
                state = fut.result()
            except Exception as e:
                console.print_failure(name, str(e))
                state = JobState.FAILURE

            board.record(name, state)
            console.print_job_finished(name, state)
            if state is JobState.FAILURE:
                failed = True

    return engine.aggregate(board)
