# cli.py
from __future__ import annotations

import json
import socket
import subprocess
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import click

from pathgate.api_client import APIClient, APIError
from pathgate.classifier import normalize_paths, read_changeset
from pathgate.engine import GateEngine
from pathgate.errors import (
    ChangesetError,
    ConfigError,
    GateInvariantError,
    OutcomeConflict,
    PathgateError,
)
from pathgate.git_facts.git import collect_changes, get_current_ref, get_remote_url
from pathgate.model import JobState
from pathgate.runner import load_workflow
from pathgate.ui.console import Console, get_console, set_console

EXIT_GATE_FAILED = 1
EXIT_ERROR = 2
EXIT_PENDING = 3

DEFAULT_WORKFLOWS = ("pathgate_workflow.py", "pathgate.yml", "pathgate.yaml")


def find_workflow_files() -> list[Path]:
    """Find all workflow files in the current directory."""
    current_dir = Path(".")
    found = {current_dir / name for name in DEFAULT_WORKFLOWS if (current_dir / name).exists()}
    found.update(current_dir.glob("*_workflow.py"))
    return sorted(found)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  pathgate plan --workflow pathgate.yml",
            )
            sys.exit(EXIT_ERROR)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=["Looked for:", *(f"  {n}" for n in DEFAULT_WORKFLOWS), "  *_workflow.py"],
            suggestion="Create a workflow file or specify one explicitly:\n  pathgate plan --workflow my_workflow.py",
        )
        sys.exit(EXIT_ERROR)

    if len(workflow_files) > 1:
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[str(f) for f in workflow_files],
            suggestion="Specify a workflow explicitly:\n  pathgate plan --workflow pathgate_workflow.py",
        )
        sys.exit(EXIT_ERROR)

    return workflow_files[0]


@contextmanager
def handle_errors():
    """Map pathgate errors to structured console output and exit codes."""
    console = get_console()
    try:
        yield
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except ConfigError as e:
        console.print_error("Invalid pipeline configuration", str(e))
        sys.exit(EXIT_ERROR)
    except ChangesetError as e:
        console.print_error(
            "Could not read changeset",
            str(e),
            suggestion="Pass --changes FILE, --path PATH, or run inside a git checkout with --git-diff.",
        )
        sys.exit(EXIT_ERROR)
    except GateInvariantError as e:
        console.print_error("Required jobs have not finished", str(e))
        sys.exit(EXIT_ERROR)
    except OutcomeConflict as e:
        console.print_error("Conflicting job outcomes", str(e))
        sys.exit(EXIT_ERROR)
    except APIError as e:
        console.print_error("API request failed", str(e))
        sys.exit(EXIT_ERROR)
    except (PathgateError, FileNotFoundError) as e:
        console.print_exception(e)
        sys.exit(EXIT_ERROR)


def change_options(f):
    """Options shared by every command that needs a changeset."""
    f = click.option("--compare-ref", default="origin/main", show_default=True, help="Git ref to diff against")(f)
    f = click.option("--git-diff", is_flag=True, default=False, help="Collect changed files from git")(f)
    f = click.option("--path", "paths", multiple=True, help="Changed path (repeatable)")(f)
    f = click.option("--changes", "changes_file", default=None, help="File with one changed path per line ('-' for stdin)")(f)
    return f


def collect_changeset(
    changes_file: Optional[str],
    paths: Iterable[str],
    git_diff: bool,
    compare_ref: str,
) -> frozenset[str]:
    """Union of every requested source; git diff when none is given."""
    changed: set[str] = set()
    if changes_file:
        changed.update(read_changeset(changes_file))
    changed.update(normalize_paths(paths))
    if git_diff or not (changes_file or paths):
        changed.update(normalize_paths(collect_changes(compare_ref)))
    get_console().print_debug(f"changeset: {sorted(changed)}")
    return frozenset(changed)


def read_outcomes(source: str) -> Dict[str, JobState]:
    """
    Read reported job outcomes. Accepted shapes:

      {"rust": "success", "docs": "failure"}
      {"jobs": {"rust": "success"}}                 (pathgate --json output)
      {"rust": {"result": "success", ...}}         (GitHub `needs` context)
    """
    try:
        text = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
        data = json.loads(text)
    except (OSError, json.JSONDecodeError) as e:
        raise PathgateError(f"Could not read outcomes from {source}: {e}") from e

    if isinstance(data, dict) and isinstance(data.get("jobs"), dict):
        data = data["jobs"]
    if not isinstance(data, dict):
        raise PathgateError(f"Outcomes must be a JSON object, got {type(data).__name__}")

    outcomes: Dict[str, JobState] = {}
    for name, value in data.items():
        if isinstance(value, dict):
            value = value.get("result")
        try:
            outcomes[name] = JobState(value)
        except ValueError:
            raise PathgateError(f"Invalid outcome {value!r} for job '{name}'") from None
    return outcomes


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=False))


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """pathgate: change-driven CI job gating."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.py or .yml)")
@change_options
@click.option("--files/--no-files", default=False, help="Show the files that matched each rule")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print machine-readable JSON")
@click.pass_context
def classify(ctx, workflow, changes_file, paths, git_diff, compare_ref, files, as_json):
    """Classify the changeset into rule flags."""
    console = get_console()
    workflow_path = discover_workflow(workflow)

    with handle_errors():
        engine = GateEngine(load_workflow(workflow_path))
        flags = engine.classify(collect_changeset(changes_file, paths, git_diff, compare_ref))

        if as_json:
            out = {"flags": flags.to_dict()}
            if files:
                out["files"] = {name: list(flags.files(name)) for name in flags}
            _echo_json(out)
        else:
            console.print_flags(flags, {name: flags.files(name) for name in flags} if files else None)


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.py or .yml)")
@change_options
@click.option("--json", "as_json", is_flag=True, default=False, help="Print machine-readable JSON")
@click.pass_context
def plan(ctx, workflow, changes_file, paths, git_diff, compare_ref, as_json):
    """Show which jobs the changeset enables."""
    console = get_console()
    workflow_path = discover_workflow(workflow)

    with handle_errors():
        pipeline = load_workflow(workflow_path)
        engine = GateEngine(pipeline)
        changed = collect_changeset(changes_file, paths, git_diff, compare_ref)
        flags = engine.classify(changed)
        verdicts = engine.plan(flags)

        if as_json:
            _echo_json({
                "flags": flags.to_dict(),
                "jobs": {
                    name: {
                        "eligible": ok,
                        "if": str(engine.jobs[name].when),
                        "needs": list(engine.jobs[name].needs),
                        "required": engine.jobs[name].required,
                    }
                    for name, ok in verdicts.items()
                },
            })
            return

        console.print_run_started(
            workflow=workflow_path.name,
            job_count=len(pipeline.jobs),
            changed_count=len(changed),
        )
        console.print_flags(flags)
        console.print_plan(verdicts, {n: str(j.when) for n, j in engine.jobs.items()})


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.py or .yml)")
@change_options
@click.option("--outcomes", required=True, help="JSON file with reported job outcomes ('-' for stdin)")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print machine-readable JSON")
@click.pass_context
def gate(ctx, workflow, changes_file, paths, git_diff, compare_ref, outcomes, as_json):
    """Aggregate reported outcomes into the final gate status (exit 0 = pass)."""
    console = get_console()
    workflow_path = discover_workflow(workflow)

    with handle_errors():
        engine = GateEngine(load_workflow(workflow_path))
        flags = engine.classify(collect_changeset(changes_file, paths, git_diff, compare_ref))
        board = engine.replay(flags, read_outcomes(outcomes))
        result = engine.aggregate(board)

        if as_json:
            _echo_json(result.to_dict())
        else:
            console.print_results(result)

        if not result.passed:
            sys.exit(EXIT_GATE_FAILED)


@cli.command()
@click.option("--api", required=True, help="API base URL (e.g., http://localhost:8000)")
@click.option("--workflow", default=None, help="Workflow file (.py or .yml)")
@change_options
@click.option("--repo", default=None, help="Repository URL (defaults to git remote origin URL)")
@click.option("--ref", default=None, help="Git ref/branch/commit (defaults to current branch or HEAD)")
@click.pass_context
def submit(ctx, api, workflow, changes_file, paths, git_diff, compare_ref, repo, ref):
    """Submit a gated run to the control plane."""
    console = get_console()
    workflow_path = discover_workflow(workflow)

    with handle_errors():
        pipeline = load_workflow(workflow_path)
        changed = collect_changeset(changes_file, paths, git_diff, compare_ref)
        console.print_info(f"Loaded {len(pipeline.jobs)} job(s) from {workflow_path}")

        try:
            repo = repo or get_remote_url("origin")
            ref = ref or get_current_ref()
        except (subprocess.CalledProcessError, FileNotFoundError):
            console.print_error(
                "Could not determine repository",
                "No --repo/--ref specified and git could not provide them.",
                suggestion="Specify them explicitly:\n  pathgate submit --api <url> --repo <repo_url> --ref <ref>",
            )
            sys.exit(EXIT_ERROR)

        result = APIClient(api).create_run(repo, ref, pipeline, changed)
        console.print_info(f"\nSuccessfully submitted run to {api.rstrip('/')}")
        console.print_info(f"  Run ID: {result.get('run_id')}")
        console.print_info(f"  Queued: {', '.join(result.get('queued', [])) or '(none)'}")


@cli.command()
@click.option("--api", required=True, help="API base URL")
@click.argument("run_id")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print machine-readable JSON")
@click.pass_context
def status(ctx, api, run_id, as_json):
    """Show a run's job states. Exit 0 passed, 1 failed, 3 still running."""
    console = get_console()

    with handle_errors():
        run = APIClient(api).get_run(run_id)

        if as_json:
            _echo_json(run)
        else:
            console.print_header(f"RUN {run_id}")
            for name, state in run.get("jobs", {}).items():
                console.print_info(f"  {name}: {str(state).upper()}")
            console.print_info(f"  STATUS: {str(run.get('status')).upper()}")

        overall = run.get("overall")
        if overall is None:
            sys.exit(EXIT_PENDING)
        if overall != JobState.SUCCESS.value:
            sys.exit(EXIT_GATE_FAILED)


@cli.command()
@click.option("--api", required=True, help="API base URL")
@click.option("--agent-id", default=None, help="Agent identifier (defaults to hostname)")
@click.pass_context
def claim(ctx, api, agent_id):
    """Claim the next queued job and print its trigger as JSON (exit 3 when none)."""
    with handle_errors():
        lease = APIClient(api, agent_id or socket.gethostname()).claim_lease()
        if lease is None:
            get_console().print_debug("no jobs available")
            sys.exit(EXIT_PENDING)
        _echo_json({
            "job_id": lease.job_id,
            "run_id": lease.run_id,
            "job_name": lease.job_name,
            "trigger": lease.payload_json,
            "lease_expires_at": lease.lease_expires_at,
        })


@cli.command()
@click.option("--api", required=True, help="API base URL")
@click.option("--job-id", required=True, help="Leased job id")
@click.option(
    "--outcome",
    required=True,
    type=click.Choice([JobState.SUCCESS.value, JobState.FAILURE.value]),
    help="Terminal outcome of the job",
)
@click.option("--agent-id", default=None, help="Agent identifier used to claim the job (defaults to hostname)")
@click.pass_context
def report(ctx, api, job_id, outcome, agent_id):
    """Report the outcome of a leased job."""
    with handle_errors():
        response = APIClient(api, agent_id or socket.gethostname()).complete_lease(job_id, JobState(outcome))
        queued: List[str] = response.get("queued", [])
        get_console().print_info(f"Reported {outcome} for {job_id}")
        if queued:
            get_console().print_info(f"  Newly queued: {', '.join(queued)}")


if __name__ == "__main__":
    cli()
