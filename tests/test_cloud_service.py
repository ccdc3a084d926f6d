import pytest

from cloud.app.service import QUEUED, complete_job, plan_run, settle_run
from pathgate.errors import ChangesetError, ConfigError, OutcomeConflict
from pathgate.model import JobState

PIPELINE = {
    "env": {"FOUNDRY_VERSION": "v1.0.0"},
    "rules": {
        "main": ["*", "crates/**"],
        "docs": ["*", "crates/**", "documentation/**"],
    },
    "jobs": {
        "rust": {"if": "main || docs"},
        "link-check": {"if": "docs"},
        "docs-rs": {"needs": ["rust"], "if": "main"},
        "check-publish": {"needs": ["rust"], "if": "main", "required": False},
    },
}


def test_new_run_queues_eligible_roots():
    plan = plan_run(PIPELINE, ["crates/a/src/lib.rs"])
    assert plan.flags == {"main": True, "docs": True}
    assert plan.queued == ["link-check", "rust"]
    assert plan.states == {
        "link-check": QUEUED,
        "rust": QUEUED,
        "check-publish": "pending",
        "docs-rs": "pending",
    }
    assert plan.overall is None
    assert plan.status == "running"


def test_completion_releases_dependents():
    plan = plan_run(PIPELINE, ["crates/a/src/lib.rs"])
    states = dict(plan.states, rust="running")
    plan = complete_job(PIPELINE, plan.flags, states, "rust", JobState.SUCCESS)
    assert plan.queued == ["check-publish", "docs-rs"]
    assert plan.states["rust"] == "success"
    assert plan.states["link-check"] == QUEUED
    assert plan.overall is None


def test_failure_cancels_dependents_and_settles():
    plan = plan_run(PIPELINE, ["crates/a/src/lib.rs"])
    states = dict(plan.states, rust="running", **{"link-check": "success"})
    plan = complete_job(PIPELINE, plan.flags, states, "rust", JobState.FAILURE)
    assert plan.queued == []
    assert plan.states["docs-rs"] == "cancelled"
    assert plan.states["check-publish"] == "cancelled"
    assert plan.overall == "failure"
    assert plan.status == "failure"


def test_docs_only_run():
    plan = plan_run(PIPELINE, ["documentation/readme.md"])
    assert plan.queued == ["link-check", "rust"]
    states = dict(plan.states, rust="running")
    plan = complete_job(PIPELINE, plan.flags, states, "rust", JobState.SUCCESS)
    # docs-rs and check-publish are gated on main
    assert plan.states["docs-rs"] == "skipped"
    assert plan.states["check-publish"] == "skipped"
    assert plan.overall is None

    states = dict(plan.states, **{"link-check": "running"})
    plan = complete_job(PIPELINE, plan.flags, states, "link-check", JobState.SUCCESS)
    assert plan.overall == "success"


def test_nothing_eligible_settles_immediately():
    plan = plan_run(PIPELINE, ["infra/stack.ts"])
    assert plan.queued == []
    assert set(plan.states.values()) == {"skipped"}
    assert plan.status == "success"


def test_optional_jobs_do_not_hold_the_status():
    states = {"rust": "success", "link-check": "success", "docs-rs": "success", "check-publish": QUEUED}
    plan = settle_run(PIPELINE, {"main": True, "docs": True}, states)
    assert plan.overall == "success"
    assert plan.queued == []
    assert plan.states["check-publish"] == QUEUED


def test_outcome_is_write_once():
    states = {"rust": "success", "link-check": QUEUED, "docs-rs": "pending", "check-publish": "pending"}
    with pytest.raises(OutcomeConflict):
        complete_job(PIPELINE, {"main": True, "docs": True}, states, "rust", JobState.FAILURE)


def test_pending_job_cannot_complete():
    states = {"rust": "pending", "link-check": "pending", "docs-rs": "pending", "check-publish": "pending"}
    with pytest.raises(OutcomeConflict):
        complete_job(PIPELINE, {"main": True, "docs": True}, states, "rust", JobState.SUCCESS)


def test_invalid_pipeline():
    with pytest.raises(ConfigError):
        plan_run({"jobs": {"a": {"needs": ["a"]}}}, [])


def test_invalid_changeset():
    with pytest.raises(ChangesetError):
        plan_run(PIPELINE, ["/abs/path"])
