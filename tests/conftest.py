from __future__ import annotations

from pathlib import Path

import pytest

from pathgate import Pipeline, job, rule, wf

REPO_ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture
def repo_root() -> Path:
    return REPO_ROOT


@pytest.fixture
def chain() -> Pipeline:
    """a -> b -> c, all required, all always eligible."""
    return wf(
        rule("any", "**"),
        job("a"),
        job("b", needs=["a"]),
        job("c", needs=["b"]),
    )


@pytest.fixture
def topics() -> Pipeline:
    return wf(
        rule("main", "*", "crates/**", "contracts/**"),
        rule("docs", "*", "crates/**", "contracts/**", "documentation/**"),
        rule("infra", "infra/**"),
        job("rust", when="main || docs"),
        job("link-check", when="docs"),
        job("infra", when="infra"),
        job("publish", needs=["rust"], when="main", required=False),
    )
