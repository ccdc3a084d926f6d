# pathgate_workflow.py
# Gating for a rust + solidity monorepo: every job declares which changes
# it cares about, and main-status-check style aggregation decides the merge.
from __future__ import annotations

from pathgate import ROOT_FILES, job, matrix, rule, sh, wf


def workflow():
    return wf(
        # Changes to the Docker files. Docker jobs are slow.
        rule("docker", "dockerfiles/**", "compose.yml", ".env.broker-template"),
        # Changes affect the main codebase (rust + contracts).
        rule("main", ROOT_FILES, "crates/**", "contracts/**"),
        rule("examples", ROOT_FILES, "crates/**", "contracts/**", "examples/**"),
        rule("docs", ROOT_FILES, "crates/**", "contracts/**", "documentation/**"),
        rule("infra", "infra/**"),
        rule("deployments", "contracts/deployment.toml", "crates/boundless-market/src/deployments.rs"),

        job(
            "rust",
            sh("cargo sort", "cargo sort --workspace --check"),
            sh("cargo clippy", "cargo clippy --locked --all-targets"),
            sh("cargo test", "cargo test --locked --workspace --all-targets"),
            when="main || docs",
            env={"RISC0_DEV_MODE": "true"},
        ),
        job("rust-pkg-check", sh("package", "cargo package --workspace"), when="main"),
        job("link-check", sh("lychee", "lychee documentation/"), when="docs"),
        job("format", sh("dprint", "dprint check")),
        job("foundry", sh("forge test", "forge test -vvv"), when="main"),
        job("docs-rs", sh("cargo doc", "cargo doc --locked --no-deps"), when="main"),
        matrix("example", ["counter", "smart-contract-requestor"]).jobs(
            lambda name: job(
                f"examples-{name}",
                sh("test", "cargo test --locked", cwd=f"examples/{name}"),
                when="examples",
            )
        ),
        job("docker", sh("build", "docker compose build"), when="docker"),
        job("infra", sh("typecheck", "npm run build", cwd="infra"), when="infra"),
        job(
            "deployment-address-check",
            sh("check", "python scripts/check_deployments.py"),
            when="deployments",
        ),
        # informational only: never blocks the merge
        job("check-publish", sh("dry run", "cargo publish --dry-run"), needs=["rust"], when="main", required=False),
        env={
            "RISC0_TOOLCHAIN_VERSION": "1.88.0",
            "RISC0_CRATE_VERSION": "2.3.0",
            "FOUNDRY_VERSION": "v1.0.0",
        },
    )
