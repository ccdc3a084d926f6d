"""Pipeline manifests.

Loads pipelines from YAML files and converts them to and from plain dicts,
the same shape the control plane receives:

    env:
      RISC0_TOOLCHAIN_VERSION: "1.88.0"
    rules:
      main: ["*", "crates/**", "contracts/**"]
      src:
        patterns: ["src/**", "!src/**/*.md"]
        negatable: true
    jobs:
      rust:
        if: main || docs
        steps:
          - {name: cargo test, run: cargo test --locked}
      docs-rs:
        needs: [rust]
        required: false
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError
from .model import Job, Pipeline, Rule, Step
from .predicate import as_expr


def _stringify_env(value: Any) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError("env must be a mapping")
    return {str(k): str(v) for k, v in value.items()}


class StepModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    run: str
    cwd: Optional[str] = None


class RuleModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    patterns: List[str] = Field(min_length=1)
    negatable: bool = False


class JobModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    needs: List[str] = Field(default_factory=list)
    when: str = Field(default="always", alias="if")
    required: bool = True
    env: Dict[str, str] = Field(default_factory=dict)
    steps: List[StepModel] = Field(default_factory=list)

    @field_validator("needs", mode="before")
    @classmethod
    def _single_need(cls, v):
        # `needs: lint` is shorthand for `needs: [lint]`
        if isinstance(v, str):
            return [v]
        return v or []

    @field_validator("when", mode="before")
    @classmethod
    def _bool_when(cls, v):
        if v is None or v is True:
            return "always"
        return v

    @field_validator("env", mode="before")
    @classmethod
    def _env(cls, v):
        return _stringify_env(v)


class ManifestModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    env: Dict[str, str] = Field(default_factory=dict)
    rules: Dict[str, Union[RuleModel, List[str]]] = Field(default_factory=dict)
    jobs: Dict[str, JobModel]

    @field_validator("env", mode="before")
    @classmethod
    def _env(cls, v):
        return _stringify_env(v)


def pipeline_from_dict(data: Dict[str, Any]) -> Pipeline:
    """
    Validate a manifest dict and build a Pipeline.

    Raises:
        ConfigError: If the manifest or any predicate in it is invalid
    """
    if not isinstance(data, dict):
        raise ConfigError(f"Pipeline manifest must be a mapping, got {type(data).__name__}")
    try:
        manifest = ManifestModel.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid pipeline manifest: {e}") from e

    rules = []
    for name, spec in manifest.rules.items():
        if isinstance(spec, list):
            spec = RuleModel(patterns=spec)
        rules.append(Rule(name=name, patterns=tuple(spec.patterns), negatable=spec.negatable))

    jobs = [
        Job(
            name=name,
            needs=list(j.needs),
            when=as_expr(j.when),
            required=j.required,
            steps=[Step(name=s.name, run=s.run, cwd=s.cwd) for s in j.steps],
            env=dict(j.env),
        )
        for name, j in manifest.jobs.items()
    ]

    return Pipeline(rules=tuple(rules), jobs=tuple(jobs), env=dict(manifest.env))


def pipeline_to_dict(pipeline: Pipeline) -> Dict[str, Any]:
    """Serialize a Pipeline into the manifest shape accepted by pipeline_from_dict."""
    return {
        "env": dict(pipeline.env),
        "rules": {
            r.name: {"patterns": list(r.patterns), "negatable": r.negatable}
            for r in pipeline.rules
        },
        "jobs": {
            j.name: {
                "needs": list(j.needs),
                "if": str(j.when),
                "required": j.required,
                "env": dict(j.env),
                "steps": [{"name": s.name, "run": s.run, "cwd": s.cwd} for s in j.steps],
            }
            for j in pipeline.jobs
        },
    }


def load_manifest(path: Path) -> Pipeline:
    """
    Load a pipeline from a YAML file.

    Raises:
        FileNotFoundError: If file doesn't exist
        ConfigError: If YAML is malformed or the pipeline is invalid
    """
    if not path.exists():
        raise FileNotFoundError(f"Pipeline manifest not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Malformed YAML in {path}: {e}") from e

    try:
        return pipeline_from_dict(raw)
    except ConfigError as e:
        raise ConfigError(f"{path}: {e}") from e
