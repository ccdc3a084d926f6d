import pytest

from pathgate import GateEngine, job, rule, sh, wf
from pathgate.errors import ConfigError
from pathgate.manifest import load_manifest, pipeline_from_dict, pipeline_to_dict
from pathgate.predicate import ALWAYS


def test_minimal_manifest():
    pipeline = pipeline_from_dict({"jobs": {"lint": {}}})
    lint = pipeline.job("lint")
    assert lint.when is ALWAYS
    assert lint.required is True
    assert lint.needs == []


def test_rule_shorthand_and_long_form():
    pipeline = pipeline_from_dict({
        "rules": {
            "main": ["*", "crates/**"],
            "src": {"patterns": ["src/**", "!src/**/*.md"], "negatable": True},
        },
        "jobs": {"x": {"if": "main || src"}},
    })
    main, src = pipeline.rules
    assert main.patterns == ("*", "crates/**") and not main.negatable
    assert src.negatable
    assert GateEngine(pipeline).classify({"src/README.md"}).to_dict() == {"main": False, "src": False}


def test_needs_shorthand_bool_if_and_env_strings():
    pipeline = pipeline_from_dict({
        "env": {"RISC0_CRATE_VERSION": 2.3},
        "jobs": {
            "a": {"if": True, "env": {"RETRIES": 3, "DEV_MODE": True}},
            "b": {"needs": "a", "when": "always"},
        },
    })
    assert pipeline.env == {"RISC0_CRATE_VERSION": "2.3"}
    assert pipeline.job("a").env == {"RETRIES": "3", "DEV_MODE": "True"}
    assert pipeline.job("b").needs == ["a"]


@pytest.mark.parametrize(
    "data",
    [
        [],
        {"rules": {}},
        {"jobs": {"a": {"unknown": 1}}},
        {"jobs": {"a": {"steps": [{"name": "x"}]}}},
        {"rules": {"main": {"patterns": []}}, "jobs": {}},
        {"jobs": {"a": {"if": "main ||"}}},
        {"jobs": {"a": {"env": ["A=1"]}}},
    ],
)
def test_invalid_manifests(data):
    with pytest.raises(ConfigError):
        pipeline_from_dict(data)


def test_dict_round_trip_preserves_behaviour():
    original = wf(
        rule("main", "*", "crates/**"),
        rule("src", "crates/**/*.rs", "!crates/**/tests/**", negatable=True),
        job("rust", sh("test", "cargo test", cwd="crates"), when="main && !src", env={"A": 1}),
        job("publish", needs=["rust"], when="src", required=False),
        env={"FOUNDRY_VERSION": "v1.0.0"},
    )
    restored = pipeline_from_dict(pipeline_to_dict(original))
    assert restored.rules == original.rules
    assert restored.env == original.env
    for name in ("rust", "publish"):
        assert restored.job(name) == original.job(name)


def test_load_manifest_file(tmp_path):
    path = tmp_path / "pathgate.yml"
    path.write_text(
        "rules:\n"
        "  infra: ['infra/**']\n"
        "jobs:\n"
        "  infra:\n"
        "    if: infra\n"
        "    steps:\n"
        "      - {name: typecheck, run: npm run build, cwd: infra}\n"
    )
    pipeline = load_manifest(path)
    assert pipeline.job("infra").steps[0].cwd == "infra"


def test_malformed_yaml(tmp_path):
    path = tmp_path / "pathgate.yml"
    path.write_text("jobs: [unclosed\n")
    with pytest.raises(ConfigError, match="Malformed YAML"):
        load_manifest(path)


def test_invalid_manifest_names_the_file(tmp_path):
    path = tmp_path / "pathgate.yml"
    path.write_text("jobs: {a: {needs: 3}}\n")
    with pytest.raises(ConfigError, match="pathgate.yml"):
        load_manifest(path)


def test_missing_manifest(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_manifest(tmp_path / "nope.yml")
