import pytest

from pathgate.errors import ConfigError
from pathgate.globs import ROOT_FILES, compile_glob


@pytest.mark.parametrize(
    "pattern, path, expected",
    [
        ("documentation/**", "documentation/readme.md", True),
        ("documentation/**", "documentation/a/b/c.md", True),
        ("documentation/**", "documentation", False),
        ("documentation/**", "docs/documentation/readme.md", False),
        ("crates/*.toml", "crates/Cargo.toml", True),
        ("crates/*.toml", "crates/foo/Cargo.toml", False),
        ("**/Cargo.toml", "Cargo.toml", True),
        ("**/Cargo.toml", "crates/foo/Cargo.toml", True),
        ("crates/**/lib.rs", "crates/lib.rs", True),
        ("crates/**/lib.rs", "crates/foo/src/lib.rs", True),
        ("compose.yml", "compose.yml", True),
        ("compose.yml", "infra/compose.yml", False),
        ("file?.txt", "file1.txt", True),
        ("file?.txt", "file10.txt", False),
        ("src/[ab].py", "src/a.py", True),
        ("src/[!ab].py", "src/c.py", True),
        ("src/[!ab].py", "src/a.py", False),
        ("{crates,contracts}/**", "contracts/src/Market.sol", True),
        ("{crates,contracts}/**", "examples/x.rs", False),
        ("*.{md,txt}", "README.md", True),
        ("./infra/**", "infra/index.ts", True),
    ],
)
def test_glob_matching(pattern, path, expected):
    assert compile_glob(pattern).match(path) is expected


def test_root_files_pattern_matches_only_root():
    g = compile_glob(ROOT_FILES)
    assert g.match("README.md")
    assert g.match(".env.broker-template")
    assert not g.match("crates/foo/src/lib.rs")
    assert not g.match("documentation/readme.md")


def test_match_is_anchored_not_substring():
    g = compile_glob("infra/**")
    assert not g.match("old/infra/main.ts")
    assert not compile_glob("lib.rs").match("src/lib.rs")


def test_negated_pattern_is_flagged():
    g = compile_glob("!**/*.md")
    assert g.negated
    assert g.match("docs/a.md")


def test_negation_rejected_when_not_allowed():
    with pytest.raises(ConfigError):
        compile_glob("!**/*.md", allow_negation=False)


@pytest.mark.parametrize(
    "pattern",
    ["", "   ", "/abs/**", "src/[abc", "src/{a,b", "src/a}", "src**/x", "a//b", "!", "trailing\\"],
)
def test_malformed_patterns_raise_config_error(pattern):
    with pytest.raises(ConfigError):
        compile_glob(pattern)
