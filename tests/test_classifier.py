import io

import pytest

from pathgate import ROOT_FILES, Classifier, FlagSet, classify, rule
from pathgate.classifier import normalize_path, read_changeset
from pathgate.errors import ChangesetError, ConfigError


RULES = [
    rule("docker", "dockerfiles/**", "compose.yml"),
    rule("main", ROOT_FILES, "crates/**", "contracts/**"),
    rule("docs", ROOT_FILES, "crates/**", "contracts/**", "documentation/**"),
    rule("infra", "infra/**"),
]


def test_documentation_change_only_sets_docs():
    flags = classify({"documentation/readme.md"}, RULES)
    assert flags == {"docker": False, "main": False, "docs": True, "infra": False}


def test_root_file_sets_every_root_rule():
    flags = classify({"README.md"}, RULES)
    assert flags["main"] and flags["docs"]
    assert not flags["docker"]


def test_nested_crate_path_is_not_a_root_file():
    flags = classify({"crates/foo/src/lib.rs"}, [rule("root", ROOT_FILES)])
    assert flags == {"root": False}


def test_empty_changeset_is_all_false():
    flags = classify(set(), RULES)
    assert set(flags) == {"docker", "main", "docs", "infra"}
    assert not any(flags.values())


def test_one_path_can_set_several_flags():
    flags = classify({"crates/boundless-market/src/lib.rs"}, RULES)
    assert flags.active() == ["main", "docs"]


def test_classify_is_deterministic():
    paths = ["infra/a.ts", "compose.yml", "crates/x/lib.rs", "documentation/x.md"]
    first = classify(paths, RULES)
    second = classify(list(reversed(paths)), list(reversed(RULES)))
    assert first.to_dict() == second.to_dict()
    assert first.files("main") == second.files("main")


def test_exclusion_wins_over_inclusion():
    rules = [rule("src", "crates/**", "!crates/**/*.md", negatable=True)]
    assert classify({"crates/foo/README.md"}, rules) == {"src": False}
    assert classify({"crates/foo/README.md", "crates/foo/lib.rs"}, rules) == {"src": True}


def test_matching_files_are_recorded():
    flags = classify({"infra/b.ts", "infra/a.ts", "README.md"}, RULES)
    assert flags.files("infra") == ("infra/a.ts", "infra/b.ts")
    assert flags.count("infra") == 2
    assert flags.files("docker") == ()


def test_paths_are_normalized():
    flags = classify({"./infra\\stack.ts"}, RULES)
    assert flags["infra"]
    assert normalize_path("  ./crates/a.rs ") == "crates/a.rs"


@pytest.mark.parametrize("bad", ["", "   ", "/etc/passwd", None])
def test_invalid_paths_raise_changeset_error(bad):
    with pytest.raises(ChangesetError):
        classify([bad], RULES)


def test_malformed_glob_fails_at_rule_load():
    with pytest.raises(ConfigError):
        Classifier([rule("bad", "crates/[oops")])


def test_exclusion_requires_negatable_rule():
    with pytest.raises(ConfigError):
        Classifier([rule("src", "crates/**", "!crates/**/*.md")])


def test_rule_needs_an_inclusion_pattern():
    with pytest.raises(ConfigError):
        Classifier([rule("only-excludes", "!docs/**", negatable=True)])


@pytest.mark.parametrize("name", ["not", "and", "or", "always", "true", "src.core", "1st", "with space"])
def test_rule_names_must_be_usable_in_predicates(name):
    with pytest.raises(ConfigError, match="cannot be used in predicates"):
        Classifier([rule(name, "src/**")])


def test_hyphenated_rule_names_are_accepted():
    assert Classifier([rule("rust-sources", "crates/**"), rule("_private", "x/**")]).names == ["rust-sources", "_private"]


def test_duplicate_rule_names_rejected():
    with pytest.raises(ConfigError):
        Classifier([rule("main", "crates/**"), rule("main", "contracts/**")])


def test_flagset_from_stored_flags():
    fs = FlagSet({"main": True, "docs": False})
    assert fs.active() == ["main"]
    assert fs.files("main") == ()


def test_read_changeset_from_file(tmp_path):
    f = tmp_path / "changes.txt"
    f.write_text("crates/a.rs\n\n./README.md\ncrates/a.rs\n")
    assert read_changeset(f) == {"crates/a.rs", "README.md"}


def test_read_changeset_from_stdin(monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO("infra/a.ts\n"))
    assert read_changeset("-") == {"infra/a.ts"}


def test_unreadable_changeset_is_a_hard_failure(tmp_path):
    with pytest.raises(ChangesetError):
        read_changeset(tmp_path / "missing.txt")
