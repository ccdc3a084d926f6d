import pytest

from pathgate.errors import ConfigError
from pathgate.predicate import ALWAYS, And, Flag, Not, Or, all_of, any_of, as_expr, flag, parse

FLAGS = {"main": True, "docs": False, "infra": False, "rust-sources": True}


@pytest.mark.parametrize(
    "text, expected",
    [
        ("always", True),
        ("true", True),
        ("main", True),
        ("docs", False),
        ("main || docs", True),
        ("docs || infra", False),
        ("main && docs", False),
        ("main and not docs", True),
        ("!main", False),
        ("!(docs || infra)", True),
        ("docs || main && rust-sources", True),
        ("(docs || main) && !rust-sources", False),
        ("not not main", True),
    ],
)
def test_parse_and_evaluate(text, expected):
    assert parse(text).evaluate(FLAGS) is expected


def test_and_binds_tighter_than_or():
    assert parse("docs || main && infra") == Or((Flag("docs"), And((Flag("main"), Flag("infra")))))


def test_operators_build_trees():
    expr = flag("main") & ~flag("infra") | flag("docs")
    assert expr == Or((And((Flag("main"), Not(Flag("infra")))), Flag("docs")))
    assert expr.evaluate(FLAGS)


def test_referenced_flags():
    assert parse("main || (docs && !infra)").flags() == {"main", "docs", "infra"}
    assert ALWAYS.flags() == frozenset()


def test_str_round_trips_through_parse():
    for text in ["main || docs", "!(docs || infra) && main", "always", "!main"]:
        expr = parse(text)
        assert parse(str(expr)) == expr


def test_helpers():
    assert any_of("main", "docs") == Or((Flag("main"), Flag("docs")))
    assert all_of("main") == Flag("main")
    assert as_expr(None) is ALWAYS
    assert as_expr(True) is ALWAYS
    assert as_expr("main") == Flag("main")


@pytest.mark.parametrize("text", ["", "main ||", "|| main", "(main", "main)", "main | docs", "main docs", "main == 'true'"])
def test_invalid_predicates(text):
    with pytest.raises(ConfigError):
        parse(text)


def test_unknown_flag_at_evaluation():
    with pytest.raises(ConfigError):
        Flag("nope").evaluate(FLAGS)
