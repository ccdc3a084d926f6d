import pytest

from pathgate import job
from pathgate.dag import ancestors, build_dag, topo_levels
from pathgate.errors import ConfigError


def test_levels_group_independent_jobs():
    jobs = [
        job("lint"),
        job("test", needs=["lint"]),
        job("docs"),
        job("package", needs=["test", "docs"]),
    ]
    adj, indeg = build_dag(jobs)
    assert adj["lint"] == {"test"}
    assert indeg["package"] == 2
    assert topo_levels(adj, indeg) == [["docs", "lint"], ["test"], ["package"]]


def test_duplicate_need_counts_once():
    adj, indeg = build_dag([job("a"), job("b", needs=["a", "a"])])
    assert indeg["b"] == 1
    assert topo_levels(adj, indeg) == [["a"], ["b"]]


def test_missing_dependency():
    with pytest.raises(ConfigError, match="missing job 'nope'"):
        build_dag([job("a", needs=["nope"])])


def test_duplicate_job_names():
    with pytest.raises(ConfigError, match="Duplicate job names"):
        build_dag([job("a"), job("a")])


def test_cycle_is_rejected():
    adj, indeg = build_dag([job("a", needs=["b"]), job("b", needs=["a"]), job("c")])
    with pytest.raises(ConfigError, match="cycle"):
        topo_levels(adj, indeg)


def test_self_loop_is_a_cycle():
    adj, indeg = build_dag([job("a", needs=["a"])])
    with pytest.raises(ConfigError):
        topo_levels(adj, indeg)


def test_ancestors():
    jobs = [job("a"), job("b", needs=["a"]), job("c", needs=["b"]), job("d")]
    assert ancestors(jobs, ["c"]) == {"a", "b"}
    assert ancestors(jobs, ["d"]) == set()


def test_cycle_error_names_the_path():
    adj, indeg = build_dag([job("root"), job("a", needs=["root", "c"]), job("b", needs=["a"]), job("c", needs=["b"])])
    with pytest.raises(ConfigError, match="a -> b -> c -> a"):
        topo_levels(adj, indeg)
