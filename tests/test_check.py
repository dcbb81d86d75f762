import numpy as np
import pandas as pd
import pytest

from iamsubmit.check import MismatchRecord, Status, check_summations
from iamsubmit.data import ScenarioPoint, as_table
from iamsubmit.errors import AmbiguousRowError, ConfigurationError
from iamsubmit.report import ReportDestination, emit
from iamsubmit.rules import SummationRule, SummationRuleSet, load_rule_set


_cols = ["scenario", "region", "variable", "unit", "period", "value"]


def _table(rows):
    return as_table(pd.DataFrame(rows, columns=_cols).assign(model="m"))


def _simple(world, *children, regions=("R1", "R2")):
    rows = [("S", "World", "X", "U", 2020, world)] if world is not None else []
    rows += [("S", r, "X", "U", 2020, v) for r, v in zip(regions, children)]
    return _table(rows)


_rules = load_rule_set(
    [{"parent": "World", "children": ["R1", "R2"], "variables": ["X"]}]
)

_rules3 = load_rule_set(
    [{"parent": "World", "children": ["R1", "R2", "R3"], "variables": ["X"]}]
)


def test_end_to_end(tmp_path):
    table = _simple(100, 40, 60)
    passed, mismatches = check_summations(table, _rules, 0.001, strict=True)
    assert passed
    assert mismatches == ()

    dest = ReportDestination(data_dump_file="dump.csv", output_directory=tmp_path)
    emit(mismatches, dest)
    obs = (tmp_path / "dump.csv").read_text()
    exp = "scenario,period,variable,unit,parentValue,childSum,absDiff,relDiff,status\n"
    assert obs == exp


def test_exact_match():
    table = _simple(100, 40, 60)
    passed, mismatches = check_summations(
        table, _rules, 0.001, strict=True, report_all=True
    )
    assert passed
    assert len(mismatches) == 1
    obs = mismatches[0]
    assert obs.status == Status.OK
    assert obs.rel_diff == 0
    assert obs.abs_diff == 0
    assert obs.child_sum == 100
    assert obs.parent_value == 100


def test_tolerance_boundary_inclusive():
    table = _simple(100, 40, 61)
    passed, mismatches = check_summations(table, _rules, 0.01, strict=True)
    assert passed
    assert mismatches == ()


def test_tolerance_boundary_exceeded():
    table = _simple(100, 40, 61.000001)
    passed, mismatches = check_summations(table, _rules, 0.01, strict=False)
    assert not passed
    assert [m.status for m in mismatches] == [Status.FAIL]
    assert mismatches[0].rel_diff > 0.01
    np.testing.assert_almost_equal(mismatches[0].abs_diff, 1.000001)


def test_zero_parent_zero_children():
    table = _simple(0, 0, 0)
    passed, mismatches = check_summations(
        table, _rules, 0.001, strict=True, report_all=True
    )
    assert passed
    assert mismatches[0].status == Status.OK
    assert mismatches[0].rel_diff == 0


def test_zero_parent_nonzero_children():
    table = _simple(0, 2, 3)
    passed, mismatches = check_summations(table, _rules, 0.001, strict=True)
    assert not passed
    assert mismatches[0].status == Status.FAIL
    assert mismatches[0].abs_diff == 5
    assert np.isfinite(mismatches[0].rel_diff)


def test_close_to_zero_within_abs_tolerance():
    table = _simple(0, 1e-12, 0)
    passed, mismatches = check_summations(
        table, _rules, 1e-6, strict=True, abs_tolerance=1e-9
    )
    assert passed
    assert mismatches == ()


@pytest.mark.parametrize("strict,exp", [(True, False), (False, True)])
def test_missing_child_coincidental_match(strict, exp):
    table = _simple(100, 40, 60)
    passed, mismatches = check_summations(table, _rules3, 0.001, strict=strict)
    assert passed is exp
    assert len(mismatches) == 1
    obs = mismatches[0]
    assert obs.status == Status.MISSING_CHILD
    assert obs.abs_diff == 0
    assert obs.child_sum == 100


def test_missing_child_with_difference_still_reported():
    table = _simple(100, 40, 50)
    passed, mismatches = check_summations(table, _rules3, 0.001, strict=False)
    assert passed
    assert mismatches[0].status == Status.MISSING_CHILD
    assert mismatches[0].abs_diff == 10
    np.testing.assert_almost_equal(mismatches[0].rel_diff, 0.1)


@pytest.mark.parametrize("strict", [True, False])
def test_all_children_missing(strict):
    table = _table(
        [
            ("S", "World", "X", "U", 2020, 100),
            ("S", "R9", "X", "U", 2020, 100),
        ]
    )
    passed, mismatches = check_summations(table, _rules, 0.001, strict=strict)
    assert not passed
    assert len(mismatches) == 1
    obs = mismatches[0]
    assert obs.status == Status.ALL_CHILDREN_MISSING
    assert obs.parent_value == 100
    assert np.isnan(obs.child_sum)


@pytest.mark.parametrize("strict", [True, False])
def test_missing_parent(strict):
    table = _simple(None, 40, 60)
    passed, mismatches = check_summations(table, _rules, 0.001, strict=strict)
    assert not passed
    obs = mismatches[0]
    assert obs.status == Status.MISSING_PARENT
    assert np.isnan(obs.parent_value)
    assert obs.child_sum == 100
    assert np.isnan(obs.abs_diff)


def test_duplicate_parent_row():
    table = _table(
        [
            ("S", "World", "X", "U", 2020, 100),
            ("S", "World", "X", "U", 2020, 101),
            ("S", "R1", "X", "U", 2020, 40),
            ("S", "R2", "X", "U", 2020, 60),
        ]
    )
    with pytest.raises(AmbiguousRowError):
        check_summations(table, _rules, 0.001, strict=False)


def test_parent_unit_duplication():
    table = _table(
        [
            ("S", "World", "X", "U", 2020, 100),
            ("S", "World", "X", "V", 2020, 100),
            ("S", "R1", "X", "U", 2020, 40),
            ("S", "R2", "X", "U", 2020, 60),
        ]
    )
    with pytest.raises(AmbiguousRowError, match="World"):
        check_summations(table, _rules, 0.001, strict=False)


def test_ambiguous_second_rule_yields_nothing():
    rules = load_rule_set(
        [
            {"parent": "World", "children": ["R1", "R2"], "variables": ["X"]},
            {"parent": "R1", "children": ["C1", "C2"], "variables": ["X"]},
        ]
    )
    table = _table(
        [
            ("S", "World", "X", "U", 2020, 100),
            ("S", "R1", "X", "U", 2020, 40),
            ("S", "R1", "X", "V", 2020, 40),
            ("S", "R2", "X", "U", 2020, 60),
        ]
    )
    with pytest.raises(AmbiguousRowError):
        check_summations(table, rules, 0.001, strict=False)


def test_empty_rule_before_table():
    rules = SummationRuleSet(
        name=None, rules=(SummationRule("World", (), ("X",)),)
    )
    # the table is never touched
    with pytest.raises(ConfigurationError):
        check_summations(None, rules, 0.001, strict=False)


def test_empty_rule_set():
    with pytest.raises(ConfigurationError):
        check_summations(_simple(100, 40, 60), [], 0.001, strict=False)


@pytest.mark.parametrize("tol", [None, -0.1, float("nan")])
def test_invalid_tolerance(tol):
    with pytest.raises(ConfigurationError):
        check_summations(_simple(100, 40, 60), _rules, tol, strict=False)


def test_unit_mismatch_between_parent_and_children():
    table = _table(
        [
            ("S", "World", "X", "U", 2020, 100),
            ("S", "R1", "X", "V", 2020, 40),
            ("S", "R2", "X", "V", 2020, 60),
        ]
    )
    passed, mismatches = check_summations(table, _rules, 0.001, strict=False)
    assert not passed
    obs = [(m.unit, m.status) for m in mismatches]
    exp = [("U", Status.ALL_CHILDREN_MISSING), ("V", Status.MISSING_PARENT)]
    assert obs == exp


def test_missing_values_skipped():
    table = _simple(100, 100, np.nan)
    passed, mismatches = check_summations(table, _rules, 0.001, strict=True)
    assert not passed
    assert mismatches[0].status == Status.MISSING_CHILD


def test_missing_values_propagated():
    table = _simple(100, 100, np.nan)
    passed, mismatches = check_summations(
        table, _rules, 0.001, strict=False, skipna=False
    )
    assert not passed
    assert mismatches[0].status == Status.FAIL
    assert np.isnan(mismatches[0].child_sum)


_multi = _table(
    [
        (scen, region, var, "U", period, value)
        for scen in ["S2", "S1"]
        for period in [2030, 2020]
        for var in ["Y", "X"]
        for region, value in [("World", 10), ("R1", 4), ("R2", 5), ("C1", 1)]
    ]
)


def test_ordering():
    rules = load_rule_set(
        [
            {"parent": "World", "children": ["R1", "R2"], "variables": ["X", "Y"]},
            {"parent": "R1", "children": ["C1", "C2"], "variables": ["X"]},
        ]
    )
    passed, mismatches = check_summations(_multi, rules, 0.001, strict=True)
    assert not passed
    obs = [(m.rule_index, m.scenario, m.period, m.variable) for m in mismatches]
    assert obs == sorted(obs)
    assert len(obs) == 2 * 2 * 2 + 2 * 2
    assert {m.status for m in mismatches if m.rule_index == 0} == {Status.FAIL}
    assert {m.status for m in mismatches if m.rule_index == 1} == {
        Status.MISSING_CHILD
    }
    assert all(m.region == "R1" for m in mismatches if m.rule_index == 1)


def test_determinism(tmp_path):
    rules = load_rule_set(
        [{"parent": "World", "children": ["R1", "R2"], "variables": ["X", "Y"]}]
    )
    for fname in ["a.csv", "b.csv"]:
        _, mismatches = check_summations(
            _multi.sample(frac=1, random_state=len(fname) + ord(fname[0])),
            rules,
            0.001,
            strict=True,
        )
        emit(mismatches, ReportDestination(tmp_path / fname))
    assert (tmp_path / "a.csv").read_bytes() == (tmp_path / "b.csv").read_bytes()


def test_records_are_immutable():
    _, mismatches = check_summations(_simple(100, 40, 50), _rules, 0.001, strict=True)
    assert isinstance(mismatches, tuple)
    assert isinstance(mismatches[0], MismatchRecord)
    with pytest.raises(AttributeError):
        mismatches[0].status = Status.OK


def test_template_name():
    table = _table(
        [("S", "World", "Population", "million", 2020, 100)]
        + [
            ("S", r, "Population", "million", 2020, 20)
            for r in ["R5ASIA", "R5LAM", "R5MAF", "R5OECD90+EU", "R5REF"]
        ]
    )
    passed, mismatches = check_summations(table, "R5", 0.001, strict=True)
    assert passed
    assert mismatches == ()


def test_scenario_points():
    points = [
        ScenarioPoint("m", "S", "World", "X", "U", 2020, 100.0),
        ScenarioPoint("m", "S", "R1", "X", "U", 2020, 40.0),
        ScenarioPoint("m", "S", "R2", "X", "U", 2020, 70.0),
    ]
    passed, mismatches = check_summations(points, _rules, 0.001, strict=True)
    assert not passed
    assert [m.status for m in mismatches] == [Status.FAIL]
    assert mismatches[0].child_sum == 110.0


def test_long_frame():
    df = pd.DataFrame(
        [("S", "World", "X", "U", 2020, 100), ("S", "R1", "X", "U", 2020, 100)],
        columns=_cols,
    ).assign(model="m")
    passed, mismatches = check_summations(df, _rules, 0.001, strict=True)
    assert not passed
    assert [m.status for m in mismatches] == [Status.MISSING_CHILD]


def test_unreadable_table():
    df = pd.DataFrame({"region": ["World"], "value": [1.0]})
    with pytest.raises(ConfigurationError, match="Can not read scenario data"):
        check_summations(df, _rules, 0.001, strict=True)
