"""
Checks that regional values add up to the values of their parent regions.
"""

from dataclasses import dataclass
from enum import Enum

import numpy as np
import pandas as pd
from pandas_indexing import isin

from iamsubmit import utils
from iamsubmit.aggregate import GROUP_KEYS, aggregate_children
from iamsubmit.data import as_table
from iamsubmit.errors import AmbiguousRowError, ConfigurationError
from iamsubmit.rules import load_rule_set


# guards the relative difference against division by zero
EPSILON = 1e-12


class Status(str, Enum):
    OK = "OK"
    FAIL = "FAIL"
    MISSING_PARENT = "MISSING_PARENT"
    MISSING_CHILD = "MISSING_CHILD"
    ALL_CHILDREN_MISSING = "ALL_CHILDREN_MISSING"

    def __str__(self):
        return self.value


FAILING = frozenset(
    [Status.FAIL, Status.MISSING_PARENT, Status.ALL_CHILDREN_MISSING]
)


@dataclass(frozen=True)
class MismatchRecord:
    scenario: str
    period: int
    variable: str
    unit: str
    parent_value: float
    child_sum: float
    abs_diff: float
    rel_diff: float
    status: Status
    region: str
    rule_index: int


def _log(msg, *args, **kwargs):
    utils.logger().info(msg, *args, **kwargs)


def _warn(msg, *args, **kwargs):
    utils.logger().warning(msg, *args, **kwargs)


def failing_statuses(strict):
    """
    Statuses which fail a check, `strict` adds MISSING_CHILD.
    """
    return FAILING | {Status.MISSING_CHILD} if strict else FAILING


def _parent_rows(table, rule, skipna):
    parents = table.loc[isin(region=rule.parent, variable=list(rule.variables))]
    if skipna:
        parents = parents.dropna()
    parents = parents.droplevel(["model", "region"]).reorder_levels(GROUP_KEYS)

    duplicated = parents.index.droplevel("unit").duplicated(keep=False)
    if duplicated.any():
        raise AmbiguousRowError(
            f"More than one value for parent region {rule.parent} found for\n"
            + parents[duplicated].reset_index().to_string(index=False, max_rows=100)
        )
    return parents


def _classify(rule, rule_index, parents, children, rel_tolerance, abs_tolerance):
    if children.empty:
        cells = parents.index.sort_values()
        children = pd.DataFrame({"value": np.nan, "present": 0}, index=cells)
    elif parents.empty:
        cells = children.index.sort_values()
    else:
        cells = parents.index.union(children.index).sort_values()
    if cells.empty:
        return []
    children = children.reindex(cells)

    has_parent = cells.isin(parents.index)
    parent = parents.reindex(cells).to_numpy(dtype=float)
    child_sum = children["value"].to_numpy(dtype=float)
    present = children["present"].fillna(0).to_numpy()
    expected = len(rule.children)

    abs_diff = np.abs(parent - child_sum)
    rel_diff = abs_diff / np.maximum(np.abs(parent), EPSILON)
    within = (rel_diff <= rel_tolerance) | (abs_diff <= abs_tolerance)

    status = np.select(
        [~has_parent, present == 0, present < expected, within],
        [
            Status.MISSING_PARENT.value,
            Status.ALL_CHILDREN_MISSING.value,
            Status.MISSING_CHILD.value,
            Status.OK.value,
        ],
        default=Status.FAIL.value,
    )

    return [
        MismatchRecord(
            scenario=scenario,
            period=int(period),
            variable=variable,
            unit=unit,
            parent_value=float(parent[i]),
            child_sum=float(child_sum[i]),
            abs_diff=float(abs_diff[i]),
            rel_diff=float(rel_diff[i]),
            status=Status(status[i]),
            region=rule.parent,
            rule_index=rule_index,
        )
        for i, (scenario, period, variable, unit) in enumerate(cells)
    ]


def check_summations(
    table,
    rule_set,
    rel_tolerance,
    *,
    strict,
    abs_tolerance=1e-9,
    report_all=False,
    skipna=True,
):
    """
    Check that the child regions of each summation rule add up to their
    parent region.

    Every (scenario, period, variable, unit) combination which exists for
    the parent or any child of a rule is classified as

    - MISSING_PARENT, if only child regions report it
    - ALL_CHILDREN_MISSING, if only the parent region reports it
    - MISSING_CHILD, if only some of the child regions report it; the
      differences are still computed
    - OK, if the relative difference to the parent value is at most
      `rel_tolerance`, or the absolute difference at most `abs_tolerance`
    - FAIL otherwise

    Parameters
    ----------
    table : pd.Series, pd.DataFrame or iterable of ScenarioPoint
        data for a single model, anything :func:`iamsubmit.data.as_table`
        accepts
    rule_set : SummationRuleSet, str or iterable of rules
        anything :func:`iamsubmit.rules.load_rule_set` accepts
    rel_tolerance : float
        accepted relative difference between parent value and child sum
    strict : bool
        whether MISSING_CHILD fails the check
    abs_tolerance : float, optional
        accepted absolute difference, relevant for parent values at or close
        to zero
    report_all : bool, optional
        return records for OK combinations, too
    skipna : bool, optional
        treat rows without a value as absent

    Returns
    -------
    passed : bool
        False if any FAIL, MISSING_PARENT or ALL_CHILDREN_MISSING (or with
        `strict` MISSING_CHILD) combination was found
    mismatches : tuple of MismatchRecord
        ordered by rule, scenario, period, variable and unit

    Raises
    ------
    ConfigurationError
        if the rule set is empty or malformed, the tolerances are invalid or
        `table` can not be read
    AmbiguousRowError
        if a parent region has several rows for one scenario, period and
        variable
    """
    if rel_tolerance is None or not rel_tolerance >= 0:
        raise ConfigurationError(f"Invalid relative tolerance: {rel_tolerance}")
    if abs_tolerance is None or not abs_tolerance >= 0:
        raise ConfigurationError(f"Invalid absolute tolerance: {abs_tolerance}")
    rule_set = load_rule_set(rule_set)
    try:
        table = as_table(table)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Can not read scenario data: {e}") from e

    # resolve all parents first, so that ambiguous data yields no results
    parents = [_parent_rows(table, rule, skipna) for rule in rule_set.rules]

    records = []
    for i, rule in enumerate(rule_set.rules):
        children = aggregate_children(table, rule, skipna=skipna)
        records.extend(
            _classify(rule, i, parents[i], children, rel_tolerance, abs_tolerance)
        )

    failing = failing_statuses(strict)
    passed = not any(r.status in failing for r in records)

    counts = {}
    for r in records:
        counts[r.status] = counts.get(r.status, 0) + 1
    summary = ", ".join(f"{n} {s}" for s, n in sorted(counts.items()))
    name = rule_set.name or "explicit rules"
    if passed:
        _log(f"Summation checks for {name} passed ({summary or 'no data'})")
    else:
        _warn(f"Summation checks for {name} failed ({summary})")

    if not report_all:
        records = [r for r in records if r.status != Status.OK]
    return passed, tuple(records)
