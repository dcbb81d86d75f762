import pandas as pd
from pandas_indexing import isin

from iamsubmit.errors import ConfigurationError


GROUP_KEYS = ("scenario", "period", "variable", "unit")


def aggregate_children(table, rule, group_keys=GROUP_KEYS, skipna=True):
    """
    Sum the values of the child regions of `rule`.

    Children which are absent for a key contribute nothing to its sum, but the
    number of children actually present is reported next to it, so that a
    sum over an incomplete set of regions can be told apart from a complete
    one.

    Parameters
    ----------
    table : pd.Series
        long table indexed by ``iamsubmit.utils.IDX``
    rule : SummationRule
    group_keys : sequence of str, optional
        index levels to sum over regions for
    skipna : bool, optional
        if True, rows without a value are dropped first and count as absent
        children; otherwise they count as present and turn the sum into NaN

    Returns
    -------
    pd.DataFrame
        indexed by `group_keys`, with the columns ``value`` (sum),
        ``present`` (number of distinct child regions found) and ``expected``
        (number of child regions of the rule)
    """
    if not rule.children:
        raise ConfigurationError(
            f"Summation rule for {rule.parent} has no child regions"
        )

    group_keys = list(group_keys)
    children = table.loc[
        isin(region=list(rule.children), variable=list(rule.variables))
    ]
    if skipna:
        children = children.dropna()

    grouped = children.groupby(level=group_keys)
    value = grouped.sum()
    if not skipna:
        value = value.where(~children.isnull().groupby(level=group_keys).any())

    regions = pd.Series(
        children.index.get_level_values("region"), index=children.index
    )
    present = regions.groupby(level=group_keys).nunique()

    return pd.DataFrame(
        {"value": value, "present": present, "expected": len(rule.children)},
        index=value.index,
    )
