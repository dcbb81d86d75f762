"""
The long-format table that every check in iamsubmit operates on.

A table is a float :obj:`pd.Series` named ``value`` on the index levels
``model, scenario, region, variable, unit, period``.
"""

from collections.abc import Iterable
from dataclasses import asdict, dataclass
from typing import Optional

import pandas as pd

from iamsubmit.utils import IDX, logger, yearcols


@dataclass(frozen=True)
class ScenarioPoint:
    """
    A single observation of a scenario timeseries.

    ``value`` is None when no value was recorded.
    """

    model: str
    scenario: str
    region: str
    variable: str
    unit: str
    period: int
    value: Optional[float] = None


def _normalize(df):
    df = df.rename(columns=str.lower).rename(columns={"year": "period"})
    missing = set(IDX) - set(df.columns)
    if "unit" in missing:
        df = df.assign(unit="")
        missing.discard("unit")
    if missing:
        raise ValueError(f"Table is missing the columns: {sorted(missing)}")

    df["unit"] = df["unit"].fillna("").astype(str)
    df["period"] = df["period"].astype(int)
    return df.set_index(IDX)["value"].astype(float)


def as_table(data):
    """
    Convert `data` into the long table format.

    Parameters
    ----------
    data : pd.Series, pd.DataFrame or iterable of ScenarioPoint
        a series already indexed by ``IDX``, a long frame with a ``value``
        column, a wide IAMC frame with one column per year or individual
        points

    Returns
    -------
    table : pd.Series
    """
    if isinstance(data, pd.Series):
        if list(data.index.names) != IDX:
            data = data.reorder_levels(IDX)
        return data.astype(float).rename("value")

    if isinstance(data, pd.DataFrame):
        df = data.reset_index() if any(data.index.names) else data.copy()
        lower = [str(c).lower() for c in df.columns]
        if "value" not in lower:
            years = yearcols(df)
            df = df.melt(
                id_vars=[c for c in df.columns if c not in years],
                value_vars=years,
                var_name="period",
                value_name="value",
            )
        return _normalize(df)

    if isinstance(data, Iterable):
        points = [asdict(p) for p in data]
        if not points:
            return pd.Series(
                [],
                index=pd.MultiIndex.from_tuples([], names=IDX),
                name="value",
                dtype=float,
            )
        return _normalize(pd.DataFrame(points))

    raise TypeError(f"Can not build a table from {type(data).__name__}")


def to_frame(table, wide=False):
    """
    Return `table` as a long frame, or as a wide IAMC frame when `wide`.
    """
    if wide:
        return table.unstack("period").reset_index()
    return table.reset_index()


def merge_duplicates(table, label="data"):
    """
    Resolve rows of `table` which share an index entry.

    Exact copies are dropped. Rows with the same index entry but different
    values are summed, with a warning listing them.

    Parameters
    ----------
    table : pd.Series
        long table, possibly with a non-unique index
    label : str, optional
        name of the data used in the warning
    """
    df = table.reset_index().drop_duplicates()
    table = df.set_index(IDX)["value"]

    conflicting = table.index.duplicated(keep=False)
    if conflicting.any():
        logger().warning(
            f"Summing {conflicting.sum()} rows with the same key but different "
            f"values in {label}:\n"
            + table[conflicting].reset_index().to_string(index=False, max_rows=100)
        )
        table = table.groupby(level=IDX, sort=False).sum(min_count=1)
    return table
