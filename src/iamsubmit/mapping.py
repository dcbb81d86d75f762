"""
Translation of model variables and units into the variables and units of a
reporting template.

A mapping is a table with the columns

- ``piam_variable``: model variable with its unit, e.g.
  ``FE|Transport (EJ/yr)``
- ``Variable``: template variable with its unit, e.g.
  ``Final Energy|Transportation (EJ/yr)``
- ``piam_factor`` (or ``factor``), optional: factor to multiply the model
  value by, no factor means 1

Model variables may map to several template variables and vice versa; values
mapped to the same template variable are summed.
"""

import re

import numpy as np
import pandas as pd

from iamsubmit import utils
from iamsubmit.errors import ConfigurationError
from iamsubmit.utils import IDX


_unit_re = re.compile(r"^(.*?)\s*\(([^()]*)\)\s*$")


def unitsplit(names):
    """
    Split names like ``Final Energy (EJ/yr)`` into variable and unit.

    Parameters
    ----------
    names : str or iterable of str

    Returns
    -------
    pd.DataFrame
        with the columns ``variable`` and ``unit``; the unit is empty if the
        name has no trailing parenthesis
    """
    if utils.isstr(names):
        names = [names]
    variables, units = [], []
    for name in names:
        name = "" if pd.isnull(name) else str(name).strip()
        match = _unit_re.match(name)
        if match:
            variables.append(match.group(1).strip())
            units.append(match.group(2).strip())
        else:
            variables.append(name)
            units.append("")
    return pd.DataFrame({"variable": variables, "unit": units})


def remove_plus(names):
    """
    Remove summation markers like ``|+|`` or ``|++|`` from variable names.
    """
    if utils.isstr(names):
        return re.sub(r"\|\++\|", "|", names)
    return pd.Series(names, dtype=object).str.replace(r"\|\++\|", "|", regex=True)


def read_mapping(path):
    """
    Read a semicolon-separated mapping file.
    """
    mapping = utils.pd_read(path, sep=";", comment="#", dtype=str)
    if mapping.empty:
        raise ConfigurationError(f"Mapping {path} is empty")
    return mapping


def prepare_mapping(mapping):
    """
    Split units off the variable columns of `mapping`.

    Returns
    -------
    pd.DataFrame
        with the columns ``piam_variable``, ``piam_unit``, ``Variable``,
        ``Unit`` and ``factor``
    """
    mapping = mapping.rename(columns={"piam_factor": "factor"})
    missing = {"piam_variable", "Variable"} - set(mapping.columns)
    if missing:
        raise ConfigurationError(f"Mapping is missing the columns: {sorted(missing)}")

    mapping = mapping.dropna(subset=["piam_variable", "Variable"])
    if "factor" not in mapping:
        mapping = mapping.assign(factor=np.nan)

    piam = unitsplit(mapping["piam_variable"])
    target = unitsplit(mapping["Variable"])
    return pd.DataFrame(
        {
            "piam_variable": remove_plus(piam["variable"]).to_numpy(),
            "piam_unit": piam["unit"].to_numpy(),
            "Variable": target["variable"].to_numpy(),
            "Unit": target["unit"].to_numpy(),
            "factor": pd.to_numeric(mapping["factor"], errors="raise").to_numpy(),
        }
    ).drop_duplicates()


def apply_mapping(table, mapping):
    """
    Translate `table` into template variables.

    Parameters
    ----------
    table : pd.Series
        long table indexed by ``iamsubmit.utils.IDX``
    mapping : pd.DataFrame
        as returned by :func:`prepare_mapping`

    Returns
    -------
    pd.Series
        long table with template variables and units; values for model
        variables without a mapping are dropped
    """
    df = table.reset_index()
    merged = df.merge(
        mapping,
        left_on=["variable", "unit"],
        right_on=["piam_variable", "piam_unit"],
        how="inner",
    )
    unmapped = df.loc[
        ~df.set_index(["variable", "unit"]).index.isin(
            mapping.set_index(["piam_variable", "piam_unit"]).index
        ),
        ["variable", "unit"],
    ].drop_duplicates()
    if not unmapped.empty:
        utils.logger().info(
            f"{len(unmapped)} variables are not part of the mapping and are dropped"
        )

    value = merged["value"] * merged["factor"].fillna(1.0)
    merged = (
        merged.drop(columns=["variable", "unit", "value"])
        .rename(columns={"Variable": "variable", "Unit": "unit"})
        .assign(value=value)
    )
    # several model variables may map onto the same template variable
    return merged.groupby(IDX)["value"].sum(min_count=1)
