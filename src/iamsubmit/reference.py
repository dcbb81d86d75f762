import numpy as np
import pandas as pd
from pandas_indexing import isin

from iamsubmit import utils
from iamsubmit.check import EPSILON
from iamsubmit.errors import ConfigurationError


def check_fixed_on_reference(
    table,
    reference,
    start_year,
    rel_tolerance,
    *,
    abs_tolerance=1e-9,
    ref_scenario=None,
):
    """
    Check that scenarios follow their reference before `start_year`.

    Parameters
    ----------
    table : pd.Series
        long table indexed by ``iamsubmit.utils.IDX``
    reference : pd.Series or None
        long table of the reference run; if None, `ref_scenario` is taken
        from `table`
    start_year : int
        first period in which scenarios may deviate from the reference
    rel_tolerance : float
        accepted relative difference
    abs_tolerance : float, optional
        accepted absolute difference
    ref_scenario : str, optional
        scenario in `reference` (or `table`) to compare against; required if
        the reference holds more than one scenario

    Returns
    -------
    passed : bool
    mismatches : pd.DataFrame
        one row per differing value with the columns ``value``,
        ``reference``, ``abs_diff`` and ``rel_diff``
    """
    if reference is None:
        if ref_scenario is None:
            raise ConfigurationError("Either reference or ref_scenario is required")
        reference = table
    if ref_scenario is not None:
        reference = reference.loc[isin(scenario=ref_scenario)]

    ref_scenarios = reference.index.unique("scenario")
    if len(ref_scenarios) != 1:
        raise ConfigurationError(
            f"Reference must hold exactly one scenario, found: {list(ref_scenarios)}"
        )

    before = table.loc[lambda s: s.index.get_level_values("period") < start_year]
    before = before.loc[~before.index.get_level_values("scenario").isin(ref_scenarios)]
    reference = reference.droplevel("scenario").loc[
        lambda s: s.index.get_level_values("period") < start_year
    ]

    # only compare what is reported in both
    before = before.loc[before.index.droplevel("scenario").isin(reference.index)]
    ref = reference.reindex(before.index.droplevel("scenario")).to_numpy()
    value = before.to_numpy()

    abs_diff = np.abs(value - ref)
    rel_diff = abs_diff / np.maximum(np.abs(ref), EPSILON)
    within = (rel_diff <= rel_tolerance) | (abs_diff <= abs_tolerance)
    within |= np.isnan(value) & np.isnan(ref)

    mismatches = pd.DataFrame(
        {
            "value": value,
            "reference": ref,
            "abs_diff": abs_diff,
            "rel_diff": rel_diff,
        },
        index=before.index,
    ).loc[~within]

    if mismatches.empty:
        utils.logger().info(
            f"All scenarios match reference {ref_scenarios[0]} before {start_year}"
        )
        return True, mismatches

    utils.logger().warning(
        f"Scenarios deviate from reference {ref_scenarios[0]} before {start_year}:\n"
        + mismatches.reset_index().to_string(index=False, max_rows=100)
    )
    return False, mismatches
