import logging
import os
import re
from pathlib import Path
from typing import TypeAlias

import pandas as pd


Pathy: TypeAlias = str | Path

_logger = None

# Index for iamc
iamc_idx = ["Model", "Scenario", "Region", "Variable", "Unit"]

# long table index
IDX = ["model", "scenario", "region", "variable", "unit", "period"]

# paths to data dependencies
here = os.path.join(os.path.dirname(os.path.realpath(__file__)))
summations_path = lambda f: os.path.join(here, "summations", f)


def logger():
    """
    Global Logger used for iamsubmit.
    """
    global _logger
    if _logger is None:
        logging.basicConfig()
        _logger = logging.getLogger()
        _logger.setLevel("INFO")
    return _logger


def isstr(x):
    """
    Returns True if x is a string.
    """
    return isinstance(x, str)


def isnum(s):
    """
    Returns True if s is a number.
    """
    try:
        float(s)
        return True
    except (TypeError, ValueError):
        return False


def yearcols(df):
    """
    Returns all columns in df that can be read as a year.
    """
    return [c for c in df.columns if isnum(c)]


def pd_read(f, str_cols=False, *args, **kwargs):
    """
    Try to read a file with pandas, supports CSV and XLSX.

    Parameters
    ----------
    f : string or Path
        the file to read in
    str_cols : bool, optional
        turn all columns into strings (numerical column names are sometimes
        read in as numerical dtypes)
    args, kwargs : sent directly to the Pandas read function

    Returns
    -------
    df : pd.DataFrame
    """
    f = str(f)
    if f.endswith("csv"):
        df = pd.read_csv(f, *args, **kwargs)
    else:
        df = pd.read_excel(f, *args, **kwargs)

    if str_cols:
        df.columns = [str(x) for x in df.columns]

    return df


def pd_write(df, f, *args, **kwargs):
    """
    Try to write a file with pandas, supports CSV and XLSX.
    """
    # guess whether to use index, unless we're told otherwise
    index = kwargs.pop("index", isinstance(df.index, pd.MultiIndex))

    f = str(f)
    if f.endswith("csv"):
        df.to_csv(f, index=index, *args, **kwargs)
    else:
        with pd.ExcelWriter(f) as writer:
            df.to_excel(writer, index=index, *args, **kwargs)


def sanitize_filename(name):
    """
    Replace every character that is unsafe in a file name with `_`.
    """
    return re.sub(r"[^A-Za-z0-9._-]", "_", str(name))


def resolve_path(path, directory=None):
    if path is None:
        return None
    path = Path(path)
    if directory is not None and not path.is_absolute():
        path = Path(directory) / path
    return path
