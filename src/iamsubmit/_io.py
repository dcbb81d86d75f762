"""
Provides helper functions for reading and writing scenario data and
configuration files.

The default configuration values are provided in iamsubmit.RC_DEFAULTS.
"""

import os
from collections.abc import Mapping
from pathlib import Path

import pandas as pd
import yaml

from iamsubmit.data import as_table, merge_duplicates, to_frame
from iamsubmit.errors import MissingInputError
from iamsubmit.utils import iamc_idx, isstr, logger, yearcols


# the defaults of the summation checks are part of the configuration,
# check_summations itself requires them to be passed
RC_DEFAULTS = """
model: null
mapping: null
timesteps: [2005, 2010, 2015, 2020, 2025, 2030, 2035, 2040, 2045, 2050, 2055,
            2060, 2070, 2080, 2090, 2100]
output_directory: output
log_file: missing.log
scenario:
    remove: null
    add: null
summations:
    templates: []
    rel_tolerance: 0.001
    abs_tolerance: 1.0e-9
    strict: false
    skipna: true
    report_all: false
    generate_plots: false
"""


def _recursive_update(d, u):
    for k, v in u.items():
        if isinstance(v, Mapping):
            r = _recursive_update(d.get(k) or {}, v)
            d[k] = r
        else:
            d[k] = u[k]
    return d


def read_mif(f):
    """
    Read a semicolon-separated model intercomparison file.

    Parameters
    ----------
    f : string or Path
        path to a mif file

    Returns
    -------
    table : pd.Series
        long table, values given as ``N/A`` or empty are kept as NaN
    """
    df = pd.read_csv(f, sep=";", na_values=["N/A", "NA", ""], keep_default_na=True)
    # mifs usually end every line with a separator
    df = df.loc[:, [c for c in df.columns if not str(c).startswith("Unnamed")]]
    df.columns = [str(c).strip() for c in df.columns]
    return as_table(df)


def read_data(f):
    """
    Read scenario data from a mif, csv or xlsx file.
    """
    f = str(f)
    if f.endswith(".mif"):
        return read_mif(f)

    import pyam

    df = pyam.IamDataFrame(f)
    return as_table(df.data)


def read_inputs(inputs):
    """
    Read scenario data from files and directories.

    Parameters
    ----------
    inputs : path, list of paths, pd.DataFrame or pd.Series
        files, or directories from which all mif files are read; frames
        are converted with :func:`iamsubmit.data.as_table`

    Returns
    -------
    table : pd.Series
        rows repeated across files are kept once, different values for the
        same key are summed, see :func:`iamsubmit.data.merge_duplicates`

    Raises
    ------
    MissingInputError
        if an element is neither a file nor a directory, or a directory
        holds no mif files
    """
    if isinstance(inputs, (pd.DataFrame, pd.Series)):
        return as_table(inputs)
    if isstr(inputs) or isinstance(inputs, Path):
        inputs = [inputs]

    inputs = [Path(i) for i in inputs]
    invalid = [str(i) for i in inputs if not i.exists()]
    if invalid:
        raise MissingInputError(
            "Elements that are neither files nor directories: " + ", ".join(invalid)
        )

    files = []
    for i in inputs:
        if i.is_dir():
            mifs = sorted(i.glob("*.mif"))
            if not mifs:
                raise MissingInputError(f"No mif files found in folder {i}")
            files.extend(mifs)
        else:
            files.append(i)
    # keep the first occurrence of every file
    files = list(dict.fromkeys(files))

    logger().info(f"Reading in {', '.join(str(f) for f in files)}")
    tables = [read_data(f) for f in files]
    return merge_duplicates(pd.concat(tables), label="the input files")


def write_mif(table, f):
    """
    Write `table` as a semicolon-separated mif file.
    """
    df = to_frame(table, wide=True)
    df = df.rename(columns={c.lower(): c for c in iamc_idx})
    years = yearcols(df)
    df = df[iamc_idx + years]
    df.to_csv(f, sep=";", index=False, na_rep="")


def write_xlsx(table, f):
    """
    Write `table` to an IAMC-formatted excel file.
    """
    import pyam

    df = to_frame(table).rename(columns={"period": "year"})
    pyam.IamDataFrame(df.dropna(subset=["value"])).to_excel(f)


def write_data(table, f):
    """
    Write `table` as xlsx if `f` ends in .xlsx or .xls, otherwise as mif.
    """
    f = str(f)
    if f.endswith((".xlsx", ".xls")):
        write_xlsx(table, f)
    else:
        write_mif(table, f)
    logger().info(f"Output file written: {f}")


class RunControl(Mapping):
    """
    A thin wrapper around a Python Dictionary to support configuration of
    submission generation. Input can be provided as dictionaries or YAML
    files.
    """

    def __init__(self, rc=None, defaults=None):
        """
        Parameters
        ----------
        rc : string, file, dictionary, optional
            a path to a YAML file, a file handle for a YAML file, or a
            dictionary describing run control configuration
        defaults : string, file, dictionary, optional
            a path to a YAML file, a file handle for a YAML file, or a
            dictionary describing **default** run control configuration
        """
        rc = rc or {}
        defaults = defaults or RC_DEFAULTS

        rc = self._load_yaml(rc)
        defaults = self._load_yaml(defaults)
        self.store = _recursive_update(defaults, rc)

    def __getitem__(self, k):
        return self.store[k]

    def __iter__(self):
        return iter(self.store)

    def __len__(self):
        return len(self.store)

    def __repr__(self):
        return self.store.__repr__()

    def _get_path(self, key, fyaml, fname):
        if os.path.exists(fname):
            return fname

        _fname = os.path.join(os.path.dirname(fyaml), fname)
        if not os.path.exists(_fname):
            msg = "YAML key '{}' in {}: {} is not a valid relative or absolute path"
            raise OSError(msg.format(key, fyaml, fname))
        return _fname

    def _fill_relative_paths(self, fyaml, d):
        file_keys = [
            "mapping",
        ]
        for k in file_keys:
            if d.get(k):
                d[k] = self._get_path(k, fyaml, d[k])

    def _load_yaml(self, obj):
        check_rel_paths = False
        if hasattr(obj, "read"):  # it's a file
            obj = obj.read()
        if isinstance(obj, Path):
            obj = str(obj)
        if isstr(obj) and os.path.exists(obj):
            check_rel_paths = True
            fname = obj
            with open(fname) as f:
                obj = f.read()
        if not isinstance(obj, dict):
            obj = yaml.safe_load(obj) or {}
        if check_rel_paths:
            self._fill_relative_paths(fname, obj)
        return obj

    def recursive_update(self, k, d):
        """
        Recursively update a top-level option in the run control.

        Parameters
        ----------
        k : string
            the top-level key
        d : dictionary or similar
            the dictionary to use for updating
        """
        u = self.__getitem__(k)
        self.store[k] = _recursive_update(u, d)
