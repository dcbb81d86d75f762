"""
Generates a submission for a scenario database from model output by applying
a project-specific mapping and checking regional summations.
"""

import os
import re

import pandas as pd

from iamsubmit import utils
from iamsubmit._io import RunControl, read_inputs, write_data
from iamsubmit.check import check_summations
from iamsubmit.data import merge_duplicates
from iamsubmit.errors import ConfigurationError
from iamsubmit.mapping import apply_mapping, prepare_mapping, read_mapping, remove_plus
from iamsubmit.report import ReportDestination, ReportOptions, emit
from iamsubmit.rules import RuleSetCache, load_rule_set, restrict_rule_set


def _log(msg, *args, **kwargs):
    utils.logger().info(msg, *args, **kwargs)


def _warn(msg, *args, **kwargs):
    utils.logger().warning(msg, *args, **kwargs)


def _replace_level(table, level, func):
    index = table.index.to_frame(index=False)
    index[level] = index[level].map(func)
    return table.set_axis(pd.MultiIndex.from_frame(index))


def set_model_and_scenario(table, model=None, remove_from_scen=None, add_to_scen=None):
    """
    Rename the model and adapt scenario names.

    Parameters
    ----------
    table : pd.Series
        long table
    model : str, optional
        model name for all data
    remove_from_scen : str, optional
        regular expression removed from all scenario names
    add_to_scen : str, optional
        prefix for all scenario names, skipped if all names contain it already

    Raises
    ------
    ConfigurationError
        if changes to the scenario names lead to duplicates
    """
    before = sorted(table.index.unique("scenario"))
    if model is not None:
        table = _replace_level(table, "model", lambda m: model)
    if remove_from_scen:
        table = _replace_level(
            table, "scenario", lambda s: re.sub(remove_from_scen, "", s)
        )
    if add_to_scen:
        scenarios = table.index.unique("scenario")
        if all(add_to_scen in s for s in scenarios):
            _log(f"Prefix {add_to_scen} already found in all scenario names. Skipping.")
        else:
            table = _replace_level(table, "scenario", lambda s: add_to_scen + s)

    after = sorted(table.index.unique("scenario"))
    if len(after) < len(before):
        raise ConfigurationError(
            f"Changes to scenario names lead to duplicates: {before} -> {after}. "
            f"Adapt remove_from_scen='{remove_from_scen}' and "
            f"add_to_scen='{add_to_scen}'!"
        )
    if table.index.duplicated().any():
        raise ConfigurationError(
            f"Renaming the model to {model} leads to duplicated rows"
        )
    return table


def _check_price_variables(table):
    variables = table.index.unique("variable")
    moving = [v for v in variables if re.match(r"^Price\|.*\|Moving Avg$", v)]
    raw = [v for v in variables if re.match(r"^Price\|.*\|Rawdata$", v)]
    if moving and not raw:
        _warn(
            "Your data contains Price|*|Moving Avg but no Price|*|Rawdata "
            "variables, prices might have been reported by an outdated model version."
        )


def _filter_timesteps(table, timesteps):
    if timesteps is None or (utils.isstr(timesteps) and timesteps == "all"):
        return table
    return table.loc[table.index.get_level_values("period").isin(list(timesteps))]


def _clean_names(table):
    table = _replace_level(table, "variable", lambda v: remove_plus(v.strip()))
    table = _replace_level(table, "unit", lambda u: u.strip())
    # name cleaning may collapse variables
    return merge_duplicates(table, label="the cleaned variable names")


def run_summation_checks(
    table,
    templates,
    rel_tolerance,
    *,
    strict,
    cache=None,
    registry=None,
    output_directory=None,
    log_file=None,
    prefix="output",
    abs_tolerance=1e-9,
    report_all=False,
    skipna=True,
    generate_plots=False,
):
    """
    Check `table` against all summation `templates` and write reports.

    Every template writes to ``<prefix>_checkSummations.csv``, plots are
    named ``<prefix>_<variable>.png``. Templates without a variable in
    `table` are skipped.

    Returns
    -------
    passed : bool
        whether all templates passed
    mismatches : dict
        template name -> tuple of MismatchRecord
    """
    cache = cache if cache is not None else RuleSetCache()
    destination = ReportDestination(
        data_dump_file=f"{prefix}_checkSummations.csv",
        log_file=log_file,
        plot_prefix=f"{prefix}_",
        output_directory=output_directory,
    )

    passed, mismatches = True, {}
    variables = table.index.unique("variable")
    for n, template in enumerate(templates):
        rule_set = restrict_rule_set(
            load_rule_set(template, registry=registry, cache=cache), variables
        )
        if not rule_set.rules:
            _warn(f"No variables of summation template {template} found, skipping.")
            continue

        ok, records = check_summations(
            table,
            rule_set,
            rel_tolerance,
            strict=strict,
            abs_tolerance=abs_tolerance,
            report_all=report_all,
            skipna=skipna,
        )
        emit(
            records,
            destination,
            ReportOptions(
                # the first checked template starts a fresh dump file
                log_append=bool(mismatches),
                generate_plots=generate_plots,
                title=template if utils.isstr(template) else None,
            ),
        )
        passed &= ok
        mismatches[template if utils.isstr(template) else n] = records
    return passed, mismatches


def generate_submission(
    inputs,
    mapping,
    model=None,
    remove_from_scen=None,
    add_to_scen=None,
    summations=None,
    output_directory=None,
    log_file=None,
    output_filename="submission.xlsx",
    timesteps=None,
    rc=None,
    cache=None,
    registry=None,
):
    """
    Generate a submission from model output.

    Parameters
    ----------
    inputs : path, list of paths, pd.DataFrame or pd.Series
        mif files, directories with mif files or already read data
    mapping : path or pd.DataFrame
        mapping from model to template variables, see
        :mod:`iamsubmit.mapping`
    model : str, optional
        model name used in the submission
    remove_from_scen : str, optional
        regular expression removed from scenario names
    add_to_scen : str, optional
        prefix added to scenario names
    summations : list of str, optional
        names of summation templates to check the submission against
    output_directory : str, optional
        directory for the submission and all reports, by default that of the
        run control
    log_file : str, optional
        log file with summaries of the summation checks, relative to
        `output_directory`
    output_filename : str, optional
        name of the submission file (xlsx or mif); if None the submission is
        returned instead of written
    timesteps : list of int or "all", optional
        periods accepted in the submission, by default those of the run
        control
    rc : RunControl, str or dict, optional
        configuration, see ``iamsubmit.RC_DEFAULTS``; explicit arguments
        take precedence
    cache : RuleSetCache, optional
        cache for resolved summation templates
    registry : callable, optional
        summation template lookup

    Returns
    -------
    passed : bool
        whether all summation checks passed
    submission : pd.Series or None
        the submission, if `output_filename` is None
    """
    rc = rc if isinstance(rc, RunControl) else RunControl(rc)
    sconf = rc["summations"]
    model = model if model is not None else rc["model"]
    remove_from_scen = remove_from_scen or rc["scenario"]["remove"]
    add_to_scen = add_to_scen or rc["scenario"]["add"]
    summations = summations if summations is not None else sconf["templates"]
    timesteps = timesteps if timesteps is not None else rc["timesteps"]
    output_directory = output_directory or rc["output_directory"]
    log_file = log_file or rc["log_file"]

    if output_directory is not None:
        os.makedirs(output_directory, exist_ok=True)

    table = read_inputs(inputs)
    _check_price_variables(table)

    if isinstance(mapping, pd.DataFrame):
        mapping_name = "provided as data frame"
    else:
        mapping_name = str(mapping)
        mapping = read_mapping(mapping)
    mapping = prepare_mapping(mapping)

    _log(f"Generating submission file using mapping {mapping_name}.")
    if model is not None:
        _log(f"Correct model name to '{model}'.")
    _log(
        f"Adapt scenario names: '{add_to_scen}' will be prepended, "
        f"'{remove_from_scen}' will be removed."
    )
    table = set_model_and_scenario(table, model, remove_from_scen, add_to_scen)
    table = _clean_names(_filter_timesteps(table, timesteps))
    submission = apply_mapping(table, mapping)

    prefix = re.sub(
        r"\.[A-Za-z]+$", "", os.path.basename(output_filename or "output")
    )
    passed = True
    if summations:
        passed, _ = run_summation_checks(
            submission,
            summations,
            sconf["rel_tolerance"],
            strict=sconf["strict"],
            cache=cache,
            registry=registry,
            output_directory=output_directory,
            log_file=log_file,
            prefix=prefix,
            abs_tolerance=sconf["abs_tolerance"],
            report_all=sconf["report_all"],
            skipna=sconf["skipna"],
            generate_plots=sconf["generate_plots"],
        )

    if output_filename is None:
        return passed, submission

    fname = utils.resolve_path(output_filename, output_directory)
    write_data(submission, fname)
    return passed, None
