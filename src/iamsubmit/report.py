"""
Writes the outcome of summation checks: a CSV dump of all mismatches, optional
comparison plots per variable and a summary block in a log file.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

import pandas as pd

from iamsubmit import utils
from iamsubmit.utils import Pathy


# dump column -> MismatchRecord attribute
DUMP_COLUMNS = {
    "scenario": "scenario",
    "period": "period",
    "variable": "variable",
    "unit": "unit",
    "parentValue": "parent_value",
    "childSum": "child_sum",
    "absDiff": "abs_diff",
    "relDiff": "rel_diff",
    "status": "status",
}


@dataclass(frozen=True)
class ReportDestination:
    """
    Where to write reports to.

    Relative paths are interpreted relative to `output_directory`, if given.
    """

    data_dump_file: Pathy
    log_file: Optional[Pathy] = None
    plot_prefix: str = ""
    output_directory: Optional[Pathy] = None

    @property
    def dump_path(self):
        return utils.resolve_path(self.data_dump_file, self.output_directory)

    @property
    def log_path(self):
        return utils.resolve_path(self.log_file, self.output_directory)

    def plot_path(self, variable, fmt, suffix=""):
        name = utils.sanitize_filename(variable)
        fname = f"{self.plot_prefix}{name}{suffix}.{fmt}"
        return utils.resolve_path(fname, self.output_directory)


@dataclass(frozen=True)
class ReportOptions:
    log_append: bool = False
    generate_plots: bool = False
    plot_format: str = "png"
    title: Optional[str] = None


def mismatches_to_frame(mismatches):
    """
    Return `mismatches` as a frame with the dump columns, in order.
    """
    rows = [asdict(m) for m in mismatches]
    df = pd.DataFrame(rows, columns=list(DUMP_COLUMNS.values()))
    df["status"] = [str(s) for s in df["status"]]
    return df.rename(columns={v: k for k, v in DUMP_COLUMNS.items()})


def write_dump(mismatches, path, append=False):
    """
    Write `mismatches` to the CSV file `path`.

    With `append` rows are added to an existing file without repeating the
    header.
    """
    path = Path(path)
    df = mismatches_to_frame(mismatches)
    if append and path.exists():
        utils.pd_write(df, path, index=False, mode="a", header=False)
    else:
        utils.pd_write(df, path, index=False)
    return path


def plot_mismatches(mismatches, destination, fmt="png", title=None):
    """
    Plot parent values against child sums, one figure per variable.

    Returns
    -------
    list of Path
        the image files written
    """
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    paths = []
    if not mismatches:
        return paths

    df = pd.DataFrame([asdict(m) for m in mismatches])
    for variable, vdf in df.groupby("variable", sort=True):
        fig, ax = plt.subplots()
        for (scenario, region), sdf in vdf.groupby(["scenario", "region"], sort=True):
            sdf = sdf.sort_values("period")
            line = ax.plot(
                sdf["period"],
                sdf["parent_value"],
                marker="o",
                label=f"{scenario}: {region}",
            )[0]
            ax.plot(
                sdf["period"],
                sdf["child_sum"],
                marker="x",
                linestyle="--",
                color=line.get_color(),
                label=f"{scenario}: sum of regions",
            )
        unit = ", ".join(sorted(vdf["unit"].unique()))
        ax.set_title(f"{title}: {variable}" if title else variable)
        ax.set_xlabel("period")
        ax.set_ylabel(unit)
        ax.legend(fontsize="small")
        fig.tight_layout()

        # variables may coincide once sanitized, number them in order
        path = destination.plot_path(variable, fmt)
        n = 1
        while path in paths:
            n += 1
            path = destination.plot_path(variable, fmt, suffix=f"_{n}")
        try:
            fig.savefig(path)
        finally:
            plt.close(fig)
        paths.append(path)
    return paths


def summarize(mismatches, title=None):
    """
    Return a human-readable summary of `mismatches`.
    """
    lines = [f"### Summation checks{f' for {title}' if title else ''}"]
    lines.append(f"# {datetime.now().isoformat(timespec='seconds')}")
    if not mismatches:
        lines.append("No mismatches found.")
        return "\n".join(lines) + "\n"

    df = pd.DataFrame(
        {
            "rule": [m.rule_index for m in mismatches],
            "region": [m.region for m in mismatches],
            "status": [str(m.status) for m in mismatches],
        }
    )
    lines.append(f"{len(df)} mismatches found.")
    lines.append("Per status:")
    for status, n in df.groupby("status").size().items():
        lines.append(f"  {status}: {n}")
    lines.append("Per rule:")
    per_rule = df.groupby(["rule", "region", "status"]).size()
    for (rule, region, status), n in per_rule.items():
        lines.append(f"  rule {rule}: {region}, {status}: {n}")
    return "\n".join(lines) + "\n"


def append_summary(mismatches, path, title=None):
    """
    Append a summary of `mismatches` to the log file at `path`.

    Failures are reported as a warning only, the log is not authoritative.
    """
    try:
        with open(path, "a") as f:
            f.write(summarize(mismatches, title=title) + "\n")
    except OSError as e:
        utils.logger().warning(f"Could not write summation summary to {path}: {e}")
        return False
    return True


def emit(mismatches, destination, options=None):
    """
    Write the reports for `mismatches`.

    Parameters
    ----------
    mismatches : sequence of MismatchRecord
    destination : ReportDestination
    options : ReportOptions, optional

    Returns
    -------
    list of Path
        the dump file followed by any plots
    """
    options = options or ReportOptions()
    mismatches = list(mismatches)

    if destination.output_directory is not None:
        Path(destination.output_directory).mkdir(parents=True, exist_ok=True)

    dump = write_dump(mismatches, destination.dump_path, append=options.log_append)
    utils.logger().info(f"Wrote {len(mismatches)} summation mismatches to {dump}")
    paths = [dump]

    if options.generate_plots and mismatches:
        paths.extend(
            plot_mismatches(
                mismatches, destination, fmt=options.plot_format, title=options.title
            )
        )

    if destination.log_path is not None:
        append_summary(mismatches, destination.log_path, title=options.title)

    return paths
