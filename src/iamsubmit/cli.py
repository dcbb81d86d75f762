"""
Submission CLI for iamsubmit.
"""

import argparse
import sys

import iamsubmit
from iamsubmit.utils import logger


def read_args(argv=None):
    # construct parser
    descr = """
    Map model output onto a reporting template and check regional summations.

    Example usage:

    iamsubmit output/REMIND_generic.mif --mapping mapping.csv --summations R5
    """
    parser = argparse.ArgumentParser(
        description=descr, formatter_class=argparse.RawDescriptionHelpFormatter
    )
    inputs = "Mif files or directories holding mif files."
    parser.add_argument("inputs", nargs="+", help=inputs)
    mapping = "Semicolon-separated mapping from model to template variables."
    parser.add_argument("--mapping", help=mapping, default=None)
    summations = "Names of summation templates to check, e.g. R5 or R10."
    parser.add_argument("--summations", nargs="*", help=summations, default=None)
    rc = "Runcontrol YAML file."
    parser.add_argument("--rc", help=rc, default=None)
    model = "Model name used in the submission."
    parser.add_argument("--model", help=model, default=None)
    remove = "Regular expression to remove from scenario names."
    parser.add_argument("--remove_from_scen", help=remove, default=None)
    add = "Prefix to add to scenario names."
    parser.add_argument("--add_to_scen", help=add, default=None)
    output_path = "Directory for the submission and all reports."
    parser.add_argument("--output_path", help=output_path, default=None)
    output_file = "File name of the submission (xlsx or mif)."
    parser.add_argument("--output_file", help=output_file, default="submission.xlsx")
    plots = "Plot failing summation checks."
    parser.add_argument("--plots", help=plots, action="store_true")
    strict = "Also fail summation checks if some child regions are missing."
    parser.add_argument("--strict", help=strict, action="store_true")

    args = parser.parse_args(argv)
    return args


def submit(args):
    rc = iamsubmit.RunControl(rc=args.rc)
    update = {}
    if args.plots:
        update["generate_plots"] = True
    if args.strict:
        update["strict"] = True
    rc.recursive_update("summations", update)

    mapping = args.mapping or rc["mapping"]
    if mapping is None:
        raise ValueError("A mapping is required, use --mapping or the runcontrol")

    passed, _ = iamsubmit.generate_submission(
        args.inputs,
        mapping,
        model=args.model,
        remove_from_scen=args.remove_from_scen,
        add_to_scen=args.add_to_scen,
        summations=args.summations,
        output_directory=args.output_path,
        output_filename=args.output_file,
        rc=rc,
    )
    if not passed:
        logger().warning("Summation checks failed, see the summation reports")
    return passed


def main(argv=None):
    # parse cli
    args = read_args(argv)

    # run program
    passed = submit(args)
    sys.exit(0 if passed else 1)


if __name__ == "__main__":
    main()
