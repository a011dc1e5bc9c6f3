#!/usr/bin/env python3
"""Main entry point for the ledgerfolio CLI."""

import argparse
import sys

LEDGERFOLIO_BANNER = """
 ledgerfolio - portfolio performance from an activity ledger
"""

ESTIMATE_WARNING = (
    " \033[33m⚠  Figures depend entirely on the prices and exchange rates you\n"
    "    supply. Missing data is reported, never guessed.\033[0m"
)


def main(argv=None):
    """Parse CLI arguments and dispatch to the appropriate subcommand.

    Args:
        argv: Argument list to parse. Defaults to ``sys.argv[1:]``.

    Returns:
        int: Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="ledgerfolio",
        description="ledgerfolio - portfolio performance from an activity ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ledgerfolio report activities.json --prices prices.csv --rates rates.csv
  ledgerfolio report activities.xlsx --prices prices.csv --rates rates.csv -c CHF --type TWR
  ledgerfolio report activities.json --prices prices.csv --rates rates.csv --range ytd --json snapshot.json
        """,
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        help="Available commands",
    )

    from .report import register_subcommand as register_report
    from .version import register_subcommand as register_version

    register_report(subparsers)
    register_version(subparsers)

    args = parser.parse_args(argv)

    if args.command is None:
        print(LEDGERFOLIO_BANNER)
        parser.print_help()
        return 0

    print(LEDGERFOLIO_BANNER)
    print(ESTIMATE_WARNING)
    print()

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
