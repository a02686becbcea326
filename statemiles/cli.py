"""
Command line entry point.

    statemiles run [--config statemiles.toml]
    statemiles describe data/us_states.geojson [--id-field STATE]
"""

import argparse
import logging
import sys
from typing import List, Optional

import pandas as pd

from statemiles import pipeline
from statemiles.config import load_settings
from statemiles.errors import StateMilesError
from statemiles.regions import RegionIndex

logger = logging.getLogger("statemiles")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="statemiles", description="Per-state mileage and reimbursement audit")
    parser.add_argument("-v", "--verbose", action="store_true", help="log per-leg detail")
    commands = parser.add_subparsers(dest="command", required=True)

    run_cmd = commands.add_parser("run", help="process trips and write the reports")
    run_cmd.add_argument("--config", help="TOML configuration file")

    describe_cmd = commands.add_parser("describe", help="list the fields and regions of a boundary dataset")
    describe_cmd.add_argument("regions_file")
    describe_cmd.add_argument("--id-field", default="STATE")
    return parser


def _describe(regions_file: str, id_field: str) -> None:
    names = RegionIndex.attribute_names(regions_file)
    logger.info(f"Boundary dataset fields: {', '.join(names)}")
    region_index = RegionIndex.from_file(regions_file, id_field=id_field)
    with pd.option_context("display.max_rows", None, "display.width", 120):
        print(region_index.describe().to_string(index=False))


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )

    try:
        if args.command == "describe":
            _describe(args.regions_file, args.id_field)
        else:
            pipeline.run(load_settings(args.config))
    except (StateMilesError, FileNotFoundError) as e:
        logger.error(f"Processing failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
