"""
Command line interface for the space-time outbreak scan

Examples:
  # Negative binomial hotspot scan with 999 replicates
  outbreak-scan --counts counts.csv --baselines baselines.csv --zones zones.json \\
      --model negbin --theta 2.5 --n-mcsim 999 --seed 1

  # Population-based Poisson scan, keeping only the best window
  outbreak-scan --counts counts.csv --population population.csv --zones zones.json \\
      --model pb-poisson --max-only --output results/scan.json
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np
import pandas as pd

from .config import ScanConfig
from .reporting import save_result
from .scan import scan_expectation_poisson, scan_negative_binomial, scan_population_poisson
from .validation import ScanInputError

logger = logging.getLogger(__name__)


def _read_matrix(path: str) -> np.ndarray:
    """Read a CSV with one row per time point (oldest first) and one column per location"""
    return pd.read_csv(path).to_numpy()


def _read_theta(value: str):
    try:
        return float(value)
    except ValueError:
        return _read_matrix(value)


def _read_zones(path: str) -> List[List[int]]:
    with open(path, "r") as f:
        return json.load(f)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="outbreak-scan",
        description="Space-time scan statistics for outbreak detection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Examples:", 1)[1] if __doc__ else None
    )

    parser.add_argument("--counts", required=True, help="CSV of observed counts")
    parser.add_argument("--baselines", help="CSV of expected counts")
    parser.add_argument(
        "--population",
        help="CSV of populations (pb-poisson only; one row, or one row per time point)"
    )
    parser.add_argument("--zones", required=True, help="JSON list of zones (1-based locations)")
    parser.add_argument(
        "--model",
        choices=["negbin", "eb-poisson", "pb-poisson"],
        default="negbin",
        help="Model family (default: negbin)"
    )
    parser.add_argument(
        "--type",
        dest="variant",
        choices=["hotspot", "emerging"],
        default="hotspot",
        help="Negative binomial score variant (default: hotspot)"
    )
    parser.add_argument(
        "--theta",
        default="1.0",
        help="Dispersion: a number, or a CSV matching the counts"
    )
    parser.add_argument("--n-mcsim", type=int, default=ScanConfig.DEFAULT_MCSIM,
                        help="Monte Carlo replicates")
    parser.add_argument("--seed", type=int, default=ScanConfig.RANDOM_SEED,
                        help="Random seed for the replicates")
    parser.add_argument("--workers", type=int, default=ScanConfig.WORKERS,
                        help="Parallel workers for the replicates")
    parser.add_argument("--max-duration", type=int, default=None,
                        help="Longest trailing window (default: all time points)")
    parser.add_argument("--max-only", action="store_true",
                        help="Keep only the most likely cluster's window")
    parser.add_argument("--output", type=str, help="Write the result as JSON to this path")
    parser.add_argument("--log-level", default=ScanConfig.LOG_LEVEL, help="Logging level")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    common = dict(
        n_mcsim=args.n_mcsim,
        max_only=args.max_only,
        max_duration=args.max_duration,
        seed=args.seed,
        workers=args.workers
    )

    try:
        counts = _read_matrix(args.counts)
        zones = _read_zones(args.zones)
        baselines = _read_matrix(args.baselines) if args.baselines else None

        if args.model == "pb-poisson":
            population = _read_matrix(args.population) if args.population else None
            if population is not None and population.shape[0] == 1:
                population = population[0]
            result = scan_population_poisson(
                counts, zones, baselines=baselines, population=population, **common
            )
        elif baselines is None:
            raise ScanInputError(f"--baselines is required for --model {args.model}")
        elif args.model == "eb-poisson":
            result = scan_expectation_poisson(counts, zones, baselines, **common)
        else:
            result = scan_negative_binomial(
                counts, zones, baselines,
                thetas=_read_theta(args.theta),
                variant=args.variant,
                **common
            )
    except ScanInputError as e:
        logger.error(f"Invalid input: {e}")
        print(f"error: {e}", file=sys.stderr)
        return 2

    print(json.dumps(result.summary(), indent=2, default=str))

    if args.output:
        save_result(result, Path(args.output))

    return 0


if __name__ == "__main__":
    sys.exit(main())
