"""
Reporting helpers for scan results
Cluster ranking, location scores and JSON / markdown export
"""

import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd
from scipy import stats

from .models import ScanResult
from .significance import mc_pvalue

logger = logging.getLogger(__name__)


def _require_full_table(result: ScanResult):
    if len(result.table) != result.n_zones * result.max_duration:
        raise ValueError(
            "this summary needs the score of every window; rerun with max_only=False"
        )


def top_clusters(
    result: ScanResult,
    zones: List[Iterable[int]],
    k: int = 5,
    overlapping: bool = False
) -> pd.DataFrame:
    """
    The k highest scoring clusters, one window per zone

    Args:
        result: Scan result computed with the full table
        zones: The zones passed to the scan (1-based location numbers)
        k: Number of clusters to return
        overlapping: Allow clusters sharing locations with a better cluster

    Returns:
        DataFrame sorted by score with the zone, its locations, duration,
        score, model auxiliaries and P-values when replicates exist
    """
    _require_full_table(result)
    zone_sets = [set(int(location) for location in zone) for zone in zones]

    best_per_zone = result.table.drop_duplicates("zone", keep="first")

    chosen = []
    used: set = set()
    for _, row in best_per_zone.iterrows():
        if len(chosen) == k:
            break
        members = zone_sets[int(row["zone"]) - 1]
        if not overlapping and members & used:
            continue
        used |= members
        entry = row.to_dict()
        entry["zone"] = int(entry["zone"])
        entry["duration"] = int(entry["duration"])
        entry["locations"] = sorted(members)
        chosen.append(entry)

    clusters = pd.DataFrame(chosen)
    if clusters.empty:
        return clusters

    if result.n_mcsim > 0:
        replicates = result.replicate_statistics["score"]
        clusters["mc_pvalue"] = [mc_pvalue(score, replicates) for score in clusters["score"]]
        if result.gumbel_fit is not None:
            clusters["gumbel_pvalue"] = stats.gumbel_r.sf(
                clusters["score"],
                loc=result.gumbel_fit.location,
                scale=result.gumbel_fit.scale
            )

    return clusters


def score_locations(result: ScanResult, zones: List[Iterable[int]]) -> pd.DataFrame:
    """
    Score each location by the zones it belongs to

    A location's score is the mean, over zones containing it, of the zone's
    best window score divided by the zone's size. Zones whose best score is
    not finite are left out.

    Returns:
        DataFrame with columns location, score and n_zones, best first
    """
    _require_full_table(result)

    best_scores = result.table.groupby("zone")["score"].max()
    totals = np.zeros(result.n_locations)
    counts = np.zeros(result.n_locations, dtype=int)

    for number, zone in enumerate(zones, start=1):
        score = best_scores.get(number, -np.inf)
        if not np.isfinite(score):
            continue
        members = np.asarray(list(zone), dtype=int) - 1
        totals[members] += score / len(members)
        counts[members] += 1

    with np.errstate(invalid="ignore", divide="ignore"):
        location_scores = np.where(counts > 0, totals / np.maximum(counts, 1), np.nan)

    frame = pd.DataFrame({
        "location": np.arange(1, result.n_locations + 1),
        "score": location_scores,
        "n_zones": counts
    })
    return frame.sort_values("score", ascending=False, kind="mergesort").reset_index(drop=True)


def _finite_or_none(value: Optional[float]):
    if value is None or not np.isfinite(value):
        return None
    return float(value)


def result_to_dict(result: ScanResult, include_table: bool = True) -> dict:
    """Convert a result to a dictionary for JSON serialization"""
    mlc = result.mlc
    output = {
        "summary": {
            **result.summary(),
            "scan_statistic": _finite_or_none(mlc.score)
        },
        "mlc": {
            "zone_number": mlc.zone_number,
            "locations": list(mlc.locations),
            "duration": mlc.duration,
            "score": _finite_or_none(mlc.score),
            "relative_risks": {k: _finite_or_none(v) for k, v in mlc.relative_risks.items()},
            "observed": mlc.observed.tolist(),
            "baselines": mlc.baselines.tolist(),
            "dispersions": mlc.dispersions.tolist() if mlc.dispersions is not None else None
        },
        "gumbel_fit": {
            "location": result.gumbel_fit.location,
            "scale": result.gumbel_fit.scale,
            "method": result.gumbel_fit.method
        } if result.gumbel_fit else None,
        "seed_entropy": str(result.seed_entropy) if result.seed_entropy is not None else None
    }

    if include_table:
        frames = {"table": result.table, "replicate_statistics": result.replicate_statistics}
        for key, frame in frames.items():
            cleaned = frame.replace([np.inf, -np.inf], np.nan).astype(object)
            output[key] = cleaned.where(cleaned.notna(), None).to_dict(orient="records")

    return output


def generate_markdown_summary(result: ScanResult) -> str:
    """Generate markdown summary"""
    mlc = result.mlc

    def fmt(value):
        return "n/a" if value is None else f"{value:.4g}"

    variant = f" ({result.variant.value})" if result.variant else ""
    md = f"""# Space-Time Scan Report

**Model**: {result.scan_type.value} {result.distribution.value}{variant}
**Zones scanned**: {result.n_zones}
**Locations**: {result.n_locations}
**Maximum duration**: {result.max_duration}
**Monte Carlo replicates**: {result.n_mcsim}

## Most Likely Cluster

- **Zone**: {mlc.zone_number}
- **Locations**: {', '.join(str(location) for location in mlc.locations)}
- **Duration**: {mlc.duration}
- **Score**: {mlc.score:.4f}
- **Monte Carlo P-value**: {fmt(result.mc_pvalue)}
- **Gumbel P-value**: {fmt(result.gumbel_pvalue)}
"""
    for name, value in mlc.relative_risks.items():
        md += f"- **{name}**: {value:.4f}\n"

    return md


def save_result(result: ScanResult, output_path: Path, include_table: bool = True) -> Path:
    """
    Save a result as JSON with a markdown summary beside it

    Args:
        result: Scan result
        output_path: Path of the JSON file
        include_table: Write the window and replicate tables too

    Returns:
        Path of the JSON file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w") as f:
        json.dump(result_to_dict(result, include_table), f, indent=2, default=str)
    logger.info(f"Result saved to: {output_path}")

    md_path = output_path.with_name(f"{output_path.stem}_summary.md")
    with open(md_path, "w") as f:
        f.write(generate_markdown_summary(result))
    logger.info(f"Summary saved to: {md_path}")

    return output_path
