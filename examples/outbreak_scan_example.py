"""
Example Usage of the Space-Time Outbreak Scan
Injects an outbreak into synthetic negative binomial counts and scans for it
"""

import logging
import sys
from pathlib import Path

import numpy as np

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from outbreak_scan import scan_negative_binomial, top_clusters
from outbreak_scan.config import ScanConfig
from outbreak_scan.reporting import save_result


def nearest_neighbour_zones(coords: np.ndarray, k: int):
    """
    Zones made of each location and its nearest neighbours

    For every location, the first 1..k nearest locations (itself included)
    form k nested zones; duplicates are dropped.
    """
    distances = np.linalg.norm(coords[:, None, :] - coords[None, :, :], axis=-1)
    order = np.argsort(distances, axis=1)[:, :k] + 1

    seen = set()
    zones = []
    for row in order:
        for size in range(1, k + 1):
            zone = tuple(sorted(row[:size].tolist()))
            if zone not in seen:
                seen.add(zone)
                zones.append(list(zone))
    return zones


def generate_synthetic_counts(
    n_locations: int = 30,
    n_times: int = 8,
    outbreak_zone=None,
    outbreak_duration: int = 3,
    relative_risk: float = 2.0,
    seed: int = 1
):
    """
    Generate negative binomial counts with an optional injected outbreak

    Args:
        n_locations: Number of locations
        n_times: Number of time points
        outbreak_zone: 1-based locations with elevated risk
        outbreak_duration: Number of most recent time points affected
        relative_risk: Multiplier of the expected count inside the outbreak
        seed: Random seed

    Returns:
        Tuple of (counts, baselines, thetas)
    """
    print("Generating synthetic counts...")
    rng = np.random.default_rng(seed)

    baselines = rng.exponential(5.0, size=(n_times, n_locations)) + 0.5
    thetas = rng.uniform(0.5, 3.0, size=(n_times, n_locations))
    means = baselines.copy()

    if outbreak_zone:
        columns = np.asarray(outbreak_zone) - 1
        rows = np.arange(n_times - outbreak_duration, n_times)
        means[np.ix_(rows, columns)] *= relative_risk

    counts = rng.negative_binomial(thetas, thetas / (thetas + means))
    return counts, baselines, thetas


def main():
    """Run the example"""
    logging.basicConfig(level=ScanConfig.LOG_LEVEL)

    print("=" * 80)
    print("SPACE-TIME OUTBREAK SCAN - EXAMPLE")
    print("=" * 80)
    print()

    rng = np.random.default_rng(7)
    coords = rng.normal(size=(30, 2))
    zones = nearest_neighbour_zones(coords, k=6)
    outbreak_zone = zones[12]

    print(f"Step 1: Built {len(zones)} zones over {len(coords)} locations")
    print(f"  Outbreak injected in locations {outbreak_zone}")

    counts, baselines, thetas = generate_synthetic_counts(
        n_locations=len(coords),
        outbreak_zone=outbreak_zone,
        outbreak_duration=3,
        relative_risk=3.0
    )

    print("\nStep 2: Running the negative binomial hotspot scan...")
    result = scan_negative_binomial(
        counts=counts,
        zones=zones,
        baselines=baselines,
        thetas=thetas,
        variant="hotspot",
        n_mcsim=99,
        seed=2024
    )

    mlc = result.mlc
    print("\n" + "=" * 80)
    print("RESULTS SUMMARY")
    print("=" * 80)
    print(f"Most likely cluster: zone {mlc.zone_number}, locations {mlc.locations}")
    print(f"Duration: {mlc.duration}")
    print(f"Score: {mlc.score:.3f} (relative risk {mlc.relative_risks['relrisk']:.2f})")
    print(f"Monte Carlo P-value: {result.mc_pvalue:.3f}")
    if result.gumbel_pvalue is not None:
        print(f"Gumbel P-value: {result.gumbel_pvalue:.4f}")

    print("\nTop non-overlapping clusters:")
    print(top_clusters(result, zones, k=5).to_string(index=False))

    output = save_result(result, Path("./outbreak_scan_output/example.json"))
    print(f"\nReport saved to: {output}")


if __name__ == "__main__":
    main()
