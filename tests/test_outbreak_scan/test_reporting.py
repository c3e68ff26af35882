"""
Tests for Reporting
Cluster ranking, location scores and saved reports
"""

import json

import numpy as np
import pytest

from outbreak_scan import (
    scan_expectation_poisson,
    scan_negative_binomial,
    scan_population_poisson
)
from outbreak_scan.reporting import (
    generate_markdown_summary,
    result_to_dict,
    save_result,
    score_locations,
    top_clusters
)


@pytest.fixture
def outbreak_result(outbreak_grid):
    counts, baselines, thetas, zones = outbreak_grid
    return scan_negative_binomial(counts, zones, baselines, thetas, n_mcsim=19, seed=3), zones


class TestTopClusters:
    """Test secondary cluster ranking"""

    def test_non_overlapping(self, outbreak_result):
        """Clusters after the first share no locations with better ones"""
        result, zones = outbreak_result
        clusters = top_clusters(result, zones, k=4)

        assert len(clusters) == 4
        assert clusters["zone"].iloc[0] == result.mlc.zone_number
        assert clusters["score"].is_monotonic_decreasing

        seen = set()
        for locations in clusters["locations"]:
            assert not seen & set(locations)
            seen |= set(locations)

    def test_overlapping(self, outbreak_result):
        """Overlap allowed: one entry per zone, best first"""
        result, zones = outbreak_result
        clusters = top_clusters(result, zones, k=len(zones), overlapping=True)

        assert len(clusters) == len(zones)
        assert clusters["zone"].is_unique

    def test_pvalue_columns(self, outbreak_result):
        """Replicates give every cluster a P-value"""
        result, zones = outbreak_result
        clusters = top_clusters(result, zones, k=3)

        assert clusters["mc_pvalue"].iloc[0] == pytest.approx(result.mc_pvalue)
        assert clusters["mc_pvalue"].is_monotonic_increasing
        assert clusters["mc_pvalue"].between(1 / 20, 1).all()
        if result.gumbel_fit is not None:
            assert clusters["gumbel_pvalue"].iloc[0] == pytest.approx(result.gumbel_pvalue)

    def test_needs_full_table(self, outbreak_grid):
        counts, baselines, thetas, zones = outbreak_grid
        result = scan_negative_binomial(counts, zones, baselines, thetas, max_only=True)

        with pytest.raises(ValueError, match="max_only=False"):
            top_clusters(result, zones)


class TestScoreLocations:
    """Test location scores"""

    def test_outbreak_location_ranks_first(self, outbreak_result):
        result, zones = outbreak_result
        scores = score_locations(result, zones)

        assert len(scores) == 10
        assert scores["location"].iloc[0] == 3
        assert (scores["n_zones"] > 0).all()

    def test_locations_without_finite_zones(self):
        """Locations only in zones scoring negative infinity get no score"""
        result = scan_population_poisson(np.array([[5, 1]]), [[1], [2]])
        scores = score_locations(result, [[1], [2]]).set_index("location")

        assert scores.loc[1, "n_zones"] == 1
        assert np.isnan(scores.loc[2, "score"])


class TestExport:
    """Test JSON and markdown output"""

    def test_result_to_dict_is_json_ready(self, outbreak_result):
        result, _ = outbreak_result
        output = result_to_dict(result)
        restored = json.loads(json.dumps(output))

        assert restored["summary"]["mlc_zone"] == result.mlc.zone_number
        assert restored["mlc"]["observed"] == result.mlc.observed.tolist()
        assert len(restored["table"]) == len(result.table)
        assert len(restored["replicate_statistics"]) == 19
        assert restored["seed_entropy"] == "3"

    def test_infinite_scores_become_null(self):
        result = scan_population_poisson(np.array([[5, 1]]), [[2]])
        output = result_to_dict(result)

        assert output["mlc"]["score"] is None
        assert output["table"][0]["score"] is None
        json.dumps(output)

    def test_without_table(self, outbreak_result):
        result, _ = outbreak_result

        assert "table" not in result_to_dict(result, include_table=False)

    def test_markdown_summary(self, outbreak_result):
        result, _ = outbreak_result
        md = generate_markdown_summary(result)

        assert "# Space-Time Scan Report" in md
        assert "expectation-based negative binomial (hotspot)" in md
        assert f"**Zone**: {result.mlc.zone_number}" in md

    def test_markdown_without_replicates(self, null_grid):
        counts, baselines, zones = null_grid
        md = generate_markdown_summary(scan_expectation_poisson(counts, zones, baselines))

        assert "**Monte Carlo P-value**: n/a" in md

    def test_save_result(self, outbreak_result, tmp_path):
        result, _ = outbreak_result
        path = save_result(result, tmp_path / "reports" / "scan.json")

        assert path.exists()
        assert (tmp_path / "reports" / "scan_summary.md").exists()
        with open(path) as f:
            assert json.load(f)["summary"]["n_mcsim"] == 19
