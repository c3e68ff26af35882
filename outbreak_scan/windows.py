"""
Window Enumerator
Walks every (zone, duration) window and feeds its aggregates to a scorer
"""

from typing import TYPE_CHECKING, Iterator, List, Sequence

import numpy as np

from .aggregation import AggregatedPass
from .models import WindowBatch

if TYPE_CHECKING:
    from .scorers import ScanModel
    from .storage import ResultStore


class WindowEnumerator:
    """
    Enumerates windows zone by zone, durations innermost

    Storage indices are assigned in enumeration order,
    ``zone_index * max_duration + (duration - 1)``, so the observed pass and
    every replicate pass address the same slot for the same window.
    """

    def __init__(self, zones: Sequence[np.ndarray], max_duration: int, n_locations: int):
        """
        Args:
            zones: 0-based column indices of each zone
            max_duration: Longest trailing window, in time points
            n_locations: Number of locations in the grid
        """
        self.zones: List[np.ndarray] = [np.asarray(zone, dtype=np.intp) for zone in zones]
        self.max_duration = int(max_duration)
        self.n_locations = int(n_locations)
        self._durations = np.arange(1, self.max_duration + 1)
        self._covers_all = [len(np.unique(zone)) == self.n_locations for zone in self.zones]

    @property
    def n_zones(self) -> int:
        return len(self.zones)

    @property
    def n_windows(self) -> int:
        return self.n_zones * self.max_duration

    def storage_index(self, zone_index: int, duration: int) -> int:
        return zone_index * self.max_duration + duration - 1

    def batches(self, data: AggregatedPass) -> Iterator[WindowBatch]:
        """
        Yield one WindowBatch per zone with the aggregates of all its durations

        Args:
            data: Aggregated structures of the current pass

        Yields:
            WindowBatch for zones 0..n_zones-1, in order
        """
        if data.max_duration != self.max_duration:
            raise ValueError(
                f"pass aggregated over {data.max_duration} time points, "
                f"enumerator expects {self.max_duration}"
            )

        for zone_index, columns in enumerate(self.zones):
            start = zone_index * self.max_duration
            yield WindowBatch(
                zone_index=zone_index,
                columns=columns,
                durations=self._durations,
                storage_indices=np.arange(start, start + self.max_duration),
                counts=data.counts.zone_totals(columns),
                baselines=data.baselines.zone_totals(columns),
                totals=data.counts.row_totals,
                covers_all=self._covers_all[zone_index],
                extras={name: cumulative.zone_totals(columns)
                        for name, cumulative in data.extras.items()}
            )

    def scan(self, model: "ScanModel", counts: np.ndarray, store: "ResultStore") -> "ResultStore":
        """
        Run one full pass: aggregate, score every window, record into the store

        Args:
            model: Scorer for the analysis' model family
            counts: Most-recent-first count matrix for this pass
            store: Result store receiving the window scores

        Returns:
            The same store, filled
        """
        data = model.aggregate(counts, self.max_duration)
        for batch in self.batches(data):
            store.record_batch(batch, model.score(batch, data))
        return store
