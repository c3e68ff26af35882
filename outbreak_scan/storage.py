"""
Result Store
Keeps window scores under one of three policies chosen up front
"""

from typing import Optional, Sequence

import numpy as np
import pandas as pd

from .models import ScoreBatch, ScoreRecord, StoreMode, WindowBatch


class ResultStore:
    """
    Index-addressed storage for window scores

    - STORE_EVERYTHING: one slot per window, addressed by storage index
    - MAX_ONLY: a single slot holding the running maximum
    - REPLICATE_MAX: one running-maximum slot per Monte Carlo replicate; the
      active slot is chosen with ``select_slot``

    A maximum slot is replaced only by a strictly larger score, so ties keep
    the window enumerated first. An empty slot accepts any score, including
    negative infinity, so a maximum is always attached to a real window.
    """

    def __init__(self, mode: StoreMode, n_slots: int = 1, aux_columns: Sequence[str] = ()):
        """
        Args:
            mode: Storage policy
            n_slots: Number of windows (STORE_EVERYTHING) or replicates
                (REPLICATE_MAX); ignored for MAX_ONLY
            aux_columns: Names of the model's auxiliary outputs
        """
        self.mode = StoreMode(mode)
        if self.mode is StoreMode.MAX_ONLY:
            n_slots = 1

        self.aux_columns = tuple(aux_columns)
        self.zones = np.zeros(n_slots, dtype=np.int64)
        self.durations = np.zeros(n_slots, dtype=np.int64)
        self.scores = np.full(n_slots, -np.inf)
        self.auxiliaries = {name: np.full(n_slots, np.nan) for name in self.aux_columns}
        self.filled = np.zeros(n_slots, dtype=bool)
        self._slot = 0

    @classmethod
    def for_windows(cls, n_windows: int, store_everything: bool, aux_columns: Sequence[str] = ()):
        """Store for the observed pass"""
        mode = StoreMode.STORE_EVERYTHING if store_everything else StoreMode.MAX_ONLY
        return cls(mode, n_windows, aux_columns)

    @classmethod
    def for_replicates(cls, n_replicates: int, aux_columns: Sequence[str] = ()):
        """Store with one maximum slot per replicate"""
        return cls(StoreMode.REPLICATE_MAX, n_replicates, aux_columns)

    def __len__(self) -> int:
        return len(self.scores)

    def select_slot(self, slot: int):
        """Direct maxima to the given replicate's slot"""
        if self.mode is not StoreMode.REPLICATE_MAX:
            raise ValueError("select_slot is only meaningful for REPLICATE_MAX stores")
        self._slot = slot

    def record(self, index: int, record: ScoreRecord):
        """
        Record one window's score

        Args:
            index: Storage index of the window (used by STORE_EVERYTHING)
            record: Score record with 1-based zone number
        """
        slot = index if self.mode is StoreMode.STORE_EVERYTHING else self._slot

        if self.mode is not StoreMode.STORE_EVERYTHING:
            if self.filled[slot] and not record.score > self.scores[slot]:
                return

        self.zones[slot] = record.zone
        self.durations[slot] = record.duration
        self.scores[slot] = record.score
        for name in self.aux_columns:
            self.auxiliaries[name][slot] = record.auxiliaries.get(name, np.nan)
        self.filled[slot] = True

    def record_batch(self, batch: WindowBatch, scored: ScoreBatch):
        """Record all windows of a zone batch"""
        if self.mode is StoreMode.STORE_EVERYTHING:
            slots = batch.storage_indices
            self.zones[slots] = batch.zone_index + 1
            self.durations[slots] = batch.durations
            self.scores[slots] = scored.scores
            for name in self.aux_columns:
                self.auxiliaries[name][slots] = scored.auxiliaries[name]
            self.filled[slots] = True
            return

        best = int(np.argmax(scored.scores))
        self.record(
            int(batch.storage_indices[best]),
            ScoreRecord(
                zone=batch.zone_index + 1,
                duration=int(batch.durations[best]),
                score=float(scored.scores[best]),
                auxiliaries={name: float(scored.auxiliaries[name][best])
                             for name in self.aux_columns}
            )
        )

    def get(self, slot: int = 0) -> Optional[ScoreRecord]:
        """Score record held in a slot, or None if nothing was stored there"""
        if not self.filled[slot]:
            return None
        return ScoreRecord(
            zone=int(self.zones[slot]),
            duration=int(self.durations[slot]),
            score=float(self.scores[slot]),
            auxiliaries={name: float(values[slot]) for name, values in self.auxiliaries.items()}
        )

    def best(self) -> Optional[ScoreRecord]:
        """Highest scoring stored record; earliest slot wins ties"""
        if not self.filled.any():
            return None
        candidates = np.where(self.filled, self.scores, -np.inf)
        ranked = np.flatnonzero(self.filled)
        return self.get(int(ranked[np.argmax(candidates[ranked])]))

    def to_frame(self, sort: bool = True) -> pd.DataFrame:
        """
        Stored records as a table

        Args:
            sort: Order rows by descending score (stable, so enumeration
                order breaks ties)

        Returns:
            DataFrame with columns zone, duration, score and the auxiliaries
        """
        frame = pd.DataFrame({
            "zone": self.zones,
            "duration": self.durations,
            "score": self.scores,
            **self.auxiliaries
        })

        if sort:
            frame = frame.sort_values("score", ascending=False, kind="mergesort")
            frame = frame.reset_index(drop=True)

        return frame
