from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import numpy as np

from .types import RawFiducial

# Worst-case ambiguity reported when no tags were decoded.
AMBIGUITY_SENTINEL = 1.0


@dataclass(frozen=True)
class FiducialSet:
    """AprilTags decoded from one sample, with ambiguity aggregates."""

    fiducials: tuple[RawFiducial, ...] = ()

    def __len__(self) -> int:
        return len(self.fiducials)

    def __iter__(self) -> Iterator[RawFiducial]:
        return iter(self.fiducials)

    @property
    def has_data(self) -> bool:
        return len(self.fiducials) > 0

    def ids(self) -> list[int]:
        return [f.id for f in self.fiducials]

    def _ambiguities(self) -> np.ndarray:
        return np.array([f.ambiguity for f in self.fiducials], dtype=np.float64)

    def min_ambiguity(self) -> float:
        if not self.has_data:
            return AMBIGUITY_SENTINEL
        return float(self._ambiguities().min())

    def max_ambiguity(self) -> float:
        if not self.has_data:
            return AMBIGUITY_SENTINEL
        return float(self._ambiguities().max())

    def avg_ambiguity(self) -> float:
        if not self.has_data:
            return AMBIGUITY_SENTINEL
        return float(self._ambiguities().mean())
