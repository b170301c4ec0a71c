"""Fixed-capacity sliding windows for trailing averages.

Two concrete types: `VectorWindow` holds 3-vectors, `ScalarWindow` holds
floats. Pushing into a full window evicts the oldest entry. The mean is
recomputed from the whole window on every push, so it never accumulates
floating-point drift. An empty window reports a zero mean.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, List

import numpy as np


class VectorWindow:
    """FIFO of 3-vectors with a running mean."""

    def __init__(self, capacity: int):
        if int(capacity) <= 0:
            raise ValueError(f"capacity must be > 0, got {capacity}")
        self.capacity = int(capacity)
        self._items: Deque[np.ndarray] = deque(maxlen=self.capacity)
        self._mean = np.zeros(3, dtype=np.float64)

    def __len__(self) -> int:
        return len(self._items)

    @property
    def full(self) -> bool:
        return len(self._items) == self.capacity

    def push(self, value) -> None:
        v = np.asarray(value, dtype=np.float64).reshape(3).copy()
        self._items.append(v)
        self._mean = np.mean(np.stack(self._items), axis=0)

    def mean(self) -> np.ndarray:
        """Mean of the window; zero vector when empty."""
        return self._mean.copy()

    def items(self) -> List[np.ndarray]:
        return [v.copy() for v in self._items]

    def clear(self) -> None:
        self._items.clear()
        self._mean = np.zeros(3, dtype=np.float64)


class ScalarWindow:
    """FIFO of floats with a running mean."""

    def __init__(self, capacity: int):
        if int(capacity) <= 0:
            raise ValueError(f"capacity must be > 0, got {capacity}")
        self.capacity = int(capacity)
        self._items: Deque[float] = deque(maxlen=self.capacity)
        self._mean = 0.0

    def __len__(self) -> int:
        return len(self._items)

    @property
    def full(self) -> bool:
        return len(self._items) == self.capacity

    def push(self, value: float) -> None:
        self._items.append(float(value))
        self._mean = float(sum(self._items) / len(self._items))

    def mean(self) -> float:
        """Mean of the window; 0.0 when empty."""
        return self._mean

    def items(self) -> List[float]:
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()
        self._mean = 0.0
