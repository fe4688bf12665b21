"""Container holding one object (usually a vector) per multigrid level."""

from typing import Dict, Iterator, List, Tuple

import numpy as np

from dofs.numbering import DoFNumbering


class MGLevelObject:
    """Per-level storage indexed by absolute level in ``[minlevel, maxlevel]``.

    Parameters
    ----------
    minlevel : int
        Lowest stored level
    maxlevel : int
        Highest stored level (inclusive)
    """

    def __init__(self, minlevel: int = 0, maxlevel: int = 0):
        self.resize(minlevel, maxlevel)

    def resize(self, minlevel: int, maxlevel: int) -> None:
        if minlevel < 0 or maxlevel < minlevel:
            raise ValueError(f"Invalid level range [{minlevel}, {maxlevel}]")
        self.minlevel = minlevel
        self.maxlevel = maxlevel
        self._objects: List[np.ndarray] = [np.zeros(0) for _ in range(maxlevel - minlevel + 1)]

    def _offset(self, level: int) -> int:
        if not self.minlevel <= level <= self.maxlevel:
            raise IndexError(f"Level {level} outside [{self.minlevel}, {self.maxlevel}]")
        return level - self.minlevel

    def __getitem__(self, level: int) -> np.ndarray:
        return self._objects[self._offset(level)]

    def __setitem__(self, level: int, value: np.ndarray) -> None:
        self._objects[self._offset(level)] = value

    def __len__(self) -> int:
        return len(self._objects)

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.minlevel, self.maxlevel + 1))

    def items(self) -> Iterator[Tuple[int, np.ndarray]]:
        for level in self:
            yield level, self[level]

    def sizes(self) -> Dict[int, int]:
        return {level: len(vector) for level, vector in self.items()}

    def l2_norms(self) -> Dict[int, float]:
        return {level: float(np.linalg.norm(vector)) for level, vector in self.items()}

    def copy(self) -> "MGLevelObject":
        result = MGLevelObject(self.minlevel, self.maxlevel)
        for level, vector in self.items():
            result[level] = vector.copy()
        return result

    def __sub__(self, other: "MGLevelObject") -> "MGLevelObject":
        if (self.minlevel, self.maxlevel) != (other.minlevel, other.maxlevel):
            raise ValueError("Level ranges differ")
        result = MGLevelObject(self.minlevel, self.maxlevel)
        for level in self:
            if len(self[level]) != len(other[level]):
                raise ValueError(
                    f"Level {level}: sizes differ ({len(self[level])} vs {len(other[level])})"
                )
            result[level] = self[level] - other[level]
        return result


def reinit_vector(numbering: DoFNumbering, vector: MGLevelObject) -> None:
    """Size every level of ``vector`` to the level DoF count and zero it."""
    vector.resize(0, numbering.n_levels - 1)
    for level in vector:
        vector[level] = np.zeros(numbering.n_dofs(level))
