"""
Geometric Primitives for the model domain.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Sequence, Union, TYPE_CHECKING
import math

import numpy as np

from cctools.errors import InvalidDataError

if TYPE_CHECKING:
    import numpy.typing as npt


@dataclass(frozen=True)
class Point:
    """A simple geometric point in 3D space."""
    x: float
    y: float
    z: float = 0.0

    @staticmethod
    def from_sequence(coords: Union[Sequence[float], npt.NDArray[np.float64], Point]) -> Point:
        """Build a point from [x, y, z], a numpy array or another point."""
        if isinstance(coords, Point):
            return coords
        try:
            values = [float(c) for c in coords]
        except (TypeError, ValueError) as e:
            raise InvalidDataError(f"Invalid point coordinates: {coords!r}") from e
        if len(values) != 3:
            raise InvalidDataError(f"A point needs exactly 3 coordinates, got {len(values)}.")
        if not all(math.isfinite(v) for v in values):
            raise InvalidDataError(f"Point coordinates must be finite: {values}")
        return Point(*values)

    def distance_to(self, other: Point) -> float:
        return math.sqrt((self.x - other.x) ** 2 + (self.y - other.y) ** 2 + (self.z - other.z) ** 2)

    def to_array(self) -> npt.NDArray[np.float64]:
        return np.array([self.x, self.y, self.z])

    def to_list(self) -> list[float]:
        return [self.x, self.y, self.z]


class Cube3D:
    """
    Axis-aligned box spanning the model domain in 3D space.

    The box is given by minimum and maximum coordinates along x, y and z (m).
    With `invert` set, the cube spans the entire coordinate space excluding
    the box, i.e. `contains` returns True for points outside the box.
    """

    def __init__(
        self,
        x_min: float,
        x_max: float,
        y_min: float,
        y_max: float,
        z_min: float,
        z_max: float,
        invert: bool = False,
    ) -> None:
        self._set_bounds(x_min, x_max, y_min, y_max, z_min, z_max)
        self._invert = bool(invert)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(min={self.min_corner.to_list()}, "
            f"max={self.max_corner.to_list()}, invert={self._invert})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Cube3D):
            return NotImplemented
        return np.array_equal(self._bounds, other._bounds) and self._invert == other._invert

    @classmethod
    def from_corners(cls, min_corner: Sequence[float], max_corner: Sequence[float], invert: bool = False) -> Cube3D:
        lo = Point.from_sequence(min_corner)
        hi = Point.from_sequence(max_corner)
        return cls(lo.x, hi.x, lo.y, hi.y, lo.z, hi.z, invert=invert)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> Cube3D:
        """Build the cube from {"min": [x, y, z], "max": [x, y, z], "invert": bool}."""
        if not isinstance(data, dict):
            raise InvalidDataError(f"Domain must be an object, got {type(data).__name__}.")
        if "min" not in data or "max" not in data:
            raise InvalidDataError("Domain requires both 'min' and 'max' corners.")
        invert = data.get("invert", False)
        if not isinstance(invert, bool):
            raise InvalidDataError("Domain flag 'invert' must be a boolean.")
        return Cube3D.from_corners(data["min"], data["max"], invert=invert)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min": self.min_corner.to_list(),
            "max": self.max_corner.to_list(),
            "invert": self._invert,
        }

    @property
    def invert(self) -> bool:
        return self._invert

    @property
    def min_corner(self) -> Point:
        return Point(*self._bounds[:, 0])

    @property
    def max_corner(self) -> Point:
        return Point(*self._bounds[:, 1])

    @property
    def center(self) -> Point:
        return Point(*self._bounds.mean(axis=1))

    @property
    def size(self) -> npt.NDArray[np.float64]:
        """Edge lengths along x, y and z."""
        return self._bounds[:, 1] - self._bounds[:, 0]

    def resize(
        self,
        x_min: float,
        x_max: float,
        y_min: float,
        y_max: float,
        z_min: float,
        z_max: float,
    ) -> None:
        """Replace the bounds of the cube. The inversion flag is kept."""
        self._set_bounds(x_min, x_max, y_min, y_max, z_min, z_max)

    def contains(self, point: Union[Point, Sequence[float], npt.NDArray[np.float64]]) -> bool:
        """
        Determine if a point is inside the cube (bounds inclusive).

        Returns the opposite for an inverted cube.
        """
        p = Point.from_sequence(point).to_array()
        inside = bool(np.all((p >= self._bounds[:, 0]) & (p <= self._bounds[:, 1])))
        return inside != self._invert

    def contains_points(self, points: npt.ArrayLike) -> npt.NDArray[np.bool_]:
        """Vectorized `contains` for an (n, 3) array of points."""
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        inside = np.all((pts >= self._bounds[:, 0]) & (pts <= self._bounds[:, 1]), axis=1)
        return inside != self._invert

    def clamp(self, point: Union[Point, Sequence[float], npt.NDArray[np.float64]]) -> Point:
        """Nearest point inside the box (the point itself if already inside)."""
        p = Point.from_sequence(point).to_array()
        return Point(*np.clip(p, self._bounds[:, 0], self._bounds[:, 1]))

    def _set_bounds(self, x_min, x_max, y_min, y_max, z_min, z_max) -> None:
        try:
            bounds = np.array(
                [[x_min, x_max], [y_min, y_max], [z_min, z_max]],
                dtype=np.float64,
            )
        except (TypeError, ValueError) as e:
            raise InvalidDataError("Cube bounds must be numbers.") from e

        if not np.all(np.isfinite(bounds)):
            raise InvalidDataError("Cube bounds must be finite.")
        if np.any(bounds[:, 0] > bounds[:, 1]):
            raise InvalidDataError(
                f"Cube minimum must not exceed maximum: min={bounds[:, 0].tolist()}, max={bounds[:, 1].tolist()}"
            )
        self._bounds = bounds
