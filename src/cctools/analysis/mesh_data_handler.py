"""
Mesh Data Handler
=================
Owns the set of spatially located field samples of a model and answers point
and region queries.

Interpolation policy (fixed for the whole data set):
    inverse-distance weighting with power `power` over the `neighbours`
    nearest samples. A query coinciding with a sample returns that sample's
    stored values. For vector data LONGITUDINAL/NORMAL/TRANSVERSE are
    interpolated and MAGNITUDE is recomputed from the interpolated vector; for
    scalar data MAGNITUDE is interpolated directly.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union, TYPE_CHECKING
import logging

import numpy as np
from scipy.spatial import cKDTree

from cctools.config import COINCIDENCE_TOLERANCE, DEFAULT_IDW_NEIGHBOURS, DEFAULT_IDW_POWER
from cctools.errors import DomainError, InvalidDataError
from cctools.model.geometry_primitives import Cube3D, Point
from cctools.model.mesh import (
    VECTOR_COMPONENTS, CombinePolicy, MeshFieldComponent, MeshSample, SampleKind, vector_magnitude
)

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)

SampleLike = Union[MeshSample, Dict[str, Any]]
PointLike = Union[Point, Sequence[float], "npt.NDArray[np.float64]"]


@dataclass(frozen=True)
class Interpolation:
    """Interpolated values together with the samples that contributed to them."""
    values: Dict[MeshFieldComponent, float]
    indices: Tuple[int, ...]
    weights: Tuple[float, ...]


def combine_points(a: MeshSample, b: MeshSample, policy: Union[CombinePolicy, str] = CombinePolicy.AVERAGE) -> MeshSample:
    """
    Merge two samples into a new sample located at their midpoint.

    Vector components are reduced with the policy (sum, average or max) and
    MAGNITUDE is recomputed from the result; scalar samples reduce MAGNITUDE.
    """
    if a.component_set != b.component_set:
        raise DomainError(
            f"Cannot combine samples with different components: "
            f"{sorted(a.component_set)} and {sorted(b.component_set)}"
        )
    return _reduce_samples([a, b], CombinePolicy(policy))


def _reduce_samples(samples: Sequence[MeshSample], policy: CombinePolicy) -> MeshSample:
    positions = np.array([s.position.to_array() for s in samples])
    position = positions.sum(axis=0) / len(samples)
    kind = samples[0].kind

    if kind == SampleKind.VECTOR:
        stacked = np.array([s.vector() for s in samples])
    else:
        stacked = np.array([[s.magnitude] for s in samples])

    if policy == CombinePolicy.SUM:
        reduced = stacked.sum(axis=0)
    elif policy == CombinePolicy.AVERAGE:
        reduced = stacked.sum(axis=0) / len(samples)
    else:
        reduced = stacked.max(axis=0)

    if kind == SampleKind.VECTOR:
        components = {c: float(v) for c, v in zip(VECTOR_COMPONENTS, reduced)}
    else:
        components = {MeshFieldComponent.MAGNITUDE: float(reduced[0])}

    return MeshSample(
        position=position,
        components=components,
        extrapolated=any(s.extrapolated for s in samples),
    )


class MeshDataHandler:
    """
    Class for handling the field samples of a model.

    Queries are pure reads; only `load` replaces the data set.
    """

    def __init__(
        self,
        samples: Optional[Iterable[SampleLike]] = None,
        merge_policy: Optional[Union[CombinePolicy, str]] = None,
        neighbours: int = DEFAULT_IDW_NEIGHBOURS,
        power: float = DEFAULT_IDW_POWER,
    ) -> None:
        if neighbours < 1:
            raise InvalidDataError("Interpolation needs at least one neighbour.")
        if power <= 0.0:
            raise InvalidDataError("Inverse-distance power must be positive.")

        self.neighbours = int(neighbours)
        self.power = float(power)

        self._samples: Tuple[MeshSample, ...] = ()
        self._kind: Optional[SampleKind] = None
        self._positions: npt.NDArray[np.float64] = np.empty((0, 3), dtype=np.float64)
        self._values: npt.NDArray[np.float64] = np.empty((0, 0), dtype=np.float64)
        self._tree: Optional[cKDTree] = None

        if samples is not None:
            self.load(samples, merge_policy=merge_policy)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(samples={len(self)}, kind={self._kind})"

    def __len__(self) -> int:
        return len(self._samples)

    # --- Loading ---

    def load(
        self,
        samples: Iterable[SampleLike],
        merge_policy: Optional[Union[CombinePolicy, str]] = None,
    ) -> None:
        """
        Replace the data set.

        Samples sharing exact coordinates are merged with `merge_policy`;
        without a policy they are rejected.
        """
        parsed = [MeshSample.from_dict(s) if not isinstance(s, MeshSample) else s for s in samples]

        kinds = {s.kind for s in parsed}
        if len(kinds) > 1:
            raise InvalidDataError("Mesh data mixes vector and scalar samples.")

        groups: Dict[Tuple[float, float, float], List[MeshSample]] = defaultdict(list)
        for sample in parsed:
            key = (sample.position.x, sample.position.y, sample.position.z)
            groups[key].append(sample)

        duplicates = {k: v for k, v in groups.items() if len(v) > 1}
        if duplicates:
            if merge_policy is None:
                first = next(iter(duplicates))
                raise InvalidDataError(
                    f"{len(duplicates)} duplicate sample position(s), e.g. {list(first)}, and no merge policy set."
                )
            policy = CombinePolicy(merge_policy)
            logger.debug(f"Merging {len(duplicates)} duplicate sample position(s) with policy '{policy}'.")

            merged: List[MeshSample] = []
            for group in groups.values():
                merged.append(group[0] if len(group) == 1 else _reduce_samples(group, policy))
            parsed = merged

        self._samples = tuple(parsed)
        self._kind = kinds.pop() if kinds else None
        self._build_index()
        logger.info(f"Loaded {len(self._samples)} mesh samples ({self._kind or 'empty'}).")

    def _build_index(self) -> None:
        if not self._samples:
            self._positions = np.empty((0, 3), dtype=np.float64)
            self._values = np.empty((0, 0), dtype=np.float64)
            self._tree = None
            return

        self._positions = np.array([s.position.to_array() for s in self._samples], dtype=np.float64)
        if self._kind == SampleKind.VECTOR:
            self._values = np.array([s.vector() for s in self._samples], dtype=np.float64)
        else:
            self._values = np.array([[s.magnitude] for s in self._samples], dtype=np.float64)
        self._tree = cKDTree(self._positions)

    # --- Properties ---

    @property
    def samples(self) -> Tuple[MeshSample, ...]:
        return self._samples

    @property
    def kind(self) -> Optional[SampleKind]:
        return self._kind

    @property
    def positions(self) -> npt.NDArray[np.float64]:
        return self._positions.copy()

    @property
    def components(self) -> Tuple[MeshFieldComponent, ...]:
        """Components every query of this data set returns."""
        if self._kind == SampleKind.VECTOR:
            return (*VECTOR_COMPONENTS, MeshFieldComponent.MAGNITUDE)
        if self._kind == SampleKind.SCALAR:
            return (MeshFieldComponent.MAGNITUDE,)
        return ()

    # --- Queries ---

    def query(self, point: PointLike) -> Dict[MeshFieldComponent, float]:
        """Interpolated value per component at a point."""
        return self.query_with_weights(point).values

    def query_with_weights(self, point: PointLike) -> Interpolation:
        """Interpolated values plus the contributing sample indices and weights."""
        p = self._require_point(point)

        k = min(self.neighbours, len(self._samples))
        distances, indices = self._tree.query(p, k=k)
        distances = np.atleast_1d(distances)
        indices = np.atleast_1d(indices)

        if distances[0] <= COINCIDENCE_TOLERANCE:
            hit = int(indices[0])
            return Interpolation(
                values=dict(self._samples[hit].components),
                indices=(hit,),
                weights=(1.0,),
            )

        weights = 1.0 / distances ** self.power
        weights /= weights.sum()
        interpolated = weights @ self._values[indices]

        if self._kind == SampleKind.VECTOR:
            values = {c: float(v) for c, v in zip(VECTOR_COMPONENTS, interpolated)}
            values[MeshFieldComponent.MAGNITUDE] = vector_magnitude(*interpolated)
        else:
            values = {MeshFieldComponent.MAGNITUDE: float(interpolated[0])}

        return Interpolation(
            values=values,
            indices=tuple(int(i) for i in indices),
            weights=tuple(float(w) for w in weights),
        )

    def nearest(self, point: PointLike) -> MeshSample:
        """The sample closest to a point."""
        p = self._require_point(point)
        _, index = self._tree.query(p, k=1)
        return self._samples[int(index)]

    def combine_points(
        self,
        a: MeshSample,
        b: MeshSample,
        policy: Union[CombinePolicy, str] = CombinePolicy.AVERAGE,
    ) -> MeshSample:
        """See module-level `combine_points`. The data set is not modified."""
        return combine_points(a, b, policy)

    # --- Region queries ---

    def clip(self, cube: Cube3D) -> MeshDataHandler:
        """New handler holding only the samples inside the cube."""
        mask = cube.contains_points(self._positions) if self._samples else np.zeros(0, dtype=bool)
        kept = [s for s, inside in zip(self._samples, mask) if inside]
        return MeshDataHandler(kept, neighbours=self.neighbours, power=self.power)

    def samples_outside(self, cube: Cube3D) -> List[MeshSample]:
        if not self._samples:
            return []
        mask = cube.contains_points(self._positions)
        return [s for s, inside in zip(self._samples, mask) if not inside]

    def bounds(self) -> Cube3D:
        """Smallest axis-aligned box around all samples."""
        self._require_data()
        lo = self._positions.min(axis=0)
        hi = self._positions.max(axis=0)
        return Cube3D(lo[0], hi[0], lo[1], hi[1], lo[2], hi[2])

    def min_max_z(self) -> Tuple[float, float]:
        """
        Minimum and maximum z coordinate of the samples.

        These can be used to calculate the length of the magnet along the z-axis.
        """
        self._require_data()
        z = self._positions[:, 2]
        return float(z.min()), float(z.max())

    # --- Helpers ---

    def _require_data(self) -> None:
        if not self._samples:
            raise InvalidDataError("No mesh samples loaded.")

    def _require_point(self, point: PointLike) -> npt.NDArray[np.float64]:
        self._require_data()
        return Point.from_sequence(point).to_array()
