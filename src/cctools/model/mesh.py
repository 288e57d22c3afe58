"""
Mesh Sample Data Model
======================
Defines the spatially located field samples consumed by the MeshDataHandler.

A sample is either a *vector* sample (LONGITUDINAL, NORMAL and TRANSVERSE
components, MAGNITUDE derived from them) or a *scalar* sample (MAGNITUDE only).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Sequence, Union, TYPE_CHECKING
import math

import numpy as np

from cctools.config import MAGNITUDE_TOLERANCE
from cctools.errors import InvalidDataError
from cctools.model.geometry_primitives import Point

if TYPE_CHECKING:
    import numpy.typing as npt


class MeshFieldComponent(StrEnum):
    LONGITUDINAL = "LONGITUDINAL"
    NORMAL = "NORMAL"
    TRANSVERSE = "TRANSVERSE"
    MAGNITUDE = "MAGNITUDE"


class CombinePolicy(StrEnum):
    SUM = "sum"
    AVERAGE = "average"
    MAX = "max"


class SampleKind(StrEnum):
    VECTOR = "vector"
    SCALAR = "scalar"


VECTOR_COMPONENTS = (
    MeshFieldComponent.LONGITUDINAL,
    MeshFieldComponent.NORMAL,
    MeshFieldComponent.TRANSVERSE,
)


def vector_magnitude(longitudinal: float, normal: float, transverse: float) -> float:
    return math.sqrt(longitudinal ** 2 + normal ** 2 + transverse ** 2)


@dataclass(frozen=True)
class MeshSample:
    """
    A field sample at a position in 3D space.

    Construct with the components that were measured or simulated; MAGNITUDE is
    derived for vector samples and checked against the vector components when
    supplied as well.
    """
    position: Point
    components: Mapping[MeshFieldComponent, float]
    extrapolated: bool = False
    name: Optional[str] = None
    kind: SampleKind = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "position", Point.from_sequence(self.position))
        normalized, kind = _normalize_components(self.components)
        object.__setattr__(self, "components", normalized)
        object.__setattr__(self, "kind", kind)

    @property
    def component_set(self) -> FrozenSet[MeshFieldComponent]:
        return frozenset(self.components)

    @property
    def magnitude(self) -> float:
        return self.components[MeshFieldComponent.MAGNITUDE]

    def value(self, component: Union[MeshFieldComponent, str]) -> float:
        component = MeshFieldComponent(component)
        if component not in self.components:
            raise InvalidDataError(f"Sample at {self.position.to_list()} has no {component} component.")
        return self.components[component]

    def vector(self) -> npt.NDArray[np.float64]:
        """(L, N, T) as an array. Only available for vector samples."""
        if self.kind != SampleKind.VECTOR:
            raise InvalidDataError("Scalar samples do not carry vector components.")
        return np.array([self.components[c] for c in VECTOR_COMPONENTS])

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"pos": self.position.to_list()}
        if self.kind == SampleKind.VECTOR:
            for component in VECTOR_COMPONENTS:
                data[component.value] = self.components[component]
        else:
            data[MeshFieldComponent.MAGNITUDE.value] = self.magnitude
        if self.extrapolated:
            data["extrapolated"] = True
        if self.name is not None:
            data["name"] = self.name
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> MeshSample:
        """Build from {"pos": [x, y, z], "LONGITUDINAL": f, "NORMAL": f, "TRANSVERSE": f, ...}."""
        if isinstance(data, MeshSample):
            return data
        if not isinstance(data, dict):
            raise InvalidDataError(f"Mesh sample must be an object, got {type(data).__name__}.")
        if "pos" not in data:
            raise InvalidDataError("Mesh sample requires a 'pos' entry.")

        components: Dict[MeshFieldComponent, Any] = {}
        for component in MeshFieldComponent:
            if component.value in data:
                components[component] = data[component.value]

        extrapolated = data.get("extrapolated", False)
        if not isinstance(extrapolated, bool):
            raise InvalidDataError("Mesh sample flag 'extrapolated' must be a boolean.")

        return MeshSample(
            position=data["pos"],
            components=components,
            extrapolated=extrapolated,
            name=data.get("name"),
        )


def make_sample(
    position: Union[Point, Sequence[float]],
    longitudinal: Optional[float] = None,
    normal: Optional[float] = None,
    transverse: Optional[float] = None,
    magnitude: Optional[float] = None,
    extrapolated: bool = False,
) -> MeshSample:
    """Shorthand constructor taking the components as keyword arguments."""
    given = {
        MeshFieldComponent.LONGITUDINAL: longitudinal,
        MeshFieldComponent.NORMAL: normal,
        MeshFieldComponent.TRANSVERSE: transverse,
        MeshFieldComponent.MAGNITUDE: magnitude,
    }
    components = {k: v for k, v in given.items() if v is not None}
    return MeshSample(position=position, components=components, extrapolated=extrapolated)


def _normalize_components(components: Mapping[Any, Any]) -> tuple[Dict[MeshFieldComponent, float], SampleKind]:
    if not isinstance(components, Mapping) or not components:
        raise InvalidDataError("Mesh sample needs at least one field component.")

    values: Dict[MeshFieldComponent, float] = {}
    for key, value in components.items():
        try:
            component = MeshFieldComponent(key)
        except ValueError as e:
            raise InvalidDataError(f"Unknown mesh field component '{key}'.") from e
        if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
            raise InvalidDataError(f"Component {component} must be a number, got {value!r}.")
        value = float(value)
        if not math.isfinite(value):
            raise InvalidDataError(f"Component {component} must be finite.")
        values[component] = value

    present = [c for c in VECTOR_COMPONENTS if c in values]

    if not present:
        magnitude = values[MeshFieldComponent.MAGNITUDE]
        if magnitude < 0.0:
            raise InvalidDataError(f"MAGNITUDE must not be negative, got {magnitude}.")
        return values, SampleKind.SCALAR

    if len(present) != len(VECTOR_COMPONENTS):
        missing = [c.value for c in VECTOR_COMPONENTS if c not in values]
        raise InvalidDataError(f"Vector sample is missing components: {missing}")

    derived = vector_magnitude(*(values[c] for c in VECTOR_COMPONENTS))
    supplied = values.get(MeshFieldComponent.MAGNITUDE)
    if supplied is not None and not math.isclose(supplied, derived, rel_tol=MAGNITUDE_TOLERANCE, abs_tol=1e-12):
        raise InvalidDataError(
            f"Supplied MAGNITUDE {supplied} is inconsistent with the vector components (expected {derived})."
        )
    values[MeshFieldComponent.MAGNITUDE] = derived
    return values, SampleKind.VECTOR
