"""
Calculation Queries & Results
=============================
Value objects exchanged between the ModelCalculator and the result sinks.

Results are frozen once emitted; arrays are rendered as tuples and mappings as
read-only views so a sink can keep them without sharing mutable state with the
model.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

from cctools.model.geometry_primitives import Point
from cctools.model.mesh import MeshFieldComponent


class CombinationRule(StrEnum):
    """How the harmonic correction is applied to the interpolated mesh value."""
    ADDITIVE = "additive"
    MULTIPLICATIVE = "multiplicative"

    def apply(self, mesh_value: float, correction: float) -> float:
        if self == CombinationRule.MULTIPLICATIVE:
            return mesh_value * (1.0 + correction)
        return mesh_value + correction


class ExtrapolationPolicy(StrEnum):
    """What to do with a query point outside the model domain."""
    NONE = "none"
    ALLOW = "allow"
    CLAMP = "clamp"


@dataclass(frozen=True)
class CalcQuery:
    """A point to evaluate, optionally with a harmonic drive and its input x."""
    point: Point
    drive_id: Optional[str] = None
    x: float = 0.0
    component: MeshFieldComponent = MeshFieldComponent.MAGNITUDE

    def __post_init__(self) -> None:
        object.__setattr__(self, "point", Point.from_sequence(self.point))
        object.__setattr__(self, "x", float(self.x))
        object.__setattr__(self, "component", MeshFieldComponent(self.component))

    @staticmethod
    def at(
        point: Union[Point, Sequence[float]],
        drive_id: Optional[str] = None,
        x: float = 0.0,
        component: Union[MeshFieldComponent, str] = MeshFieldComponent.MAGNITUDE,
    ) -> CalcQuery:
        return CalcQuery(point=point, drive_id=drive_id, x=x, component=component)


@dataclass(frozen=True)
class Provenance:
    """Where a result came from."""
    evaluation_point: Point
    sample_indices: Tuple[int, ...] = ()
    sample_weights: Tuple[float, ...] = ()
    drive_id: Optional[str] = None
    drive_parameters: Optional[Mapping[str, Any]] = None
    extrapolated: bool = False

    def __post_init__(self) -> None:
        if self.drive_parameters is not None:
            frozen = {k: tuple(v) if isinstance(v, list) else v for k, v in self.drive_parameters.items()}
            object.__setattr__(self, "drive_parameters", MappingProxyType(frozen))


@dataclass(frozen=True)
class CalcResult:
    query: CalcQuery
    mesh_values: Mapping[MeshFieldComponent, float]
    mesh_value: float
    harmonic_correction: float
    value: float
    rule: CombinationRule
    provenance: Provenance = field(compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "mesh_values", MappingProxyType(dict(self.mesh_values)))

    def to_record(self) -> Dict[str, Any]:
        """Flat representation, one column per field, used by the tabular sinks."""
        record: Dict[str, Any] = {
            "x_pos": self.query.point.x,
            "y_pos": self.query.point.y,
            "z_pos": self.query.point.z,
            "drive_id": self.query.drive_id or "",
            "x": self.query.x,
            "component": self.query.component.value,
            "mesh_value": self.mesh_value,
            "harmonic_correction": self.harmonic_correction,
            "value": self.value,
            "rule": self.rule.value,
            "extrapolated": self.provenance.extrapolated,
        }
        for component, value in self.mesh_values.items():
            record[f"mesh_{component.value.lower()}"] = value
        return record
