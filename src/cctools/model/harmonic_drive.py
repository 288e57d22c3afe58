"""
Harmonic Drive Parameters
=========================
Defines the parametric drive model of a custom harmonic.

A drive is either a constant drive (`Constant`) or a linear drive
(`Offset` + `Slope`), optionally extended with higher-order polynomial terms.
Which coefficients a drive carries defines its kind; reading or writing a
coefficient the drive does not carry is a type error.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, Optional, Tuple, Union, TYPE_CHECKING
import math

import numpy as np

from cctools.errors import InvalidDataError, TypeMismatchError

if TYPE_CHECKING:
    import numpy.typing as npt


class HarmonicDriveParameterType(StrEnum):
    OFFSET = "Offset"
    SLOPE = "Slope"
    CONSTANT = "Constant"


HIGHER_ORDER_KEY = "HigherOrder"


@dataclass
class HarmonicDriveParameters:
    """
    Coefficients of one harmonic drive.

    The drive value at input x is

        Offset + Slope * x + Constant + sum_k HigherOrder[k] * x**(k + 2)

    where absent coefficients count as zero.
    """
    offset: Optional[float] = None
    slope: Optional[float] = None
    constant: Optional[float] = None
    higher_order: Tuple[float, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        for name in ("offset", "slope", "constant"):
            value = getattr(self, name)
            if value is not None:
                setattr(self, name, _as_coefficient(value, name))
        self.higher_order = tuple(_as_coefficient(c, HIGHER_ORDER_KEY) for c in self.higher_order)

    def __str__(self) -> str:
        if self.is_undefined:
            return "Undefined"
        parts = []
        if self.offset is not None:
            parts.append(f"Offset: {self.offset:g}")
        if self.slope is not None:
            parts.append(f"Slope: {self.slope:g}")
        if self.constant is not None:
            parts.append(f"Constant: {self.constant:g}")
        if self.higher_order:
            parts.append(f"{HIGHER_ORDER_KEY}: {list(self.higher_order)}")
        return ", ".join(parts)

    # --- Constructors ---

    @staticmethod
    def from_value(value: float, parameter_type: HarmonicDriveParameterType) -> HarmonicDriveParameters:
        """Drive carrying a single coefficient of the given type."""
        parameter_type = HarmonicDriveParameterType(parameter_type)
        if parameter_type == HarmonicDriveParameterType.OFFSET:
            return HarmonicDriveParameters(offset=value)
        if parameter_type == HarmonicDriveParameterType.SLOPE:
            return HarmonicDriveParameters(slope=value)
        return HarmonicDriveParameters(constant=value)

    @staticmethod
    def linear(offset: float, slope: float) -> HarmonicDriveParameters:
        return HarmonicDriveParameters(offset=offset, slope=slope)

    @staticmethod
    def constant_drive(value: float) -> HarmonicDriveParameters:
        return HarmonicDriveParameters(constant=value)

    # --- Type checks ---

    @property
    def is_constant(self) -> bool:
        return self.constant is not None

    @property
    def is_offset(self) -> bool:
        return self.offset is not None

    @property
    def is_slope(self) -> bool:
        return self.slope is not None

    @property
    def is_offset_and_slope(self) -> bool:
        return self.offset is not None and self.slope is not None

    @property
    def is_undefined(self) -> bool:
        return self.offset is None and self.slope is None and self.constant is None and not self.higher_order

    def is_type(self, parameter_type: HarmonicDriveParameterType) -> bool:
        return getattr(self, _attribute(parameter_type)) is not None

    # --- Access ---

    def get(self, parameter_type: HarmonicDriveParameterType) -> float:
        if not self.is_type(parameter_type):
            raise TypeMismatchError(f"Drive ({self}) has no '{HarmonicDriveParameterType(parameter_type)}' coefficient.")
        return getattr(self, _attribute(parameter_type))

    def set_value(self, value: float, parameter_type: HarmonicDriveParameterType) -> None:
        if not self.is_type(parameter_type):
            raise TypeMismatchError(f"Drive ({self}) has no '{HarmonicDriveParameterType(parameter_type)}' coefficient to set.")
        attr = _attribute(parameter_type)
        setattr(self, attr, _as_coefficient(value, attr))

    def present_types(self) -> list[HarmonicDriveParameterType]:
        return [t for t in HarmonicDriveParameterType if self.is_type(t)]

    # --- Evaluation ---

    def evaluate(self, x: Union[float, npt.NDArray[np.float64]]) -> Union[float, npt.NDArray[np.float64]]:
        """Drive value at input x (scalar or array)."""
        if self.is_undefined:
            raise InvalidDataError("Cannot evaluate an undefined harmonic drive.")

        offset = self.offset if self.offset is not None else 0.0
        slope = self.slope if self.slope is not None else 0.0
        constant = self.constant if self.constant is not None else 0.0

        if isinstance(x, np.ndarray):
            result = offset + slope * x + constant
        else:
            x = float(x)
            result = offset + slope * x + constant

        for k, coefficient in enumerate(self.higher_order):
            result = result + coefficient * x ** (k + 2)
        return result

    # --- Serialization ---

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for parameter_type in self.present_types():
            data[parameter_type.value] = self.get(parameter_type)
        if self.higher_order:
            data[HIGHER_ORDER_KEY] = list(self.higher_order)
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> HarmonicDriveParameters:
        """Build from {"Offset": f, "Slope": f, "Constant": f, "HigherOrder": [...]}; keys are case-insensitive."""
        if isinstance(data, HarmonicDriveParameters):
            return data
        if not isinstance(data, dict):
            raise InvalidDataError(f"Drive parameters must be an object, got {type(data).__name__}.")

        known = {t.value.lower(): _attribute(t) for t in HarmonicDriveParameterType}
        known[HIGHER_ORDER_KEY.lower()] = "higher_order"

        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            attr = known.get(str(key).lower())
            if attr is None:
                raise InvalidDataError(f"Unknown drive parameter '{key}'.")
            if attr == "higher_order":
                if not isinstance(value, (list, tuple)):
                    raise InvalidDataError(f"'{HIGHER_ORDER_KEY}' must be a list of numbers.")
                value = tuple(value)
            kwargs[attr] = value

        return HarmonicDriveParameters(**kwargs)


# Keys have format "B1" to "B10"
HarmonicDriveParameterMap = Dict[str, HarmonicDriveParameters]


def _attribute(parameter_type: HarmonicDriveParameterType) -> str:
    return HarmonicDriveParameterType(parameter_type).name.lower()


def _as_coefficient(value: Any, name: str) -> float:
    # bool is an int subclass but never a valid coefficient
    if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
        raise InvalidDataError(f"Drive coefficient '{name}' must be a number, got {value!r}.")
    value = float(value)
    if not math.isfinite(value):
        raise InvalidDataError(f"Drive coefficient '{name}' must be finite.")
    return value
