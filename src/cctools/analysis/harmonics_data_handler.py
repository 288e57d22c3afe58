"""
Harmonics Data Handler
======================
Keeps the harmonic drive parameters of a model and the harmonic profile data
(B_n along the magnet) of a harmonics calculation.

Why is this file needed?
------------------------
1. Drives: The calculator looks up a drive by id and evaluates it at the
   query input `x`. Evaluation never changes the stored parameters.
2. Profiles: The strength of every harmonic component along the magnet axis
   (`ell`) is used for plots and for the integrated, normalised harmonics
   `b_n` / `a_n`.
"""
from __future__ import annotations

from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union, TYPE_CHECKING
import logging

import numpy as np
import matplotlib.pyplot as plt
from scipy import integrate

from cctools.errors import InvalidDataError, UnknownDriveError
from cctools.logging_config import format_scientific
from cctools.model.harmonic_drive import HarmonicDriveParameterMap, HarmonicDriveParameters

if TYPE_CHECKING:
    import numpy.typing as npt
    from matplotlib.axes import Axes

logger = logging.getLogger(__name__)

# Harmonic profiles are stored in metres, reported in millimetres
M_TO_MM = 1000.0

# Integrated harmonics are given in units of 1e-4 of the main component
UNITS = 1e4


def combine_points(x: Sequence[float], y: Sequence[float]) -> List[Tuple[float, float]]:
    """Pair two equally long sequences into (x, y) points."""
    if len(x) != len(y):
        raise InvalidDataError(f"Cannot combine {len(x)} x values with {len(y)} y values.")
    return [(float(a), float(b)) for a, b in zip(x, y)]


class HarmonicsDataHandler:
    """
    Class for handling harmonic drives and the result of a harmonics calculation.
    """

    def __init__(self, parameters: Optional[Mapping[str, Any]] = None) -> None:
        self._parameters: HarmonicDriveParameterMap = {}

        self._ell: npt.NDArray[np.float64] = np.empty(0, dtype=np.float64)
        self._bn_per_component: npt.NDArray[np.float64] = np.empty((0, 0), dtype=np.float64)
        self._an_per_component: npt.NDArray[np.float64] = np.empty((0, 0), dtype=np.float64)

        if parameters is not None:
            self.load(parameters)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(drives={self.drive_ids}, components={self.component_count})"

    def __contains__(self, drive_id: object) -> bool:
        return drive_id in self._parameters

    def __iter__(self) -> Iterator[str]:
        return iter(self._parameters)

    def __len__(self) -> int:
        return len(self._parameters)

    # --- Drive parameters ---

    def load(self, parameters: Mapping[str, Any]) -> None:
        """Replace all drives. Values may be parameter objects or their dict form."""
        parsed: HarmonicDriveParameterMap = {}
        for drive_id, params in parameters.items():
            parsed[str(drive_id)] = _parse_parameters(drive_id, params)
        self._parameters = parsed
        logger.debug(f"Loaded {len(parsed)} harmonic drive(s): {list(parsed)}")

    def set_parameters(self, drive_id: str, params: Union[HarmonicDriveParameters, Dict[str, Any]]) -> None:
        self._parameters[str(drive_id)] = _parse_parameters(drive_id, params)

    def get_parameters(self, drive_id: str) -> HarmonicDriveParameters:
        """Copy of the parameters of one drive."""
        return _copy_parameters(self._lookup(drive_id))

    def _lookup(self, drive_id: str) -> HarmonicDriveParameters:
        try:
            return self._parameters[drive_id]
        except KeyError:
            raise UnknownDriveError(drive_id) from None

    def remove(self, drive_id: str) -> HarmonicDriveParameters:
        try:
            return self._parameters.pop(drive_id)
        except KeyError:
            raise UnknownDriveError(drive_id) from None

    @property
    def drive_ids(self) -> List[str]:
        return list(self._parameters)

    @property
    def parameter_map(self) -> HarmonicDriveParameterMap:
        """Copy of the drive map; changing it does not change the handler."""
        return {
            drive_id: _copy_parameters(params)
            for drive_id, params in self._parameters.items()
        }

    def evaluate(
        self,
        drive_id: str,
        x: Union[float, npt.NDArray[np.float64]],
    ) -> Union[float, npt.NDArray[np.float64]]:
        """Value of a drive at input x."""
        params = self._lookup(drive_id)
        value = params.evaluate(x)
        if not isinstance(value, np.ndarray):
            logger.debug(f"Drive '{drive_id}' ({params}) at x={format_scientific(float(x))}: {format_scientific(value)}")
        return value

    # --- Harmonic profiles ---

    def load_profile(
        self,
        ell: Sequence[float],
        bn_per_component: Sequence[Sequence[float]],
        an_per_component: Optional[Sequence[Sequence[float]]] = None,
    ) -> None:
        """
        Store the harmonic profiles along the magnet.

        Args:
            ell: Positions along the magnet axis in metres.
            bn_per_component: One row of normal components B_n per harmonic,
                starting with B_1.
            an_per_component: Skew components A_n with the same layout.
                Taken as zero when omitted.
        """
        ell_array = np.asarray(ell, dtype=np.float64).reshape(-1)
        bn = _as_profile(bn_per_component, "Bn")
        an = _as_profile(an_per_component, "An") if an_per_component is not None else np.zeros_like(bn)

        if an.shape != bn.shape:
            raise InvalidDataError(f"An profile shape {an.shape} does not match Bn profile shape {bn.shape}.")
        if not np.all(np.isfinite(ell_array)) or not np.all(np.isfinite(bn)) or not np.all(np.isfinite(an)):
            raise InvalidDataError("Harmonic profiles must be finite.")

        self._ell = ell_array
        self._bn_per_component = bn
        self._an_per_component = an
        logger.info(f"Loaded harmonic profile: {bn.shape[0]} component(s), {ell_array.size} position(s).")

    @property
    def component_count(self) -> int:
        return int(self._bn_per_component.shape[0])

    @property
    def has_profile(self) -> bool:
        return self.component_count > 0

    def get_ell(self) -> npt.NDArray[np.float64]:
        """Positions along the magnet in millimetres."""
        return self._ell * M_TO_MM

    def get_Bn(self, component: int) -> List[Tuple[float, float]]:
        """
        Strength of one component along the magnet as (ell [mm], B_n [T]) pairs.

        Odd components are reported with flipped sign, which is the convention
        of the field solver producing the profiles.
        """
        if 0 < component <= self.component_count:
            bn = self._bn_per_component[component - 1].copy()
        else:
            bn = np.empty(0, dtype=np.float64)

        ell = self.get_ell()
        if ell.size != bn.size:
            raise InvalidDataError(
                f"No B{component} profile matching the {ell.size} ell position(s) "
                f"({self.component_count} component(s) loaded)."
            )

        if component % 2 == 1:
            bn *= -1

        return combine_points(ell, bn)

    def get_bn(self) -> List[float]:
        """Integrated normal harmonics b_1 ... b_N in units."""
        return self._integrated_harmonics()[1]

    def get_an(self) -> List[float]:
        """Integrated skew harmonics a_1 ... a_N in units."""
        return self._integrated_harmonics()[0]

    def _integrated_harmonics(self) -> Tuple[List[float], List[float]]:
        if not self.has_profile:
            return [], []
        if self._ell.size < 2:
            raise InvalidDataError("Integrating a harmonic profile needs at least two ell positions.")

        an_total = integrate.trapezoid(self._an_per_component, self._ell, axis=1)
        bn_total = integrate.trapezoid(self._bn_per_component, self._ell, axis=1)

        ab_max = float(np.max(np.maximum(np.abs(an_total), np.abs(bn_total))))
        if ab_max == 0.0:
            raise InvalidDataError("All integrated harmonics are zero; cannot normalise.")

        an = UNITS * an_total / ab_max
        bn = UNITS * bn_total / ab_max
        for i, value in enumerate(bn, start=1):
            logger.debug(f"b_{i}: {format_scientific(float(value))}")
        return an.tolist(), bn.tolist()

    def plot_profile(self, component: int, ax: Optional[Axes] = None) -> Axes:
        """
        Plot B_n along the magnet for one component.
        """
        data = self.get_Bn(component)
        if not data:
            raise InvalidDataError(f"No B{component} profile to plot.")
        ell, bn = zip(*data)

        if ax is None:
            _, ax = plt.subplots(figsize=(7, 5), layout="constrained")

        ax.plot(ell, bn, 'r', lw=2)

        ax.grid(visible=True, which='major', axis='both', linestyle='-', color='gray', lw=0.5)
        ax.minorticks_on()
        ax.grid(visible=True, which='minor', axis='both', linestyle=':', color='gray', lw=0.5)

        ax.set_title(f"B{component} along the magnet")
        ax.set_xlabel("ell (mm)")
        ax.set_ylabel(f"B{component} (T)")
        return ax


def _copy_parameters(params: HarmonicDriveParameters) -> HarmonicDriveParameters:
    return HarmonicDriveParameters.from_dict(params.to_dict())


def _parse_parameters(drive_id: Any, params: Any) -> HarmonicDriveParameters:
    if isinstance(params, HarmonicDriveParameters):
        return _copy_parameters(params)
    try:
        return HarmonicDriveParameters.from_dict(params)
    except InvalidDataError as e:
        raise InvalidDataError(f"Drive '{drive_id}': {e}") from e


def _as_profile(rows: Sequence[Sequence[float]], name: str) -> npt.NDArray[np.float64]:
    try:
        profile = np.asarray(rows, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidDataError(f"{name} profile must be a rectangular table of numbers.") from e
    if profile.size == 0:
        return np.empty((0, 0), dtype=np.float64)
    if profile.ndim != 2:
        raise InvalidDataError(f"{name} profile must have one row per component, got shape {profile.shape}.")
    return profile
