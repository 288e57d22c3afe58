"""
cctools
=======
Evaluate field values of a harmonic-drive-corrected magnet model at query points.

Typical use:
    >>> from cctools import ModelHandler, ModelCalculator, InMemoryResultHandler
    >>> model = ModelHandler.from_file("model.json")
    >>> calculator = ModelCalculator(model, InMemoryResultHandler())
    >>> calculator.compute_point([5, 5, 5], drive_id="B1", x=10.0).value
"""
from importlib.metadata import PackageNotFoundError, version

from cctools.errors import (
    CCToolsError,
    DomainError,
    HandlerError,
    InvalidDataError,
    OutOfDomainError,
    PathNotFoundError,
    TypeMismatchError,
    UnknownDriveError,
)
from cctools.model.geometry_primitives import Cube3D, Point
from cctools.model.harmonic_drive import (
    HarmonicDriveParameterMap,
    HarmonicDriveParameters,
    HarmonicDriveParameterType,
)
from cctools.model.mesh import CombinePolicy, MeshFieldComponent, MeshSample, make_sample
from cctools.analysis.mesh_data_handler import MeshDataHandler, combine_points
from cctools.analysis.harmonics_data_handler import HarmonicsDataHandler
from cctools.analysis.results import CalcQuery, CalcResult, CombinationRule, ExtrapolationPolicy, Provenance
from cctools.model.model_handler import ModelHandler
from cctools.io.handlers import (
    CalcResultHandlerBase,
    CsvResultWriter,
    Hdf5ResultWriter,
    InMemoryResultHandler,
    NullResultHandler,
    VtuResultWriter,
)
from cctools.solvers.calculator import ModelCalculator
from cctools.logging_config import setup_logging, teardown_logging

try:
    __version__ = version("cctools")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

__all__ = [
    "CCToolsError", "DomainError", "HandlerError", "InvalidDataError", "OutOfDomainError",
    "PathNotFoundError", "TypeMismatchError", "UnknownDriveError",
    "Cube3D", "Point",
    "HarmonicDriveParameterMap", "HarmonicDriveParameters", "HarmonicDriveParameterType",
    "CombinePolicy", "MeshFieldComponent", "MeshSample", "make_sample",
    "MeshDataHandler", "combine_points", "HarmonicsDataHandler",
    "CalcQuery", "CalcResult", "CombinationRule", "ExtrapolationPolicy", "Provenance",
    "ModelHandler", "ModelCalculator",
    "CalcResultHandlerBase", "CsvResultWriter", "Hdf5ResultWriter", "InMemoryResultHandler",
    "NullResultHandler", "VtuResultWriter",
    "setup_logging", "teardown_logging",
]
