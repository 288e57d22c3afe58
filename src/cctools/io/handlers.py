"""
Result Handlers
===============
Sinks receiving the CalcResults of a ModelCalculator.

Why is this file needed?
------------------------
1. Decoupling: The calculator does not know what happens to a result. A sink
   may drop it (dry runs), keep it in memory, or export it.
2. Exports: CSV for spreadsheets, HDF5 for numerical post-processing and VTU
   (point cloud) for ParaView. These are exports, not a project format; a
   model is always described by its configuration document.

Every sink follows the same lifecycle: `accept` results, then `close` once
(also available as a context manager). Accepting after close is an error.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from importlib.metadata import PackageNotFoundError, version
from typing import Any, Dict, List, Optional, TextIO, Union, TYPE_CHECKING
import csv
import logging
import os

import h5py
import meshio
import numpy as np

from cctools.analysis.results import CalcResult
from cctools.errors import HandlerError

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)

try:
    APP_VERSION = version("cctools")
except PackageNotFoundError:
    APP_VERSION = "0.0.0-dev"

CSV_COLUMNS = [
    "x_pos", "y_pos", "z_pos", "drive_id", "x", "component",
    "mesh_value", "harmonic_correction", "value", "rule", "extrapolated",
]


class CalcResultHandlerBase(ABC):
    """
    Abstract base class for calculation result handling.
    """

    def __init__(self) -> None:
        self._count = 0
        self._closed = False

    def __enter__(self) -> CalcResultHandlerBase:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def count(self) -> int:
        """Number of results accepted so far."""
        return self._count

    @property
    def closed(self) -> bool:
        return self._closed

    def accept(self, result: CalcResult) -> None:
        if self._closed:
            raise HandlerError(f"{self.__class__.__name__} is closed and cannot accept results.")
        self._accept(result)
        self._count += 1

    def close(self) -> None:
        """Flush and release resources. Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        self._close()

    @abstractmethod
    def _accept(self, result: CalcResult) -> None:
        pass

    def _close(self) -> None:
        pass


class NullResultHandler(CalcResultHandlerBase):
    """Counts results and drops them."""

    def _accept(self, result: CalcResult) -> None:
        pass


class InMemoryResultHandler(CalcResultHandlerBase):
    """Keeps every result in a list."""

    def __init__(self) -> None:
        super().__init__()
        self._results: List[CalcResult] = []

    @property
    def results(self) -> List[CalcResult]:
        return list(self._results)

    def values(self) -> npt.NDArray[np.float64]:
        return np.array([r.value for r in self._results], dtype=np.float64)

    def records(self) -> List[Dict[str, Any]]:
        return [r.to_record() for r in self._results]

    def clear(self) -> None:
        self._results.clear()
        self._count = 0

    def _accept(self, result: CalcResult) -> None:
        self._results.append(result)


class CsvResultWriter(CalcResultHandlerBase):
    """
    Writes one row per result.

    The target is a file path (opened and owned by the writer) or an open text
    stream (left open on close).
    """

    def __init__(self, target: Union[str, os.PathLike, TextIO], delimiter: str = ",") -> None:
        super().__init__()
        if isinstance(target, (str, os.PathLike)):
            self.path: Optional[str] = os.fspath(target)
            try:
                self._stream: TextIO = open(self.path, "w", newline="", encoding="utf-8")
            except OSError as e:
                logger.error(f"Could not open CSV file '{self.path}': {e}")
                raise HandlerError(f"Could not open CSV file '{self.path}': {e}") from e
            self._owns_stream = True
        else:
            self.path = None
            self._stream = target
            self._owns_stream = False

        self._writer = csv.DictWriter(self._stream, fieldnames=CSV_COLUMNS, delimiter=delimiter, extrasaction="ignore")
        self._header_written = False

    def _accept(self, result: CalcResult) -> None:
        try:
            if not self._header_written:
                self._writer.writeheader()
                self._header_written = True
            self._writer.writerow(result.to_record())
        # a closed caller-supplied stream raises ValueError
        except (OSError, ValueError) as e:
            logger.error(f"Writing CSV row failed: {e}")
            raise HandlerError(f"Writing CSV row failed: {e}") from e

    def _close(self) -> None:
        try:
            if not self._header_written:
                self._writer.writeheader()
            self._stream.flush()
            if self._owns_stream:
                self._stream.close()
                logger.info(f"Wrote {self.count} result(s) to: {self.path}")
        except (OSError, ValueError) as e:
            logger.error(f"Closing CSV output failed: {e}")
            raise HandlerError(f"Closing CSV output failed: {e}") from e


class _BufferedResultWriter(CalcResultHandlerBase):
    """Collects results and writes them to `path` in one go on close."""

    def __init__(self, path: Union[str, os.PathLike]) -> None:
        super().__init__()
        self.path = os.fspath(path)
        self._results: List[CalcResult] = []

    def _accept(self, result: CalcResult) -> None:
        self._results.append(result)

    def _close(self) -> None:
        logger.info(f"Writing {len(self._results)} result(s) to: {self.path}")
        try:
            self._write()
        except (OSError, ValueError, TypeError, KeyError) as e:
            logger.exception(f"Failed to write results to '{self.path}'")
            raise HandlerError(f"Failed to write results to '{self.path}': {e}") from e
        finally:
            self._results.clear()

    def _columns(self) -> Dict[str, npt.NDArray[Any]]:
        results = self._results
        return {
            "points": np.array([r.query.point.to_list() for r in results], dtype=np.float64).reshape(-1, 3),
            "values": np.array([r.value for r in results], dtype=np.float64),
            "mesh_values": np.array([r.mesh_value for r in results], dtype=np.float64),
            "corrections": np.array([r.harmonic_correction for r in results], dtype=np.float64),
            "x": np.array([r.query.x for r in results], dtype=np.float64),
            "extrapolated": np.array([r.provenance.extrapolated for r in results], dtype=np.int8),
        }

    @abstractmethod
    def _write(self) -> None:
        pass


class Hdf5ResultWriter(_BufferedResultWriter):
    """
    Writes all results as datasets of one HDF5 file.

    Datasets: points (n, 3), values, mesh_values, corrections, x, extrapolated, drive_ids.
    """

    def _write(self) -> None:
        columns = self._columns()
        drive_ids = [r.query.drive_id or "" for r in self._results]
        rules = {r.rule.value for r in self._results}

        with h5py.File(self.path, "w") as f:
            f.attrs["version"] = APP_VERSION
            f.attrs["rule"] = rules.pop() if len(rules) == 1 else ",".join(sorted(rules))
            f.attrs["count"] = len(self._results)

            grp = f.create_group("results")
            for name, data in columns.items():
                grp.create_dataset(name, data=data, compression="gzip")
            grp.create_dataset("drive_ids", data=np.array(drive_ids, dtype=h5py.string_dtype("utf-8")))


class VtuResultWriter(_BufferedResultWriter):
    """Writes the evaluated points as a VTU point cloud (one vertex cell per point)."""

    def _write(self) -> None:
        columns = self._columns()
        points = columns["points"]
        cells = [("vertex", np.arange(len(points), dtype=np.int64).reshape(-1, 1))]

        mesh = meshio.Mesh(
            points,
            cells,
            point_data={
                "value": columns["values"],
                "mesh_value": columns["mesh_values"],
                "harmonic_correction": columns["corrections"],
                "x": columns["x"],
            },
        )
        meshio.write(self.path, mesh, file_format="vtu")
