"""
Model Handler
=============
Owns the configuration tree of a model and the objects built from it.

Why is this file needed?
------------------------
1. Single source of truth: The domain (Cube3D), the mesh samples
   (MeshDataHandler) and the harmonic drives (HarmonicsDataHandler) are all
   built from one JSON-like document. Every change goes through this class so
   the built objects never drift from the document.
2. Path access: `access_or_modify_target` reads or writes any value of the
   document by its path, validates the new value and rebuilds the affected
   part of the model. A failed rebuild leaves the model unchanged.
3. Working copy: A model loaded from a file is copied into a temporary folder
   first, the original file is never touched.

Document layout:
    {
        "domain": {"min": [x, y, z], "max": [x, y, z], "invert": false},
        "mesh": [{"pos": [x, y, z], "LONGITUDINAL": f, "NORMAL": f, "TRANSVERSE": f}, ...],
        "drives": {"B1": {"Offset": f, "Slope": f}, "B2": {"Constant": f}, ...}
    }
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union
import copy
import json
import logging
import os
import re
import shutil
import tempfile

from cctools.config import DEFAULT_DRIVE_PREFIX
from cctools.errors import InvalidDataError, PathNotFoundError, TypeMismatchError, UnknownDriveError
from cctools.model.geometry_primitives import Cube3D
from cctools.model.harmonic_drive import HarmonicDriveParameterMap, HarmonicDriveParameters
from cctools.analysis.harmonics_data_handler import HarmonicsDataHandler
from cctools.analysis.mesh_data_handler import MeshDataHandler

logger = logging.getLogger(__name__)

PathKey = Union[str, int]
Path = Union[str, Sequence[PathKey]]

DOMAIN_KEY = "domain"
MESH_KEY = "mesh"
DRIVES_KEY = "drives"
SECTIONS = (DOMAIN_KEY, MESH_KEY, DRIVES_KEY)


class _Unset:
    def __repr__(self) -> str:
        return "<unset>"


# Marks a read in access_or_modify_target; None is a valid value to write
_UNSET = _Unset()


class ModelHandler:
    """
    Class to manipulate the configuration of a model.

    Read access returns copies; the built objects (`domain`, `mesh`,
    `harmonics`) are replaced, never patched, when the document changes.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None) -> None:
        self.source_path: Optional[str] = None
        self.temp_json_path: Optional[str] = None
        self._temp_dir: Optional[str] = None

        self._config: Dict[str, Any] = {}
        self._domain: Optional[Cube3D] = None
        self._mesh = MeshDataHandler()
        self._harmonics = HarmonicsDataHandler()

        if config is not None:
            self.load_config(config)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(domain={self._domain}, samples={len(self._mesh)}, "
            f"drives={self._harmonics.drive_ids})"
        )

    # --- Loading & saving ---

    @classmethod
    def from_file(cls, path: str, work_on_copy: bool = True) -> ModelHandler:
        """
        Load a model from a JSON file.

        With `work_on_copy` the file is copied into a temporary folder first and
        `save()` writes to that copy (see `temp_json_path`).
        """
        handler = cls()
        handler.source_path = os.path.abspath(path)

        if work_on_copy:
            handler._temp_dir = tempfile.mkdtemp(prefix="cctools_model_")
            handler.temp_json_path = os.path.join(handler._temp_dir, os.path.basename(path))
            try:
                shutil.copyfile(path, handler.temp_json_path)
            except OSError as e:
                logger.error(f"Could not copy model file '{path}': {e}")
                handler.cleanup()
                raise
            logger.debug(f"Working on temporary copy: {handler.temp_json_path}")

        handler.reload()
        return handler

    @property
    def json_path(self) -> Optional[str]:
        """File backing this model: the temporary copy if there is one, else the source file."""
        return self.temp_json_path or self.source_path

    def reload(self) -> None:
        """Re-read the backing file and rebuild the model."""
        path = self.json_path
        if path is None:
            raise InvalidDataError("Model was not loaded from a file; nothing to reload.")

        logger.info(f"Loading model from: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Model file '{path}' is not valid JSON: {e}")
            raise InvalidDataError(f"Model file '{path}' is not valid JSON: {e}") from e

        self.load_config(config)

    def load_config(self, config: Dict[str, Any]) -> None:
        """Replace the whole document. Nothing changes if the new document is invalid."""
        if not isinstance(config, dict):
            raise InvalidDataError(f"Model configuration must be an object, got {type(config).__name__}.")

        config = copy.deepcopy(config)
        domain = _build_domain(config)
        mesh = _build_mesh(config)
        harmonics = _build_harmonics(config)
        _validate_samples(domain, mesh)

        self._config = config
        self._domain, self._mesh, self._harmonics = domain, mesh, harmonics
        logger.info(f"Model built: {len(mesh)} mesh sample(s), {len(harmonics)} drive(s).")

    def save(self, path: Optional[str] = None) -> str:
        """Write the document to `path` (default: the backing file). Returns the path written."""
        target = path or self.json_path
        if target is None:
            raise InvalidDataError("No path given and the model has no backing file.")
        if self.temp_json_path is None and target == self.source_path:
            logger.warning(f"Overwriting source model file: {target}")

        with open(target, "w", encoding="utf-8") as f:
            json.dump(self._config, f, indent=2)
        logger.info(f"Model saved to: {target}")
        return target

    def cleanup(self) -> None:
        """Delete the temporary working copy, if any."""
        if self._temp_dir is not None and os.path.exists(self._temp_dir):
            shutil.rmtree(self._temp_dir)
            logger.debug(f"Deleted temporary folder: {self._temp_dir}")
        self._temp_dir = None
        self.temp_json_path = None

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._config)

    # --- Built model ---

    @property
    def domain(self) -> Cube3D:
        if self._domain is None:
            raise InvalidDataError("Model has no domain; load a configuration first.")
        return self._domain

    @property
    def mesh(self) -> MeshDataHandler:
        return self._mesh

    @property
    def harmonics(self) -> HarmonicsDataHandler:
        return self._harmonics

    # --- Path access ---

    def access_or_modify_target(
        self,
        path: Path,
        new_value: Any = _UNSET,
        expected_type: Optional[Union[type, Tuple[type, ...]]] = None,
    ) -> Any:
        """
        Read or write the value at `path`.

        Args:
            path: Sequence of keys and list indices, or a dotted string such as
                "drives.B1.Offset" or "mesh.0.NORMAL".
            new_value: Value to write. Omit to read.
            expected_type: Type the value must have. `float` accepts ints,
                `bool` never counts as a number.

        Returns:
            A copy of the value on read, the previous value on write.

        Raises:
            PathNotFoundError: The path does not resolve.
            TypeMismatchError: The value has the wrong type.
            InvalidDataError: The written value makes the model invalid. The
                write is rolled back.
        """
        keys = _parse_path(path)
        parent, key = _resolve_parent(self._config, keys)
        current = parent[key]

        if new_value is _UNSET:
            _check_expected_type(current, expected_type, keys)
            return copy.deepcopy(current)

        _check_expected_type(new_value, expected_type, keys)
        _check_compatible(current, new_value, keys)

        with self._transaction(sections=(keys[0],)):
            parent[key] = copy.deepcopy(new_value)

        logger.debug(f"Set {_format_path(keys)} = {new_value!r} (was {current!r})")
        return current

    # --- Harmonic drives ---

    def get_harmonic_drive_values(self, prefix: str = DEFAULT_DRIVE_PREFIX) -> HarmonicDriveParameterMap:
        """Drives whose id is `prefix` followed by one or two digits, e.g. "B1" to "B10"."""
        pattern = re.compile(re.escape(prefix) + r"\d{1,2}")
        parameters = self._harmonics.parameter_map
        return {drive_id: params for drive_id, params in parameters.items() if pattern.fullmatch(drive_id)}

    def set_harmonic_drive_value(self, name: str, params: Union[HarmonicDriveParameters, Dict[str, Any]]) -> None:
        """
        Update the coefficients of a stored drive.

        Only coefficients the stored drive carries can be written: a constant
        drive accepts Constant, a linear drive Offset and/or Slope.
        """
        params = HarmonicDriveParameters.from_dict(params)
        drives = self._config.get(DRIVES_KEY) or {}
        if name not in drives:
            raise UnknownDriveError(name)

        updated = HarmonicDriveParameters.from_dict(drives[name])
        for parameter_type in params.present_types():
            try:
                updated.set_value(params.get(parameter_type), parameter_type)
            except TypeMismatchError as e:
                raise TypeMismatchError(
                    f"Tried to apply non-matching parameter '{parameter_type}' to harmonic drive '{name}' ({updated})."
                ) from e

        with self._transaction(sections=(DRIVES_KEY,)):
            self._config[DRIVES_KEY][name] = updated.to_dict()
        logger.info(f"Harmonic drive '{name}' set to: {updated}")

    def apply_params(self, parameter_map: HarmonicDriveParameterMap) -> None:
        """Apply a set of drive parameters; nothing is applied if one of them fails."""
        with self._transaction(sections=(DRIVES_KEY,)):
            for name, params in parameter_map.items():
                self.set_harmonic_drive_value(name, params)

    # --- Access by element name ---

    def get_value_by_name(self, name: str, children: Sequence[PathKey], target: PathKey) -> Any:
        """
        Value of `target` below the first element named `name`.

        The element is searched recursively; `children` are traversed from the
        element to reach the object holding `target`.
        """
        matches = _find_named(self._config, name)
        if not matches:
            raise PathNotFoundError(f"Element with name '{name}' not found.")
        parent, key = _resolve_parent(matches[0], [*children, target])
        return copy.deepcopy(parent[key])

    def set_value_by_name(self, name: str, children: Sequence[PathKey], target: PathKey, value: Any) -> int:
        """
        Set `target` below every element named `name`. Returns the number of elements updated.

        Example: set_value_by_name("probe-1", [], "NORMAL", 2.5)
        """
        matches = _find_named(self._config, name)
        if not matches:
            raise PathNotFoundError(f"Element with name '{name}' not found.")

        with self._transaction(sections=SECTIONS):
            for element in matches:
                parent, key = _resolve_parent(element, [*children, target])
                _check_compatible(parent[key], value, [name, *children, target])
                parent[key] = copy.deepcopy(value)

        logger.debug(f"Set '{target}' of {len(matches)} element(s) named '{name}' to {value!r}")
        return len(matches)

    # --- Helpers ---

    @contextmanager
    def _transaction(self, sections: Sequence[PathKey]) -> Iterator[None]:
        """Rebuild the given sections after the body ran; restore the document if anything fails."""
        snapshot = copy.deepcopy(self._config)
        built = (self._domain, self._mesh, self._harmonics)
        try:
            yield
            self._rebuild(sections)
        except Exception:
            self._config = snapshot
            self._domain, self._mesh, self._harmonics = built
            raise

    def _rebuild(self, sections: Sequence[PathKey]) -> None:
        touched = set(sections)
        domain = _build_domain(self._config) if DOMAIN_KEY in touched else self._domain
        mesh = _build_mesh(self._config) if MESH_KEY in touched else self._mesh
        harmonics = _build_harmonics(self._config) if DRIVES_KEY in touched else self._harmonics

        if touched & {DOMAIN_KEY, MESH_KEY}:
            _validate_samples(domain, mesh)

        self._domain, self._mesh, self._harmonics = domain, mesh, harmonics


def _build_domain(config: Dict[str, Any]) -> Cube3D:
    if DOMAIN_KEY not in config:
        raise InvalidDataError("Model configuration requires a 'domain' section.")
    return Cube3D.from_dict(config[DOMAIN_KEY])


def _build_mesh(config: Dict[str, Any]) -> MeshDataHandler:
    samples = config.get(MESH_KEY) or []
    if not isinstance(samples, list):
        raise InvalidDataError("Section 'mesh' must be a list of samples.")
    return MeshDataHandler(samples)


def _build_harmonics(config: Dict[str, Any]) -> HarmonicsDataHandler:
    drives = config.get(DRIVES_KEY) or {}
    if not isinstance(drives, dict):
        raise InvalidDataError("Section 'drives' must map drive ids to parameters.")
    return HarmonicsDataHandler(drives)


def _validate_samples(domain: Cube3D, mesh: MeshDataHandler) -> None:
    outside = [s for s in mesh.samples_outside(domain) if not s.extrapolated]
    if outside:
        positions = [s.position.to_list() for s in outside[:3]]
        raise InvalidDataError(
            f"{len(outside)} mesh sample(s) lie outside the domain {domain} and are not tagged "
            f"'extrapolated', e.g. {positions}"
        )


def _parse_path(path: Path) -> List[PathKey]:
    if isinstance(path, str):
        keys: List[PathKey] = [int(token) if token.isdigit() else token for token in path.split(".")]
    else:
        keys = list(path)

    if not keys or any(k == "" for k in keys):
        raise PathNotFoundError(f"Invalid path: {path!r}")
    for k in keys:
        if isinstance(k, bool) or not isinstance(k, (str, int)):
            raise PathNotFoundError(f"Path keys must be strings or list indices, got {k!r}.")
    return keys


def _format_path(keys: Sequence[PathKey]) -> str:
    return ".".join(str(k) for k in keys)


def _resolve_parent(root: Any, keys: Sequence[PathKey]) -> Tuple[Any, PathKey]:
    """Container holding the last key, and that key (normalised for the container type)."""
    node = root
    for depth, key in enumerate(keys):
        if isinstance(node, dict):
            key = str(key)
            if key not in node:
                raise PathNotFoundError(f"Path '{_format_path(keys[:depth + 1])}' not found.")
        elif isinstance(node, list):
            if isinstance(key, str) and key.isdigit():
                key = int(key)
            if not isinstance(key, int) or not 0 <= key < len(node):
                raise PathNotFoundError(f"Index '{_format_path(keys[:depth + 1])}' out of bounds.")
        else:
            raise PathNotFoundError(
                f"Path '{_format_path(keys[:depth + 1])}' descends into a {type(node).__name__} value."
            )

        if depth == len(keys) - 1:
            return node, key
        node = node[key]

    raise PathNotFoundError("Empty path.")


def _find_named(node: Any, name: str) -> List[Dict[str, Any]]:
    """All objects with "name" == name; the search does not descend into a match."""
    if isinstance(node, dict):
        if node.get("name") == name:
            return [node]
        children = node.values()
    elif isinstance(node, list):
        children = node
    else:
        return []

    found: List[Dict[str, Any]] = []
    for child in children:
        found.extend(_find_named(child, name))
    return found


def _json_kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _check_compatible(current: Any, new_value: Any, keys: Sequence[PathKey]) -> None:
    new_kind = _json_kind(new_value)
    if new_kind not in ("null", "boolean", "number", "string", "array", "object"):
        raise TypeMismatchError(f"Value of type {new_kind} cannot be stored in the model.")

    current_kind = _json_kind(current)
    if "null" in (current_kind, new_kind):
        return
    if current_kind != new_kind:
        raise TypeMismatchError(
            f"Cannot replace {current_kind} at '{_format_path(keys)}' with {new_kind} {new_value!r}."
        )


def _check_expected_type(value: Any, expected_type: Optional[Union[type, Tuple[type, ...]]], keys: Sequence[PathKey]) -> None:
    if expected_type is None:
        return

    types = expected_type if isinstance(expected_type, tuple) else (expected_type,)
    for t in types:
        if isinstance(value, bool):
            matched = t is bool
        elif t is float:
            matched = isinstance(value, (int, float))
        else:
            matched = isinstance(value, t)
        if matched:
            return

    names = ", ".join(t.__name__ for t in types)
    raise TypeMismatchError(
        f"Value at '{_format_path(keys)}' is {type(value).__name__} {value!r}, expected {names}."
    )
