"""
Error Taxonomy
==============
Typed exceptions raised by the model, the calculator and the result sinks.

Every error derives from CCToolsError and from the closest built-in exception,
so callers may catch either the specific type, the package base class or the
usual ValueError/KeyError/TypeError.
"""


class CCToolsError(Exception):
    """Base class for all errors raised by cctools."""


class InvalidDataError(CCToolsError, ValueError):
    """Malformed mesh, drive parameter or domain input."""


class DomainError(CCToolsError, ValueError):
    """Operands of a combination are not compatible."""


class UnknownDriveError(CCToolsError, KeyError):
    """A drive id is not present in the parameter map."""

    def __init__(self, drive_id: str) -> None:
        super().__init__(drive_id)
        self.drive_id = drive_id

    def __str__(self) -> str:
        return f"Unknown harmonic drive '{self.drive_id}'."


class OutOfDomainError(CCToolsError, ValueError):
    """A query point lies outside the model domain and extrapolation is disabled."""


class PathNotFoundError(CCToolsError, KeyError):
    """A configuration path does not resolve to an existing value."""

    def __str__(self) -> str:
        # KeyError would quote the message otherwise
        return str(self.args[0]) if self.args else ""


class TypeMismatchError(CCToolsError, TypeError):
    """A value does not have the type required by its target."""


class HandlerError(CCToolsError, RuntimeError):
    """A result sink failed to accept or persist a result."""
