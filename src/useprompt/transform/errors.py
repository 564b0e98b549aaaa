"""Exceptions raised by the prompt transform engine."""

from __future__ import annotations

from typing import Any, Mapping


class TransformError(RuntimeError):
    """Base class for engine failures carrying structured details."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class CacheLoadError(TransformError):
    """Raised when the substitution cache exists but cannot be decoded.

    This aborts the whole transform pass: a corrupt cache is a problem with the
    build environment rather than with any single function.
    """


class FragmentParseError(TransformError):
    """Raised when generated code or imports are not valid Python."""

    def __init__(
        self,
        message: str,
        *,
        diagnostic: SyntaxError | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        merged = dict(details or {})
        if diagnostic is not None:
            merged.setdefault("line", diagnostic.lineno)
            merged.setdefault("offset", diagnostic.offset)
            merged.setdefault("reason", diagnostic.msg)
        super().__init__(message, details=merged)
        self.diagnostic = diagnostic


class HygieneError(FragmentParseError):
    """Raised when an imports block contains bindings that cannot be renamed."""
