"""
dataflow_fixpoint.errors
========================

Exception hierarchy for the fixpoint engine and its collaborators.

::

    DataflowError (base)
    ├── ProcessCanceledError   - cooperative cancellation from the host
    ├── InvalidFlowError       - instruction numbering is not dense 0..N-1
    ├── FlowFormatError        - malformed flow description text
    └── ConfigError            - invalid engine configuration

A CPU-time timeout is *not* an exception: the timeout entry point of
:class:`~dataflow_fixpoint.engine.DFAEngine` returns ``None`` instead.
"""

from __future__ import annotations

from typing import Any, Optional


class DataflowError(Exception):
    """Base exception for all dataflow-fixpoint errors."""

    def __init__(self, message: str, *, hint: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message


class ProcessCanceledError(DataflowError):
    """Raised when the host signals cancellation mid-computation.

    The engine never catches this; it unwinds to whoever started the
    analysis and no result is produced.
    """

    def __init__(self, message: str = "dataflow analysis cancelled") -> None:
        super().__init__(message)


class InvalidFlowError(DataflowError):
    """The instruction graph violates the dense-numbering invariant."""

    def __init__(
        self,
        message: str,
        *,
        instruction: Optional[Any] = None,
        hint: str = "",
    ) -> None:
        super().__init__(message, hint=hint)
        self.instruction = instruction


class FlowFormatError(DataflowError):
    """Raised when a flow description cannot be parsed or resolved."""

    def __init__(
        self,
        message: str,
        *,
        form: Optional[Any] = None,
        hint: str = "",
    ) -> None:
        super().__init__(message, hint=hint)
        self.form = form


class ConfigError(DataflowError):
    """Raised for invalid configuration values."""
    pass
