"""Layered application errors and their mapping to RPC status codes."""

from __future__ import annotations

import logging
import traceback
from enum import IntEnum
from typing import Iterable, Optional, Tuple

log = logging.getLogger(__name__)


class Layer(IntEnum):
    """Architectural layer an error was raised in."""

    INTERFACE = 1
    APPLICATION = 2
    DOMAIN = 3
    INFRASTRUCTURE = 4


class Code(IntEnum):
    """Kind of failure carried by a HexagonalError."""

    ENTITY_NOT_FOUND = 1
    FORBIDDEN = 2
    INVALID_ARGUMENTS = 3
    INTERNAL = 4
    INVALID_REQUEST = 5
    UNIQUE_CONSTRAINT_VIOLATION = 6


class StatusCode(IntEnum):
    """RPC status codes reported to clients."""

    OK = 0
    INVALID_ARGUMENT = 3
    NOT_FOUND = 5
    INTERNAL = 13


class HexagonalError(Exception):
    """An error tagged with the layer it came from and a failure code."""

    def __init__(
        self,
        layer: Layer,
        code: Code,
        message: str,
        thrown_at_line: str = "",
        stack: Optional[Iterable[traceback.FrameSummary]] = None,
    ) -> None:
        super().__init__(message)
        self.layer = Layer(layer)
        self.code = Code(code)
        self.message = message
        self.thrown_at_line = thrown_at_line
        self._stack = traceback.StackSummary.from_list(list(stack or []))

    def __str__(self) -> str:
        return self.message

    def details(self) -> str:
        """One line describing message, code, layer and origin."""
        return (
            f"error: {self.message}, code: {int(self.code)}, "
            f"layer: {int(self.layer)}, at: {self.thrown_at_line}"
        )

    def stack_trace(self) -> str:
        """The message followed by the stack captured when the error was made."""
        return f"error: {self.message}\n" + "".join(self._stack.format())


def _new(layer: Layer, code: Code, message: str) -> HexagonalError:
    # Drop this helper and the public factory from the captured stack.
    stack = list(traceback.extract_stack())[:-2]
    origin = f"{stack[-1].filename}:{stack[-1].lineno}" if stack else ""
    return HexagonalError(layer, code, message, origin, stack)


def interface_layer_error(code: Code, message: str) -> HexagonalError:
    """Create an error belonging to the interface layer."""
    return _new(Layer.INTERFACE, code, message)


def application_layer_error(code: Code, message: str) -> HexagonalError:
    """Create an error belonging to the application layer."""
    return _new(Layer.APPLICATION, code, message)


def domain_layer_error(code: Code, message: str) -> HexagonalError:
    """Create an error belonging to the domain layer."""
    return _new(Layer.DOMAIN, code, message)


def infrastructure_layer_error(code: Code, message: str) -> HexagonalError:
    """Create an error belonging to the infrastructure layer."""
    return _new(Layer.INFRASTRUCTURE, code, message)


def status_for_error(err: Optional[BaseException]) -> Optional[Tuple[StatusCode, str]]:
    """Map an error to the RPC status and message sent to the client."""
    if err is None:
        return None
    if isinstance(err, HexagonalError):
        if err.code is Code.ENTITY_NOT_FOUND:
            status = StatusCode.NOT_FOUND
        elif err.code is Code.INVALID_ARGUMENTS:
            status = StatusCode.INVALID_ARGUMENT
        else:
            status = StatusCode.INTERNAL
        log.debug(err.details())
        return status, str(err)
    log.error(str(err))
    return StatusCode.INTERNAL, str(err)