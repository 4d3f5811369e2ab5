"""Cooperative cancellation.

A cancellation token is a plain ``threading.Event``. Operations check it at
entry and at natural step boundaries; an in-flight statement is never
interrupted.
"""

from __future__ import annotations

import threading

from vibedash.core.errors import OperationCancelledError


def is_cancelled(cancel: threading.Event | None) -> bool:
    return cancel is not None and cancel.is_set()


def check_cancelled(cancel: threading.Event | None, operation: str) -> None:
    """Raise OperationCancelledError if the token has fired."""
    if is_cancelled(cancel):
        raise OperationCancelledError.during(operation)
