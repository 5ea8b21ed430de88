"""Error kinds raised by the work-order lifecycle engine."""

from __future__ import annotations

from typing import Any


class WorkOrderError(Exception):
    """Base class for errors scoped to a single work-order interaction."""

    code = "WORK_ORDER_ERROR"

    def __init__(self, message: str, work_order_id: str | None = None, **context: Any):
        super().__init__(message)
        self.work_order_id = work_order_id
        self.context = context


class NotFound(WorkOrderError):
    """Raised when operating on an unknown work-order id."""

    code = "NOT_FOUND"

    def __init__(self, work_order_id: str):
        super().__init__(f"Work order '{work_order_id}' not found", work_order_id)


class InvalidTransition(WorkOrderError):
    """Raised when the target status is not in the current status's allowed set."""

    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, current: Any, target: Any, work_order_id: str | None = None):
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        super().__init__(
            f"Cannot transition from {current_value} to {target_value}",
            work_order_id,
        )
        self.current = current
        self.target = target


class ConcurrentMoveInProgress(WorkOrderError):
    """Raised when a second move is attempted before the first one resolves."""

    code = "CONCURRENT_MOVE_IN_PROGRESS"

    def __init__(self, work_order_id: str):
        super().__init__(
            f"A move for work order '{work_order_id}' is still awaiting confirmation",
            work_order_id,
        )


class RemoteFailure(WorkOrderError):
    """Network or server-side failure while talking to the work-order API."""

    code = "REMOTE_FAILURE"

    def __init__(
        self,
        message: str,
        work_order_id: str | None = None,
        status_code: int | None = None,
        server_code: str | None = None,
    ):
        super().__init__(message, work_order_id)
        self.status_code = status_code
        self.server_code = server_code


class ControllerDisposed(WorkOrderError):
    """Raised when a move is requested after the board was torn down."""

    code = "CONTROLLER_DISPOSED"

    def __init__(self, work_order_id: str | None = None):
        super().__init__("Interaction controller has been disposed", work_order_id)


class FieldValidationError(ValueError):
    """Raised when a field edit payload fails validation."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors
