"""Status registry: lifecycle states, display metadata and legal transitions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class WorkOrderStatus(Enum):
    """
    Production lifecycle states.

    Declaration order is the board's column order.
    """
    PENDING = "pending"
    IN_DESIGN = "in_design"
    READY_TO_PRINT = "ready_to_print"
    PRINTING = "printing"
    FINISHING = "finishing"
    QUALITY_CHECK = "quality_check"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class StatusInfo:
    """Display metadata and outgoing edges for one lifecycle state."""

    status: WorkOrderStatus
    label: str
    category: str
    phase: str
    progress: float
    notify_on_enter: bool
    allowed_next: tuple[WorkOrderStatus, ...]


_S = WorkOrderStatus

STATUSES: tuple[StatusInfo, ...] = (
    StatusInfo(_S.PENDING, "Pending", "gray", "Pre-production", 0.0, False,
               (_S.IN_DESIGN, _S.CANCELLED)),
    StatusInfo(_S.IN_DESIGN, "In Design", "blue", "Pre-production", 0.15, False,
               (_S.READY_TO_PRINT, _S.PENDING, _S.CANCELLED)),
    StatusInfo(_S.READY_TO_PRINT, "Ready to Print", "indigo", "Production", 0.25, True,
               (_S.PRINTING, _S.IN_DESIGN, _S.CANCELLED)),
    StatusInfo(_S.PRINTING, "Printing", "yellow", "Production", 0.60, False,
               (_S.FINISHING, _S.QUALITY_CHECK, _S.CANCELLED)),
    StatusInfo(_S.FINISHING, "Finishing", "orange", "Post-production", 0.85, False,
               (_S.QUALITY_CHECK, _S.PRINTING, _S.CANCELLED)),
    StatusInfo(_S.QUALITY_CHECK, "Quality Check", "purple", "Post-production", 0.95, True,
               (_S.COMPLETE, _S.PRINTING, _S.FINISHING, _S.CANCELLED)),
    StatusInfo(_S.COMPLETE, "Complete", "green", "Completed", 1.0, True,
               ()),
    StatusInfo(_S.CANCELLED, "Cancelled", "red", "Cancelled", 0.0, False,
               (_S.PENDING,)),
)

INITIAL_STATUS = WorkOrderStatus.PENDING

_BY_STATUS: dict[WorkOrderStatus, StatusInfo] = {info.status: info for info in STATUSES}


def status_order() -> tuple[WorkOrderStatus, ...]:
    """Registry states in declared order."""
    return tuple(info.status for info in STATUSES)


def status_info(status: WorkOrderStatus) -> StatusInfo:
    return _BY_STATUS[status]


def allowed_next(status: WorkOrderStatus) -> tuple[WorkOrderStatus, ...]:
    """Statuses a work order may move to from ``status``."""
    return _BY_STATUS[status].allowed_next


def is_terminal(status: WorkOrderStatus) -> bool:
    return not _BY_STATUS[status].allowed_next


def parse_status(value: str | WorkOrderStatus) -> WorkOrderStatus:
    """
    Resolve a status from its wire value.

    Raises:
        ValueError: For strings outside the registry
    """
    if isinstance(value, WorkOrderStatus):
        return value
    try:
        return WorkOrderStatus(str(value).strip().lower())
    except ValueError:
        raise ValueError(
            f"Unknown work order status '{value}'. "
            f"Expected one of: {[s.value for s in WorkOrderStatus]}"
        ) from None


def estimated_hours_remaining(status: WorkOrderStatus, estimated_hours: float) -> float:
    """Hours left on a job given its total estimate and current stage."""
    return max(0.0, estimated_hours * (1 - _BY_STATUS[status].progress))
