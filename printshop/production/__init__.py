"""Work-order lifecycle engine for the production board."""

from .registry import (
    INITIAL_STATUS,
    STATUSES,
    StatusInfo,
    WorkOrderStatus,
    allowed_next,
    estimated_hours_remaining,
    is_terminal,
    parse_status,
    status_info,
    status_order,
)
from .errors import (
    ConcurrentMoveInProgress,
    ControllerDisposed,
    FieldValidationError,
    InvalidTransition,
    NotFound,
    RemoteFailure,
    WorkOrderError,
)
from .types import (
    UNASSIGNED,
    QuoteSummary,
    StatusChange,
    WorkOrder,
    WorkOrderFilter,
    parse_datetime,
    validate_field_edit,
)
from .transitions import (
    is_transition_allowed,
    reachable_from,
    transition_kind,
    validate_transition,
)
from .store import StoreEvent, WorkOrderStore
from .board import Board, BoardColumn, LiveBoard, board_sort_key, build_board, render_board_text
from .stats import BoardStats, summarize
from .controller import (
    InteractionController,
    MoveInteraction,
    MoveOutcome,
    MoveState,
    WorkOrderDetail,
)

__all__ = [
    "Board",
    "BoardColumn",
    "BoardStats",
    "ConcurrentMoveInProgress",
    "ControllerDisposed",
    "FieldValidationError",
    "INITIAL_STATUS",
    "InteractionController",
    "InvalidTransition",
    "LiveBoard",
    "MoveInteraction",
    "MoveOutcome",
    "MoveState",
    "NotFound",
    "QuoteSummary",
    "RemoteFailure",
    "STATUSES",
    "StatusChange",
    "StatusInfo",
    "StoreEvent",
    "UNASSIGNED",
    "WorkOrder",
    "WorkOrderDetail",
    "WorkOrderError",
    "WorkOrderFilter",
    "WorkOrderStatus",
    "WorkOrderStore",
    "allowed_next",
    "board_sort_key",
    "build_board",
    "estimated_hours_remaining",
    "is_terminal",
    "is_transition_allowed",
    "parse_datetime",
    "parse_status",
    "reachable_from",
    "render_board_text",
    "status_info",
    "status_order",
    "summarize",
    "transition_kind",
    "validate_field_edit",
    "validate_transition",
]
