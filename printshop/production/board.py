"""Kanban board view: per-status columns, filtered and ordered."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Iterable

from .registry import STATUSES, WorkOrderStatus
from .types import WorkOrder, WorkOrderFilter, utc_now

if TYPE_CHECKING:
    from .store import StoreEvent, WorkOrderStore


@dataclass(frozen=True)
class BoardColumn:
    """One board column: every visible work order in a single status."""

    status: WorkOrderStatus
    label: str
    category: str
    orders: tuple[WorkOrder, ...]

    @property
    def count(self) -> int:
        return len(self.orders)


@dataclass(frozen=True)
class Board:
    """Derived, read-only board view."""

    columns: tuple[BoardColumn, ...]
    evaluated_at: datetime
    filter: WorkOrderFilter

    @property
    def counts(self) -> dict[WorkOrderStatus, int]:
        return {column.status: column.count for column in self.columns}

    @property
    def total(self) -> int:
        return sum(column.count for column in self.columns)

    @property
    def overdue(self) -> int:
        return sum(
            1
            for column in self.columns
            for order in column.orders
            if order.is_overdue(self.evaluated_at)
        )

    def column(self, status: WorkOrderStatus) -> BoardColumn:
        for column in self.columns:
            if column.status == status:
                return column
        raise KeyError(status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "evaluated_at": self.evaluated_at.isoformat(),
            "filter": {
                "assigned_to": self.filter.assigned_to,
                "overdue_only": self.filter.overdue_only,
                "statuses": sorted(s.value for s in self.filter.statuses)
                if self.filter.statuses is not None
                else None,
                "due_by": self.filter.due_by.isoformat() if self.filter.due_by else None,
            },
            "total": self.total,
            "overdue": self.overdue,
            "columns": [
                {
                    "status": column.status.value,
                    "label": column.label,
                    "category": column.category,
                    "count": column.count,
                    "work_orders": [order.to_dict() for order in column.orders],
                }
                for column in self.columns
            ],
        }


def board_sort_key(order: WorkOrder) -> tuple:
    """
    Priority ascending, then due date ascending with undated orders last.

    created_at and id break the remaining ties so the order is total.
    """
    undated = order.due_date is None
    return (
        order.priority,
        undated,
        order.due_date.timestamp() if order.due_date else 0.0,
        order.created_at.timestamp(),
        order.id,
    )


def build_board(
    orders: Iterable[WorkOrder],
    filter: WorkOrderFilter | None = None,
    now: datetime | None = None,
) -> Board:
    """
    Derive the board from a collection of work orders.

    Pure: the input is not mutated and the same inputs always give the
    same board. Column order is the registry's declared status order,
    regardless of data.
    """
    active_filter = filter or WorkOrderFilter()
    evaluated_at = now or utc_now()

    buckets: dict[WorkOrderStatus, list[WorkOrder]] = {info.status: [] for info in STATUSES}
    for order in orders:
        if active_filter.matches(order, evaluated_at):
            buckets[order.status].append(order)

    columns = tuple(
        BoardColumn(
            status=info.status,
            label=info.label,
            category=info.category,
            orders=tuple(sorted(buckets[info.status], key=board_sort_key)),
        )
        for info in STATUSES
    )
    return Board(columns=columns, evaluated_at=evaluated_at, filter=active_filter)


class LiveBoard:
    """
    Board view kept in step with a WorkOrderStore.

    Store notifications mark the view stale; it is rebuilt lazily on the
    next read. After close() notifications are ignored.
    """

    def __init__(
        self,
        store: "WorkOrderStore",
        filter: WorkOrderFilter | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._filter = filter or WorkOrderFilter()
        self._clock = clock
        self._lock = threading.Lock()
        self._board: Board | None = None
        self._closed = False
        self.revision = 0
        self._unsubscribe = store.subscribe(self._on_change)

    @property
    def filter(self) -> WorkOrderFilter:
        return self._filter

    def set_filter(self, filter: WorkOrderFilter) -> None:
        with self._lock:
            self._filter = filter
            self._board = None

    @property
    def stale(self) -> bool:
        return self._board is None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def board(self) -> Board:
        with self._lock:
            if self._board is None:
                self._board = build_board(self._store.list(), self._filter, self._clock())
            return self._board

    def _on_change(self, event: "StoreEvent") -> None:
        with self._lock:
            if self._closed:
                return
            self._board = None
            self.revision += 1

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._board = None
        self._unsubscribe()


def render_board_text(board: Board) -> str:
    """Plain-text listing of the board, one block per column."""
    lines: list[str] = []
    for column in board.columns:
        lines.append(f"== {column.label} ({column.count})")
        for order in column.orders:
            due = order.due_date.date().isoformat() if order.due_date else "-"
            flag = " OVERDUE" if order.is_overdue(board.evaluated_at) else ""
            assignee = order.assigned_to or "unassigned"
            lines.append(f"  [{order.priority}] {order.id} due:{due} @{assignee}{flag}")
    lines.append(f"total:{board.total} overdue:{board.overdue}")
    return "\n".join(lines)
