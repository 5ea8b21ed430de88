"""Transition validation against the status registry."""

from __future__ import annotations

from collections import deque

from .errors import InvalidTransition
from .registry import INITIAL_STATUS, WorkOrderStatus, allowed_next, status_order


def is_transition_allowed(current: WorkOrderStatus, target: WorkOrderStatus) -> bool:
    """
    Decide whether ``current -> target`` is a legal move.

    Exact membership in the registry's allowed-next set; a no-op
    (``target == current``) is never a move.
    """
    if current == target:
        return False
    return target in allowed_next(current)


def validate_transition(
    current: WorkOrderStatus,
    target: WorkOrderStatus,
    work_order_id: str | None = None,
) -> None:
    """Raise InvalidTransition unless ``current -> target`` is legal."""
    if not is_transition_allowed(current, target):
        raise InvalidTransition(current, target, work_order_id)


def transition_kind(current: WorkOrderStatus, target: WorkOrderStatus) -> str:
    """Classify a legal move for logs and history entries."""
    if target == WorkOrderStatus.CANCELLED:
        return "cancel"
    if current == WorkOrderStatus.CANCELLED:
        return "reopen"
    order = status_order()
    if order.index(target) > order.index(current):
        return "advance"
    return "rework"


def reachable_from(start: WorkOrderStatus = INITIAL_STATUS) -> frozenset[WorkOrderStatus]:
    """All statuses reachable from ``start`` (inclusive) via legal moves."""
    seen = {start}
    queue = deque([start])
    while queue:
        status = queue.popleft()
        for nxt in allowed_next(status):
            if nxt not in seen:
                seen.add(nxt)
                queue.append(nxt)
    return frozenset(seen)
