"""Authoritative in-memory cache of work orders with per-order serialized mutation."""

from __future__ import annotations

import threading
from contextlib import ExitStack
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Iterable

from printshop.logger import get_logger

from .errors import NotFound
from .registry import WorkOrderStatus, parse_status
from .transitions import transition_kind, validate_transition
from .types import (
    StatusChange,
    WorkOrder,
    WorkOrderFilter,
    utc_now,
    validate_field_edit,
    validate_status_notes,
)

if TYPE_CHECKING:
    from printshop.backend.protocol import WorkOrderBackend

log = get_logger("STORE")


@dataclass(frozen=True)
class StoreEvent:
    """
    Change notification emitted after every store mutation.

    kind is one of: status_changed, fields_edited, rolled_back, replaced,
    loaded, invalidated. work_order_id is None for whole-store events.
    """
    kind: str
    work_order_id: str | None = None
    work_order: WorkOrder | None = None


Listener = Callable[[StoreEvent], None]


class WorkOrderStore:
    """
    Cache of the current authoritative work orders, keyed by id.

    All status changes go through transition()/apply_status_change(), which
    validate against the registry. Mutations of one id are serialized by a
    per-id lock; different ids never contend.

    Example:
        store = WorkOrderStore(backend)
        store.refresh()
        store.apply_status_change("wo-1", WorkOrderStatus.IN_DESIGN)
    """

    def __init__(
        self,
        backend: "WorkOrderBackend | None" = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._backend = backend
        self._clock = clock
        self._orders: dict[str, WorkOrder] = {}
        self._history: dict[str, list[StatusChange]] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._guard = threading.Lock()
        self._listeners: list[Listener] = []

    def _lock_for(self, work_order_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(work_order_id)
            if lock is None:
                lock = self._locks[work_order_id] = threading.RLock()
            return lock

    # --- Read Operations ---

    def __len__(self) -> int:
        return len(self._orders)

    def __contains__(self, work_order_id: object) -> bool:
        return work_order_id in self._orders

    def get(self, work_order_id: str) -> WorkOrder:
        """
        Fetch a work order by id.

        Raises:
            NotFound: If the id is not cached
        """
        order = self._orders.get(work_order_id)
        if order is None:
            raise NotFound(work_order_id)
        return order

    def list(
        self,
        filter: WorkOrderFilter | None = None,
        now: datetime | None = None,
    ) -> list[WorkOrder]:
        """All work orders matching ``filter``. Order is unspecified."""
        with self._guard:
            orders = list(self._orders.values())
        if filter is None:
            return orders
        now = now or self._clock()
        return [order for order in orders if filter.matches(order, now)]

    def history(self, work_order_id: str) -> list[StatusChange]:
        """Status changes applied to a work order, oldest first."""
        self.get(work_order_id)
        with self._lock_for(work_order_id):
            return list(self._history.get(work_order_id, []))

    # --- Mutations ---

    def transition(
        self,
        work_order_id: str,
        new_status: WorkOrderStatus | str,
        notes: str | None = None,
        actor: str = "system",
    ) -> StatusChange:
        """
        Apply a validated status change and return its audit record.

        Raises:
            NotFound: Unknown id
            InvalidTransition: Target not in the current status's allowed set
            FieldValidationError: Notes too long
        """
        target = parse_status(new_status)
        validate_status_notes(notes)

        with self._lock_for(work_order_id):
            previous = self.get(work_order_id)
            validate_transition(previous.status, target, work_order_id)

            now = self._clock()
            changes: dict[str, Any] = {"status": target, "updated_at": now}
            if target == WorkOrderStatus.IN_DESIGN and previous.actual_start is None:
                changes["actual_start"] = now
            if target == WorkOrderStatus.COMPLETE:
                changes["actual_finish"] = now

            current = previous.with_changes(**changes)
            change = StatusChange(
                work_order_id=work_order_id,
                from_status=previous.status,
                to_status=target,
                at=now,
                previous=previous,
                current=current,
                notes=notes,
                actor=actor,
            )
            self._orders[work_order_id] = current
            self._history.setdefault(work_order_id, []).append(change)

        log.info(
            "Work order status updated",
            work_order_id=work_order_id,
            old_status=previous.status.value,
            new_status=target.value,
            transition=transition_kind(previous.status, target),
            actor=actor,
        )
        self._notify(StoreEvent("status_changed", work_order_id, current))
        return change

    def apply_status_change(
        self,
        work_order_id: str,
        new_status: WorkOrderStatus | str,
        notes: str | None = None,
        actor: str = "system",
    ) -> WorkOrder:
        """Apply a validated status change and return the updated work order."""
        return self.transition(work_order_id, new_status, notes=notes, actor=actor).current

    def apply_batch_status_change(
        self,
        work_order_ids: Iterable[str],
        new_status: WorkOrderStatus | str,
        notes: str | None = None,
        actor: str = "system",
    ) -> list[WorkOrder]:
        """Move several work orders to one status, all or nothing."""
        changes = self.transition_batch(work_order_ids, new_status, notes=notes, actor=actor)
        return [change.current for change in changes]

    def transition_batch(
        self,
        work_order_ids: Iterable[str],
        new_status: WorkOrderStatus | str,
        notes: str | None = None,
        actor: str = "system",
    ) -> list[StatusChange]:
        """
        Move several work orders to one status and return the audit records.

        Every transition is validated before any is applied. Each returned
        change can be compensated with rollback().

        Raises:
            ValueError: No ids given
            NotFound: Any id unknown
            InvalidTransition: Any move illegal (names the offending id)
        """
        ids = list(dict.fromkeys(work_order_ids))
        if not ids:
            raise ValueError("At least one work order id is required")
        target = parse_status(new_status)
        validate_status_notes(notes)

        with ExitStack() as stack:
            # Sorted acquisition keeps concurrent batches deadlock-free
            for work_order_id in sorted(ids):
                stack.enter_context(self._lock_for(work_order_id))
            for work_order_id in ids:
                validate_transition(self.get(work_order_id).status, target, work_order_id)
            changes = [
                self.transition(work_order_id, target, notes=notes, actor=actor)
                for work_order_id in ids
            ]

        log.info(
            "Work orders batch updated",
            count=len(changes),
            work_order_ids=ids,
            new_status=target.value,
        )
        return changes

    def apply_field_edit(self, work_order_id: str, fields: dict[str, Any]) -> WorkOrder:
        """
        Update assigned_to, due_date, production_notes and/or priority.

        No status validation; concurrent edits are last-write-wins for the
        whole field set.

        Raises:
            NotFound: Unknown id
            FieldValidationError: Invalid payload
        """
        normalized = validate_field_edit(fields)
        with self._lock_for(work_order_id):
            previous = self.get(work_order_id)
            current = previous.with_changes(**normalized, updated_at=self._clock())
            self._orders[work_order_id] = current

        log.info(
            "Work order fields updated",
            work_order_id=work_order_id,
            fields=sorted(normalized),
        )
        self._notify(StoreEvent("fields_edited", work_order_id, current))
        return current

    def rollback(self, change: StatusChange) -> WorkOrder | None:
        """
        Compensate an optimistic status change.

        Restores the pre-change status and production timestamps if the order
        is still in the status the change moved it to; otherwise leaves it
        alone (a newer authoritative copy already replaced it).
        """
        work_order_id = change.work_order_id
        with self._lock_for(work_order_id):
            current = self._orders.get(work_order_id)
            if current is None or current.status != change.to_status:
                log.warning(
                    "Rollback skipped, work order no longer in optimistic status",
                    work_order_id=work_order_id,
                    expected_status=change.to_status.value,
                    actual_status=current.status.value if current else None,
                )
                return current

            restored = current.with_changes(
                status=change.previous.status,
                actual_start=change.previous.actual_start,
                actual_finish=change.previous.actual_finish,
                updated_at=self._clock(),
            )
            self._orders[work_order_id] = restored
            entries = self._history.get(work_order_id, [])
            self._history[work_order_id] = [entry for entry in entries if entry is not change]

        log.warning(
            "Work order status rolled back",
            work_order_id=work_order_id,
            from_status=change.to_status.value,
            restored_status=restored.status.value,
        )
        self._notify(StoreEvent("rolled_back", work_order_id, restored))
        return restored

    def replace(self, work_order: WorkOrder) -> WorkOrder:
        """Overwrite the cached copy with an authoritative one from the server."""
        with self._lock_for(work_order.id):
            self._orders[work_order.id] = work_order
        self._notify(StoreEvent("replaced", work_order.id, work_order))
        return work_order

    def load(self, orders: Iterable[WorkOrder]) -> None:
        """
        Replace the whole cache with a freshly fetched collection.

        Locks and history of ids that are no longer present are dropped.
        """
        fresh = {order.id: order for order in orders}
        with self._guard:
            self._orders = fresh
            self._locks = {i: lock for i, lock in self._locks.items() if i in fresh}
            self._history = {i: entries for i, entries in self._history.items() if i in fresh}
        log.info("Work order cache loaded", count=len(fresh))
        self._notify(StoreEvent("loaded"))

    def invalidate(self, work_order_id: str | None = None) -> None:
        """Tell listeners the cached view may be stale."""
        self._notify(StoreEvent("invalidated", work_order_id))

    # --- Backend Sync ---

    def refresh(self, filter: WorkOrderFilter | None = None) -> list[WorkOrder]:
        """
        Reload the cache from the attached backend.

        The fetched collection becomes the whole cache.

        Raises:
            RuntimeError: No backend attached
            RemoteFailure: Backend request failed
        """
        backend = self._require_backend()
        orders = backend.fetch_work_orders(filter)
        self.load(orders)
        return orders

    def refresh_one(self, work_order_id: str) -> WorkOrder:
        """
        Re-fetch one work order from the backend.

        Raises:
            NotFound: Backend no longer knows the id
            RemoteFailure: Backend request failed
        """
        order = self._require_backend().get_work_order(work_order_id)
        if order is None:
            raise NotFound(work_order_id)
        return self.replace(order)

    def _require_backend(self) -> "WorkOrderBackend":
        if self._backend is None:
            raise RuntimeError("WorkOrderStore has no backend attached")
        return self._backend

    # --- Notifications ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a change listener.

        Returns:
            Callable that unsubscribes the listener
        """
        with self._guard:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._guard:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _notify(self, event: StoreEvent) -> None:
        with self._guard:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                log.error(
                    "Store listener failed",
                    work_order_id=event.work_order_id,
                    event=event.kind,
                    exc_info=True,
                )
