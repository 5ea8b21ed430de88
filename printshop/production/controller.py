"""
Board interaction controller.

Turns drag-and-drop (or button) move requests into validated, optimistic
status changes, confirms them with the backend, and commits or rolls back.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from printshop.config import DEFAULT_MOVE_TIMEOUT_S
from printshop.logger import get_logger

from .errors import (
    ConcurrentMoveInProgress,
    ControllerDisposed,
    InvalidTransition,
    RemoteFailure,
    WorkOrderError,
)
from .registry import StatusInfo, WorkOrderStatus, allowed_next, parse_status, status_info
from .store import WorkOrderStore
from .transitions import is_transition_allowed
from .types import (
    QuoteSummary,
    StatusChange,
    WorkOrder,
    validate_field_edit,
    validate_status_notes,
)

if TYPE_CHECKING:
    from printshop.backend.protocol import QuoteLookup, WorkOrderBackend

log = get_logger("BOARD")


class MoveState(Enum):
    """Lifecycle of a single move interaction."""
    IDLE = "idle"
    DRAGGING = "dragging"
    PENDING_CONFIRMATION = "pending_confirmation"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    DISCARDED = "discarded"


SETTLED = frozenset({MoveState.IDLE, MoveState.COMMITTED, MoveState.ROLLED_BACK, MoveState.DISCARDED})


@dataclass(frozen=True)
class MoveOutcome:
    """Result of a move request as reported to the caller."""

    work_order_id: str
    state: MoveState
    source_status: WorkOrderStatus | None
    target_status: WorkOrderStatus | None
    work_order: WorkOrder | None = None
    error: WorkOrderError | None = None

    @property
    def ok(self) -> bool:
        return self.state == MoveState.COMMITTED

    @property
    def noop(self) -> bool:
        return self.state == MoveState.IDLE and self.error is None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


class MoveInteraction:
    """
    One drag from pick-up to resolution.

    Idle -> Dragging -> Pending Confirmation -> Committed | RolledBack.
    Drops that are no-ops or rejected return straight to Idle.
    """

    def __init__(self, work_order_id: str, source_status: WorkOrderStatus):
        self.work_order_id = work_order_id
        self.source_status = source_status
        self.target_status: WorkOrderStatus | None = None
        self.state = MoveState.DRAGGING
        self.error: WorkOrderError | None = None
        self.work_order: WorkOrder | None = None
        self.change: StatusChange | None = None
        self._lock = threading.Lock()
        self._settling = False
        self._done = threading.Event()
        self._timer: threading.Timer | None = None

    def __repr__(self) -> str:
        target = self.target_status.value if self.target_status else None
        return (
            f"MoveInteraction({self.work_order_id!r}, "
            f"{self.source_status.value}->{target}, {self.state.value})"
        )

    @property
    def settled(self) -> bool:
        return self._done.is_set()

    def outcome(self) -> MoveOutcome:
        return MoveOutcome(
            work_order_id=self.work_order_id,
            state=self.state,
            source_status=self.source_status,
            target_status=self.target_status,
            work_order=self.work_order,
            error=self.error,
        )

    def wait(self, timeout: float | None = None) -> MoveOutcome:
        """
        Block until the move settles (or ``timeout`` elapses).

        Raises:
            RuntimeError: The work order was picked up but never dropped
        """
        if self.state == MoveState.DRAGGING:
            raise RuntimeError("Interaction has not been dropped yet")
        self._done.wait(timeout)
        return self.outcome()

    def _claim(self) -> bool:
        """First resolver (remote result, deadline or abort) wins."""
        with self._lock:
            if self._settling or self._done.is_set():
                return False
            self._settling = True
        if self._timer is not None:
            self._timer.cancel()
        return True

    def _finish(
        self,
        state: MoveState,
        work_order: WorkOrder | None = None,
        error: WorkOrderError | None = None,
    ) -> None:
        self.state = state
        self.work_order = work_order
        self.error = error
        self._done.set()


@dataclass(frozen=True)
class WorkOrderDetail:
    """Per-work-order view for the detail panel and its action buttons."""

    work_order: WorkOrder
    info: StatusInfo
    allowed_next: tuple[WorkOrderStatus, ...]
    move_pending: bool
    overdue: bool
    quote: QuoteSummary | None = None


class InteractionController:
    """
    Entry point for board moves and field edits.

    At most one move per work order is in flight; moves of different work
    orders proceed independently. Remote confirmations run on a thread
    pool and are bounded by ``timeout_s``; expiry counts as a failure.

    Example:
        controller = InteractionController(store, backend)
        outcome = controller.request_move("wo-1", WorkOrderStatus.PRINTING)
        if not outcome.ok:
            show_error(outcome.error)
    """

    def __init__(
        self,
        store: WorkOrderStore,
        backend: "WorkOrderBackend",
        timeout_s: float = DEFAULT_MOVE_TIMEOUT_S,
        quotes: "QuoteLookup | None" = None,
        reconcile: bool = True,
        max_workers: int = 4,
    ):
        self._store = store
        self._backend = backend
        self._timeout_s = timeout_s
        self._quotes = quotes
        self._reconcile = reconcile
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="wo-confirm")
        self._lock = threading.Lock()
        # Values are MoveInteractions, or a shared token for a batch move
        self._in_flight: dict[str, object] = {}
        self._disposed = False

    def __enter__(self) -> "InteractionController":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.dispose()

    @property
    def disposed(self) -> bool:
        return self._disposed

    def in_flight(self) -> frozenset[str]:
        """Ids of work orders with a move awaiting confirmation."""
        with self._lock:
            return frozenset(self._in_flight)

    # --- Moves ---

    def pick_up(self, work_order_id: str) -> MoveInteraction:
        """
        Start dragging a work order.

        Raises:
            NotFound: Unknown id
            ControllerDisposed: Board already torn down
        """
        if self._disposed:
            raise ControllerDisposed(work_order_id)
        order = self._store.get(work_order_id)
        return MoveInteraction(work_order_id, order.status)

    def drop(
        self,
        interaction: MoveInteraction,
        target: WorkOrderStatus | str,
        notes: str | None = None,
        actor: str = "board",
    ) -> MoveInteraction:
        """
        Drop a dragged work order on a target column.

        Returns immediately: the interaction is either back to IDLE (no-op or
        rejected, see ``interaction.error``) or PENDING_CONFIRMATION with the
        optimistic change already visible in the store.

        Raises:
            ValueError: Interaction not in DRAGGING state, or unknown status
            FieldValidationError: Notes too long
        """
        if interaction.state != MoveState.DRAGGING:
            raise ValueError(f"Cannot drop {interaction!r}: not being dragged")
        target = parse_status(target)
        validate_status_notes(notes)
        interaction.target_status = target
        work_order_id = interaction.work_order_id

        if self._disposed:
            return self._abort(interaction, ControllerDisposed(work_order_id))
        if target == interaction.source_status:
            return self._abort(interaction)

        with self._lock:
            if work_order_id in self._in_flight:
                return self._abort(interaction, ConcurrentMoveInProgress(work_order_id))
            self._in_flight[work_order_id] = interaction

        try:
            # Validate against the live status, never the one seen at pick-up
            current = self._store.get(work_order_id)
            interaction.source_status = current.status
            if target == current.status:
                self._release(interaction)
                return self._abort(interaction)
            if not is_transition_allowed(current.status, target):
                raise InvalidTransition(current.status, target, work_order_id)
            interaction.change = self._store.transition(work_order_id, target, notes=notes, actor=actor)
        except WorkOrderError as e:
            self._release(interaction)
            return self._abort(interaction, e)
        except BaseException:
            self._release(interaction)
            raise

        interaction.state = MoveState.PENDING_CONFIRMATION
        interaction.work_order = interaction.change.current
        log.info(
            "Move pending confirmation",
            work_order_id=work_order_id,
            from_status=interaction.source_status.value,
            to_status=target.value,
        )

        timer = threading.Timer(self._timeout_s, self._expire, args=(interaction,))
        timer.daemon = True
        interaction._timer = timer
        timer.start()

        try:
            future = self._executor.submit(self._backend.update_status, work_order_id, target, notes)
        except RuntimeError as e:
            # Executor shut down by a concurrent dispose()
            self._settle(interaction, error=RemoteFailure(f"Status update not sent: {e}", work_order_id))
            return interaction
        future.add_done_callback(lambda f: self._on_remote_done(interaction, f))
        return interaction

    def request_move(
        self,
        work_order_id: str,
        target: WorkOrderStatus | str,
        notes: str | None = None,
        actor: str = "board",
        timeout: float | None = None,
    ) -> MoveOutcome:
        """
        Move a work order and wait for the outcome.

        Interaction-scoped errors (NotFound, InvalidTransition,
        ConcurrentMoveInProgress, RemoteFailure, ControllerDisposed) are
        reported in the outcome, not raised.
        """
        target = parse_status(target)
        try:
            interaction = self.pick_up(work_order_id)
        except WorkOrderError as e:
            log.warning(f"Move rejected: {e}", work_order_id=work_order_id, error_code=e.code)
            return MoveOutcome(work_order_id, MoveState.IDLE, None, target, None, e)

        self.drop(interaction, target, notes=notes, actor=actor)
        return interaction.wait(timeout)

    def request_batch_move(
        self,
        work_order_ids: list[str],
        target: WorkOrderStatus | str,
        notes: str | None = None,
        actor: str = "board",
    ) -> list[WorkOrder]:
        """
        Move several work orders to one status, all or nothing.

        The store is updated optimistically, then the backend is called once
        for the whole set. If the backend fails, every change is rolled back.

        Raises:
            ValueError: No ids given, or unknown status
            FieldValidationError: Notes too long
            NotFound: Any id unknown (nothing changed)
            InvalidTransition: Any move illegal (nothing changed)
            ConcurrentMoveInProgress: Any id already has a move in flight
            RemoteFailure: Backend rejected or failed (all changes rolled back)
            ControllerDisposed: Board already torn down
        """
        if self._disposed:
            raise ControllerDisposed()
        target = parse_status(target)
        validate_status_notes(notes)
        ids = list(dict.fromkeys(work_order_ids))
        if not ids:
            raise ValueError("At least one work order id is required")

        token = object()
        with self._lock:
            busy = [i for i in ids if i in self._in_flight]
            if busy:
                raise ConcurrentMoveInProgress(busy[0])
            for work_order_id in ids:
                self._in_flight[work_order_id] = token

        try:
            changes = self._store.transition_batch(ids, target, notes=notes, actor=actor)
            try:
                count = self._backend.batch_update_status(ids, target, notes)
            except RemoteFailure as e:
                error = e
            except Exception as e:
                error = RemoteFailure(f"Batch status update failed: {e}")
            else:
                error = None

            if error is not None:
                for change in reversed(changes):
                    self._store.rollback(change)
                self._store.invalidate()
                log.error(
                    f"Batch move rolled back: {error}",
                    work_order_ids=ids,
                    to_status=target.value,
                    status_code=error.status_code,
                )
                raise error
        finally:
            with self._lock:
                for work_order_id in ids:
                    if self._in_flight.get(work_order_id) is token:
                        del self._in_flight[work_order_id]

        self._store.invalidate()
        log.info("Batch move committed", work_order_ids=ids, to_status=target.value, count=count)
        if status_info(target).notify_on_enter:
            log.info(
                "Notification queued for work order status change",
                work_order_ids=ids,
                status=target.value,
            )
        return [change.current for change in changes]

    def _abort(self, interaction: MoveInteraction, error: WorkOrderError | None = None) -> MoveInteraction:
        if error is None:
            log.debug("Move dropped on its own column", work_order_id=interaction.work_order_id)
        else:
            log.warning(
                f"Move rejected: {error}",
                work_order_id=interaction.work_order_id,
                error_code=error.code,
            )
        work_order_id = interaction.work_order_id
        current = self._store.get(work_order_id) if work_order_id in self._store else None
        interaction._finish(MoveState.IDLE, current, error)
        return interaction

    def _release(self, interaction: MoveInteraction) -> None:
        with self._lock:
            if self._in_flight.get(interaction.work_order_id) is interaction:
                del self._in_flight[interaction.work_order_id]

    def _on_remote_done(self, interaction: MoveInteraction, future: Future) -> None:
        if future.cancelled():
            self._settle(interaction, error=RemoteFailure("Status update was cancelled", interaction.work_order_id))
            return
        exc = future.exception()
        if exc is None:
            self._settle(interaction, server_copy=future.result())
        elif isinstance(exc, RemoteFailure):
            self._settle(interaction, error=exc)
        else:
            self._settle(
                interaction,
                error=RemoteFailure(f"Status update failed: {exc}", interaction.work_order_id),
            )

    def _expire(self, interaction: MoveInteraction) -> None:
        self._settle(
            interaction,
            error=RemoteFailure(
                f"No confirmation within {self._timeout_s}s",
                interaction.work_order_id,
            ),
        )

    def _settle(
        self,
        interaction: MoveInteraction,
        server_copy: WorkOrder | None = None,
        error: RemoteFailure | None = None,
    ) -> None:
        if not interaction._claim():
            log.debug("Late confirmation discarded", work_order_id=interaction.work_order_id)
            return

        work_order_id = interaction.work_order_id
        change = interaction.change

        if self._disposed:
            self._release(interaction)
            log.info("Move result discarded after dispose", work_order_id=work_order_id)
            interaction._finish(MoveState.DISCARDED, interaction.work_order, error)
            return

        if error is not None:
            restored = self._store.rollback(change)
            self._store.invalidate(work_order_id)
            self._release(interaction)
            log.error(
                f"Move rolled back: {error}",
                work_order_id=work_order_id,
                from_status=change.to_status.value,
                restored_status=change.from_status.value,
                status_code=error.status_code,
            )
            interaction._finish(MoveState.ROLLED_BACK, restored, error)
            return

        committed = change.current
        if self._reconcile and server_copy is not None:
            committed = self._store.replace(server_copy)
        else:
            self._store.invalidate(work_order_id)
        self._release(interaction)

        log.info(
            "Move committed",
            work_order_id=work_order_id,
            from_status=change.from_status.value,
            to_status=change.to_status.value,
        )
        if status_info(change.to_status).notify_on_enter:
            log.info(
                "Notification queued for work order status change",
                work_order_id=work_order_id,
                status=change.to_status.value,
                quote_id=committed.quote_id,
            )
        interaction._finish(MoveState.COMMITTED, committed)

    # --- Field Edits & Detail ---

    def edit_fields(self, work_order_id: str, fields: dict[str, Any]) -> WorkOrder:
        """
        Persist a field edit, then apply it to the cache.

        Raises:
            NotFound: Unknown id
            FieldValidationError: Invalid payload
            RemoteFailure: Backend rejected or failed (cache invalidated)
            ControllerDisposed: Board already torn down
        """
        if self._disposed:
            raise ControllerDisposed(work_order_id)
        validate_field_edit(fields)
        self._store.get(work_order_id)

        try:
            self._backend.update_fields(work_order_id, fields)
        except RemoteFailure as e:
            log.error(f"Field edit failed: {e}", work_order_id=work_order_id, status_code=e.status_code)
            self._store.invalidate(work_order_id)
            raise

        return self._store.apply_field_edit(work_order_id, fields)

    def detail(self, work_order_id: str) -> WorkOrderDetail:
        """
        Detail accessor listing the legal destinations for action buttons.

        Raises:
            NotFound: Unknown id
        """
        order = self._store.get(work_order_id)
        quote = None
        if self._quotes is not None and order.quote_id:
            try:
                quote = self._quotes.get_quote(order.quote_id)
            except RemoteFailure as e:
                log.warning(f"Quote lookup failed: {e}", work_order_id=work_order_id, quote_id=order.quote_id)

        with self._lock:
            pending = work_order_id in self._in_flight

        return WorkOrderDetail(
            work_order=order,
            info=status_info(order.status),
            allowed_next=allowed_next(order.status),
            move_pending=pending,
            overdue=order.is_overdue(),
            quote=quote,
        )

    # --- Teardown ---

    def dispose(self) -> None:
        """
        Tear down the controller.

        Pending remote calls may still complete; their results are
        discarded without touching the store.
        """
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            pending = len(self._in_flight)
        log.info("Interaction controller disposed", pending_moves=pending)
        self._executor.shutdown(wait=False)
