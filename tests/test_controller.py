"""Tests for the board interaction controller."""

import threading
from unittest.mock import Mock

import pytest

from printshop.production import (
    ConcurrentMoveInProgress,
    ControllerDisposed,
    FieldValidationError,
    InteractionController,
    InvalidTransition,
    MoveState,
    NotFound,
    QuoteSummary,
    RemoteFailure,
    WorkOrderStatus,
)

S = WorkOrderStatus


class FakeBackend:
    """In-memory backend recording calls, optionally blocking or failing."""

    name = "fake"

    def __init__(self, error=None, gate=None):
        self.error = error
        self.gate = gate
        self.status_calls = []
        self.field_calls = []
        self.batch_calls = []
        self.server_copies = {}

    def batch_update_status(self, work_order_ids, status, notes=None):
        self.batch_calls.append((list(work_order_ids), status, notes))
        if self.error is not None:
            raise self.error
        return len(work_order_ids)

    def update_status(self, work_order_id, status, notes=None):
        self.status_calls.append((work_order_id, status, notes))
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return self.server_copies.get(work_order_id)

    def update_fields(self, work_order_id, fields):
        self.field_calls.append((work_order_id, fields))
        if self.error is not None:
            raise self.error
        return None


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def controller(store, backend):
    ctl = InteractionController(store, backend, timeout_s=5)
    yield ctl
    ctl.dispose()


class TestRejectedMoves:
    """Moves rejected before anything is sent."""

    def test_printing_to_pending_rejected_without_remote_call(self, store, backend, controller, make_order):
        store.load([make_order("wo-1", status=S.PRINTING)])

        outcome = controller.request_move("wo-1", S.PENDING)

        assert outcome.state == MoveState.IDLE
        assert isinstance(outcome.error, InvalidTransition)
        assert store.get("wo-1").status == S.PRINTING
        assert backend.status_calls == []

    def test_same_column_drop_is_noop(self, store, backend, controller, make_order):
        store.load([make_order("wo-1", status=S.PRINTING)])

        outcome = controller.request_move("wo-1", S.PRINTING)

        assert outcome.noop
        assert outcome.error is None
        assert backend.status_calls == []

    def test_unknown_work_order(self, controller):
        outcome = controller.request_move("ghost", S.IN_DESIGN)
        assert outcome.state == MoveState.IDLE
        assert isinstance(outcome.error, NotFound)

    def test_pick_up_unknown_raises(self, controller):
        with pytest.raises(NotFound):
            controller.pick_up("ghost")

    def test_raise_for_error(self, store, controller, make_order):
        store.load([make_order("wo-1", status=S.COMPLETE)])
        outcome = controller.request_move("wo-1", S.PRINTING)
        with pytest.raises(InvalidTransition):
            outcome.raise_for_error()

    def test_drop_twice_raises(self, store, controller, make_order):
        store.load([make_order("wo-1")])
        interaction = controller.pick_up("wo-1")
        controller.drop(interaction, S.IN_DESIGN)
        interaction.wait(5)
        with pytest.raises(ValueError):
            controller.drop(interaction, S.CANCELLED)

    def test_wait_before_drop_raises(self, store, controller, make_order):
        store.load([make_order("wo-1")])
        with pytest.raises(RuntimeError):
            controller.pick_up("wo-1").wait(0)

    def test_notes_too_long(self, store, controller, make_order):
        store.load([make_order("wo-1")])
        with pytest.raises(FieldValidationError):
            controller.request_move("wo-1", S.IN_DESIGN, notes="n" * 1001)


class TestCommittedMoves:
    """Moves confirmed by the backend."""

    def test_quality_check_to_complete_commits(self, store, backend, controller, make_order):
        store.load([make_order("wo-1", status=S.QUALITY_CHECK)])

        outcome = controller.request_move("wo-1", S.COMPLETE, notes="passed")

        assert outcome.ok
        assert outcome.source_status == S.QUALITY_CHECK
        assert outcome.work_order.status == S.COMPLETE
        assert store.get("wo-1").status == S.COMPLETE
        assert backend.status_calls == [("wo-1", S.COMPLETE, "passed")]
        assert controller.in_flight() == frozenset()

    def test_complete_is_final_after_commit(self, store, backend, controller, make_order):
        store.load([make_order("wo-1", status=S.QUALITY_CHECK)])
        controller.request_move("wo-1", S.COMPLETE)

        for target in (S.PRINTING, S.CANCELLED, S.PENDING):
            outcome = controller.request_move("wo-1", target)
            assert isinstance(outcome.error, InvalidTransition)
        assert len(backend.status_calls) == 1

    def test_cancel_then_reopen(self, store, controller, make_order):
        store.load([make_order("wo-1", status=S.PRINTING)])
        assert controller.request_move("wo-1", S.CANCELLED).ok
        assert controller.request_move("wo-1", S.PENDING).ok
        assert isinstance(controller.request_move("wo-1", S.PRINTING).error, InvalidTransition)
        assert store.get("wo-1").status == S.PENDING

    def test_server_copy_reconciled(self, store, backend, controller, make_order):
        store.load([make_order("wo-1")])
        backend.server_copies["wo-1"] = make_order("wo-1", status=S.IN_DESIGN, assigned_to="op-7")

        outcome = controller.request_move("wo-1", S.IN_DESIGN)

        assert outcome.ok
        assert store.get("wo-1").assigned_to == "op-7"

    def test_optimistic_change_visible_before_confirmation(self, store, make_order):
        gate = threading.Event()
        backend = FakeBackend(gate=gate)
        store.load([make_order("wo-1")])
        with InteractionController(store, backend, timeout_s=5) as controller:
            interaction = controller.pick_up("wo-1")
            controller.drop(interaction, S.IN_DESIGN)

            assert interaction.state == MoveState.PENDING_CONFIRMATION
            assert store.get("wo-1").status == S.IN_DESIGN
            assert controller.detail("wo-1").move_pending

            gate.set()
            assert interaction.wait(5).ok


class TestRolledBackMoves:
    """Moves that fail remotely are rolled back."""

    def test_remote_failure_restores_status(self, store, make_order):
        backend = FakeBackend(error=RemoteFailure("boom", "wo-1", status_code=500))
        store.load([make_order("wo-1", status=S.QUALITY_CHECK)])
        events = []
        store.subscribe(events.append)

        with InteractionController(store, backend, timeout_s=5) as controller:
            outcome = controller.request_move("wo-1", S.COMPLETE)

        assert outcome.state == MoveState.ROLLED_BACK
        assert isinstance(outcome.error, RemoteFailure)
        assert outcome.error.status_code == 500
        assert store.get("wo-1").status == S.QUALITY_CHECK
        assert store.get("wo-1").actual_finish is None
        assert store.history("wo-1") == []
        assert [e.kind for e in events] == ["status_changed", "rolled_back", "invalidated"]

    def test_unexpected_exception_is_wrapped(self, store, make_order):
        backend = FakeBackend(error=ConnectionError("reset"))
        store.load([make_order("wo-1")])

        with InteractionController(store, backend, timeout_s=5) as controller:
            outcome = controller.request_move("wo-1", S.IN_DESIGN)

        assert outcome.state == MoveState.ROLLED_BACK
        assert isinstance(outcome.error, RemoteFailure)
        assert "reset" in str(outcome.error)
        assert store.get("wo-1").status == S.PENDING

    def test_timeout_rolls_back_and_discards_late_result(self, store, make_order):
        gate = threading.Event()
        backend = FakeBackend(gate=gate)
        store.load([make_order("wo-1")])

        with InteractionController(store, backend, timeout_s=0.05) as controller:
            outcome = controller.request_move("wo-1", S.IN_DESIGN, timeout=5)

            assert outcome.state == MoveState.ROLLED_BACK
            assert "No confirmation" in str(outcome.error)
            assert store.get("wo-1").status == S.PENDING

            gate.set()
            assert controller.in_flight() == frozenset()
            assert store.get("wo-1").status == S.PENDING


class TestConcurrentMoves:
    """At most one move per work order in flight."""

    def test_second_move_rejected_while_first_pending(self, store, make_order):
        gate = threading.Event()
        backend = FakeBackend(gate=gate)
        store.load([make_order("wo-1")])

        with InteractionController(store, backend, timeout_s=5) as controller:
            first = controller.pick_up("wo-1")
            controller.drop(first, S.IN_DESIGN)

            second = controller.request_move("wo-1", S.READY_TO_PRINT)

            assert second.state == MoveState.IDLE
            assert isinstance(second.error, ConcurrentMoveInProgress)
            assert controller.in_flight() == frozenset({"wo-1"})

            gate.set()
            assert first.wait(5).ok
            assert store.get("wo-1").status == S.IN_DESIGN
        assert len(backend.status_calls) == 1

    def test_different_orders_move_independently(self, store, make_order):
        gate = threading.Event()
        backend = FakeBackend(gate=gate)
        store.load([make_order("wo-1"), make_order("wo-2")])

        with InteractionController(store, backend, timeout_s=5) as controller:
            first = controller.pick_up("wo-1")
            second = controller.pick_up("wo-2")
            controller.drop(first, S.IN_DESIGN)
            controller.drop(second, S.CANCELLED)
            assert controller.in_flight() == frozenset({"wo-1", "wo-2"})

            gate.set()
            assert first.wait(5).ok
            assert second.wait(5).ok

    def test_stale_pick_up_validated_against_live_status(self, store, controller, make_order):
        """A drop uses the current status, not the one seen at pick-up."""
        store.load([make_order("wo-1")])
        interaction = controller.pick_up("wo-1")
        store.apply_status_change("wo-1", S.CANCELLED)

        controller.drop(interaction, S.IN_DESIGN)

        assert interaction.state == MoveState.IDLE
        assert isinstance(interaction.error, InvalidTransition)
        assert interaction.source_status == S.CANCELLED


class TestBatchMoves:
    """Multi-order moves persisted with one backend call."""

    def test_batch_commits_through_backend(self, store, backend, controller, make_order):
        store.load([make_order("wo-1"), make_order("wo-2"), make_order("wo-3", status=S.PRINTING)])

        moved = controller.request_batch_move(["wo-1", "wo-2", "wo-1"], S.CANCELLED, notes="void")

        assert [order.id for order in moved] == ["wo-1", "wo-2"]
        assert backend.batch_calls == [(["wo-1", "wo-2"], S.CANCELLED, "void")]
        assert store.get("wo-1").status == S.CANCELLED
        assert store.get("wo-2").status == S.CANCELLED
        assert store.get("wo-3").status == S.PRINTING
        assert controller.in_flight() == frozenset()

    def test_remote_failure_rolls_back_every_order(self, store, make_order):
        backend = FakeBackend(error=RemoteFailure("rejected", status_code=409))
        store.load([make_order("wo-1"), make_order("wo-2", status=S.IN_DESIGN)])
        events = []
        store.subscribe(events.append)

        with InteractionController(store, backend, timeout_s=5) as controller:
            with pytest.raises(RemoteFailure) as excinfo:
                controller.request_batch_move(["wo-1", "wo-2"], S.CANCELLED)
            assert controller.in_flight() == frozenset()

        assert excinfo.value.status_code == 409
        assert store.get("wo-1").status == S.PENDING
        assert store.get("wo-2").status == S.IN_DESIGN
        assert store.history("wo-1") == []
        assert store.history("wo-2") == []
        assert events[-1].kind == "invalidated"
        assert [e.kind for e in events].count("rolled_back") == 2

    def test_unexpected_exception_is_wrapped(self, store, make_order):
        backend = FakeBackend(error=ConnectionError("reset"))
        store.load([make_order("wo-1")])

        with InteractionController(store, backend, timeout_s=5) as controller:
            with pytest.raises(RemoteFailure, match="reset"):
                controller.request_batch_move(["wo-1"], S.IN_DESIGN)

        assert store.get("wo-1").status == S.PENDING

    def test_illegal_member_rejects_whole_batch(self, store, backend, controller, make_order):
        store.load([make_order("wo-1"), make_order("wo-2", status=S.COMPLETE)])

        with pytest.raises(InvalidTransition):
            controller.request_batch_move(["wo-1", "wo-2"], S.CANCELLED)

        assert store.get("wo-1").status == S.PENDING
        assert backend.batch_calls == []
        assert controller.in_flight() == frozenset()

    def test_busy_member_rejects_whole_batch(self, store, make_order):
        gate = threading.Event()
        backend = FakeBackend(gate=gate)
        store.load([make_order("wo-1"), make_order("wo-2")])

        with InteractionController(store, backend, timeout_s=5) as controller:
            first = controller.pick_up("wo-2")
            controller.drop(first, S.IN_DESIGN)

            with pytest.raises(ConcurrentMoveInProgress):
                controller.request_batch_move(["wo-1", "wo-2"], S.CANCELLED)

            assert store.get("wo-1").status == S.PENDING
            assert controller.in_flight() == frozenset({"wo-2"})
            gate.set()
            assert first.wait(5).ok
        assert backend.batch_calls == []

    def test_empty_batch_rejected(self, controller):
        with pytest.raises(ValueError):
            controller.request_batch_move([], S.CANCELLED)

    def test_batch_after_dispose_rejected(self, store, controller, make_order):
        store.load([make_order("wo-1")])
        controller.dispose()
        with pytest.raises(ControllerDisposed):
            controller.request_batch_move(["wo-1"], S.CANCELLED)


class TestDispose:
    """Results arriving after teardown are discarded."""

    def test_late_result_discarded(self, store, make_order):
        gate = threading.Event()
        backend = FakeBackend(gate=gate)
        backend.server_copies["wo-1"] = make_order("wo-1", status=S.IN_DESIGN, assigned_to="op-7")
        store.load([make_order("wo-1")])
        events = []

        controller = InteractionController(store, backend, timeout_s=5)
        interaction = controller.pick_up("wo-1")
        controller.drop(interaction, S.IN_DESIGN)
        store.subscribe(events.append)
        controller.dispose()
        gate.set()

        outcome = interaction.wait(5)
        assert outcome.state == MoveState.DISCARDED
        assert events == []
        assert store.get("wo-1").assigned_to is None

    def test_moves_after_dispose_rejected(self, store, controller, make_order):
        store.load([make_order("wo-1")])
        controller.dispose()
        outcome = controller.request_move("wo-1", S.IN_DESIGN)
        assert isinstance(outcome.error, ControllerDisposed)
        with pytest.raises(ControllerDisposed):
            controller.edit_fields("wo-1", {"priority": 1})

    def test_dispose_is_idempotent(self, controller):
        controller.dispose()
        controller.dispose()
        assert controller.disposed


class TestFieldEdits:
    """Field edits through the controller."""

    def test_edit_applies_after_backend_accepts(self, store, backend, controller, make_order):
        store.load([make_order("wo-1")])

        updated = controller.edit_fields("wo-1", {"assigned_to": "op-3", "due_date": "2024-07-01"})

        assert updated.assigned_to == "op-3"
        assert updated.due_date.isoformat().startswith("2024-07-01")
        assert backend.field_calls == [("wo-1", {"assigned_to": "op-3", "due_date": "2024-07-01"})]

    def test_failed_edit_leaves_cache(self, store, make_order):
        backend = FakeBackend(error=RemoteFailure("rejected", "wo-1", status_code=400))
        store.load([make_order("wo-1")])
        events = []
        store.subscribe(events.append)

        with InteractionController(store, backend) as controller:
            with pytest.raises(RemoteFailure):
                controller.edit_fields("wo-1", {"priority": 1})

        assert store.get("wo-1").priority == 3
        assert [e.kind for e in events] == ["invalidated"]

    def test_invalid_edit_not_sent(self, store, backend, controller, make_order):
        store.load([make_order("wo-1")])
        with pytest.raises(FieldValidationError):
            controller.edit_fields("wo-1", {"status": "complete"})
        assert backend.field_calls == []

    def test_edit_unknown_order(self, backend, controller):
        with pytest.raises(NotFound):
            controller.edit_fields("ghost", {"priority": 1})
        assert backend.field_calls == []


class TestDetail:
    """Detail accessor for action buttons."""

    def test_allowed_next_for_buttons(self, store, controller, make_order):
        store.load([make_order("wo-1", status=S.QUALITY_CHECK)])
        detail = controller.detail("wo-1")
        assert set(detail.allowed_next) == {S.COMPLETE, S.PRINTING, S.FINISHING, S.CANCELLED}
        assert detail.info.label == "Quality Check"
        assert not detail.move_pending

    def test_complete_offers_no_actions(self, store, controller, make_order):
        store.load([make_order("wo-1", status=S.COMPLETE)])
        assert controller.detail("wo-1").allowed_next == ()

    def test_quote_lookup(self, store, backend, make_order):
        quotes = Mock()
        quotes.get_quote.return_value = QuoteSummary(quote_id="q-1", customer_name="Acme")
        store.load([make_order("wo-1", quote_id="q-1")])
        with InteractionController(store, backend, quotes=quotes) as controller:
            detail = controller.detail("wo-1")
        assert detail.quote.customer_name == "Acme"
        quotes.get_quote.assert_called_once_with("q-1")

    def test_quote_lookup_failure_is_not_fatal(self, store, backend, make_order):
        quotes = Mock()
        quotes.get_quote.side_effect = RemoteFailure("down")
        store.load([make_order("wo-1", quote_id="q-1")])
        with InteractionController(store, backend, quotes=quotes) as controller:
            assert controller.detail("wo-1").quote is None
