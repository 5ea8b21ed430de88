"""Tests for work order types, filters and field validation."""

from datetime import date, datetime, timedelta, timezone

import pytest

from printshop.production import (
    FieldValidationError,
    QuoteSummary,
    WorkOrder,
    WorkOrderFilter,
    WorkOrderStatus,
    parse_datetime,
    validate_field_edit,
)


class TestParseDatetime:
    """Tests for timestamp normalization."""

    def test_date_only_string_is_midnight_utc(self):
        assert parse_datetime("2024-06-01") == datetime(2024, 6, 1, tzinfo=timezone.utc)

    def test_zulu_suffix(self):
        assert parse_datetime("2024-06-01T10:30:00Z") == datetime(2024, 6, 1, 10, 30, tzinfo=timezone.utc)

    def test_offset_converted_to_utc(self):
        parsed = parse_datetime("2024-06-01T12:00:00+02:00")
        assert parsed == datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)

    def test_date_object(self):
        assert parse_datetime(date(2024, 6, 1)) == datetime(2024, 6, 1, tzinfo=timezone.utc)

    def test_empty_values(self):
        assert parse_datetime(None) is None
        assert parse_datetime("") is None

    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_datetime("next tuesday")


class TestWorkOrder:
    """Tests for the WorkOrder dataclass."""

    def test_defaults(self):
        order = WorkOrder(id="wo-1")
        assert order.status == WorkOrderStatus.PENDING
        assert order.priority == 3
        assert order.due_date is None

    def test_is_frozen(self):
        order = WorkOrder(id="wo-1")
        with pytest.raises(AttributeError):
            order.status = WorkOrderStatus.PRINTING  # type: ignore

    def test_overdue_is_derived(self, now):
        """Overdue only when the due date is strictly in the past."""
        assert WorkOrder(id="a", due_date=now - timedelta(seconds=1)).is_overdue(now)
        assert not WorkOrder(id="b", due_date=now).is_overdue(now)
        assert not WorkOrder(id="c", due_date=now + timedelta(days=1)).is_overdue(now)
        assert not WorkOrder(id="d").is_overdue(now)

    def test_from_dict(self):
        order = WorkOrder.from_dict(
            {
                "id": "wo-7",
                "status": "printing",
                "priority": 2,
                "due_date": "2024-06-01T00:00:00.000Z",
                "assigned_to": "op-1",
                "production_notes": "Use matte stock",
                "quote": {"id": "q-3", "customer": {"name": "Acme"}},
                "created_at": "2024-05-20T09:00:00Z",
                "updated_at": "2024-05-21T09:00:00Z",
            }
        )
        assert order.status == WorkOrderStatus.PRINTING
        assert order.priority == 2
        assert order.quote_id == "q-3"
        assert order.due_date == datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert order.updated_at > order.created_at

    def test_from_dict_blank_assignee_is_none(self):
        assert WorkOrder.from_dict({"id": "x", "assigned_to": ""}).assigned_to is None

    def test_from_dict_unknown_status_raises(self):
        with pytest.raises(ValueError):
            WorkOrder.from_dict({"id": "x", "status": "shipped"})

    @pytest.mark.parametrize("priority", [0, -2, True, "2", 1.5])
    def test_from_dict_rejects_bad_priority(self, priority):
        """A present priority must be a positive int, never defaulted."""
        with pytest.raises(ValueError, match="priority"):
            WorkOrder.from_dict({"id": "x", "priority": priority})

    def test_from_dict_missing_priority_defaults(self):
        assert WorkOrder.from_dict({"id": "x"}).priority == 3
        assert WorkOrder.from_dict({"id": "x", "priority": None}).priority == 3
        assert WorkOrder.from_dict({"id": "x", "priority": 1}).priority == 1

    def test_from_dict_requires_id(self):
        with pytest.raises(ValueError, match="missing 'id'"):
            WorkOrder.from_dict({"status": "pending"})

    def test_to_dict_wire_format(self, make_order):
        data = make_order(status=WorkOrderStatus.FINISHING, quote_id="q-1").to_dict()
        assert data["status"] == "finishing"
        assert data["quote_id"] == "q-1"
        assert data["due_date"] is None
        assert data["created_at"].startswith("2024-06-01")


class TestQuoteSummary:
    """Tests for the quote display projection."""

    def test_from_nested_payload(self):
        quote = QuoteSummary.from_dict(
            {
                "id": "q-1",
                "customer": {"name": "Acme"},
                "product": {"name": "Business Cards"},
                "quantity": 500,
                "total_price": "129.50",
            }
        )
        assert quote.customer_name == "Acme"
        assert quote.product_name == "Business Cards"
        assert quote.quantity == 500
        assert quote.total_price == "129.50"


class TestWorkOrderFilter:
    """Tests for filter matching."""

    def test_empty_filter_matches_everything(self, make_order, now):
        assert WorkOrderFilter().matches(make_order(), now)

    def test_assignee_filter(self, make_order, now):
        f = WorkOrderFilter.create(assigned_to="op-1")
        assert f.matches(make_order(assigned_to="op-1"), now)
        assert not f.matches(make_order(assigned_to="op-2"), now)
        assert not f.matches(make_order(), now)

    def test_unassigned_filter(self, make_order, now):
        f = WorkOrderFilter.create(assigned_to="unassigned")
        assert f.matches(make_order(), now)
        assert not f.matches(make_order(assigned_to="op-1"), now)

    def test_overdue_filter_drops_undated(self, make_order, now):
        f = WorkOrderFilter.create(overdue_only=True)
        assert f.matches(make_order(due_date=now - timedelta(days=1)), now)
        assert not f.matches(make_order(due_date=now + timedelta(days=1)), now)
        assert not f.matches(make_order(), now)

    def test_due_by_filter(self, make_order, now):
        """Due on or before the bound passes; later and undated are dropped."""
        f = WorkOrderFilter.create(due_by="2024-06-15")
        assert f.due_by == datetime(2024, 6, 15, tzinfo=timezone.utc)
        assert f.matches(make_order(due_date=datetime(2024, 6, 15, tzinfo=timezone.utc)), now)
        assert f.matches(make_order(due_date=datetime(2024, 6, 1, tzinfo=timezone.utc)), now)
        assert not f.matches(make_order(due_date=datetime(2024, 6, 16, tzinfo=timezone.utc)), now)
        assert not f.matches(make_order(), now)

    def test_due_by_rejects_garbage(self):
        with pytest.raises(ValueError):
            WorkOrderFilter.create(due_by="whenever")

    def test_status_filter_accepts_strings(self, make_order, now):
        f = WorkOrderFilter.create(statuses=["printing", WorkOrderStatus.FINISHING])
        assert f.matches(make_order(status=WorkOrderStatus.PRINTING), now)
        assert not f.matches(make_order(status=WorkOrderStatus.PENDING), now)


class TestValidateFieldEdit:
    """Tests for field edit validation."""

    def test_normalizes_fields(self):
        result = validate_field_edit(
            {"priority": 1, "due_date": "2024-07-01", "assigned_to": "  ", "production_notes": "ok"}
        )
        assert result["priority"] == 1
        assert result["due_date"] == datetime(2024, 7, 1, tzinfo=timezone.utc)
        assert result["assigned_to"] is None
        assert result["production_notes"] == "ok"

    def test_clearing_due_date(self):
        assert validate_field_edit({"due_date": None}) == {"due_date": None}

    @pytest.mark.parametrize("priority", [0, -1, "2", True, 1.5])
    def test_priority_must_be_positive_int(self, priority):
        with pytest.raises(FieldValidationError, match="priority"):
            validate_field_edit({"priority": priority})

    def test_status_is_not_editable(self):
        with pytest.raises(FieldValidationError, match="not editable: status"):
            validate_field_edit({"status": "complete"})

    def test_empty_edit_rejected(self):
        with pytest.raises(FieldValidationError):
            validate_field_edit({})

    def test_notes_length_limit(self):
        with pytest.raises(FieldValidationError, match="5000"):
            validate_field_edit({"production_notes": "x" * 5001})

    def test_collects_all_errors(self):
        with pytest.raises(FieldValidationError) as excinfo:
            validate_field_edit({"priority": 0, "due_date": "soon"})
        assert len(excinfo.value.errors) == 2
