"""
Work order types and data structures.

Provider-agnostic representations of production jobs, decoupled from
the HTTP API's wire format.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Iterable

from .errors import FieldValidationError
from .registry import INITIAL_STATUS, WorkOrderStatus, parse_status

UNASSIGNED = "unassigned"
DEFAULT_PRIORITY = 3
MAX_PRODUCTION_NOTES = 5000
MAX_STATUS_NOTES = 1000
EDITABLE_FIELDS = frozenset({"assigned_to", "due_date", "production_notes", "priority"})


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> datetime | None:
    """
    Normalize API and user timestamps to timezone-aware UTC datetimes.

    Date-only values are taken as midnight UTC; naive datetimes are assumed UTC.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unsupported timestamp value: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def is_valid_priority(value: Any) -> bool:
    """Positive int; bools are rejected even though they subclass int."""
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def _parse_priority(value: Any) -> int:
    if value is None:
        return DEFAULT_PRIORITY
    if not is_valid_priority(value):
        raise ValueError(f"priority must be a positive integer, got {value!r}")
    return value


@dataclass(frozen=True)
class WorkOrder:
    """
    One production job derived from an accepted quote.

    Frozen: the store swaps whole snapshots, so readers never observe a
    half-applied mutation.

    Attributes:
        id: Opaque identifier, immutable
        status: Current lifecycle state
        priority: Positive integer, lower value = more urgent
        due_date: Optional deadline (UTC)
        assigned_to: Responsible operator identifier
        production_notes: Free text
        quote_id: Non-owning reference to the originating quote
        created_at: Creation timestamp
        updated_at: Refreshed on every mutation
        actual_start: First entry into design
        actual_finish: Entry into complete
    """
    id: str
    status: WorkOrderStatus = INITIAL_STATUS
    priority: int = DEFAULT_PRIORITY
    due_date: datetime | None = None
    assigned_to: str | None = None
    production_notes: str | None = None
    quote_id: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    actual_start: datetime | None = None
    actual_finish: datetime | None = None

    def is_overdue(self, now: datetime | None = None) -> bool:
        """Derived predicate: the due date has passed."""
        if self.due_date is None:
            return False
        return (now or utc_now()) > self.due_date

    def with_changes(self, **changes: Any) -> "WorkOrder":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the API's snake_case wire format."""
        return {
            "id": self.id,
            "status": self.status.value,
            "priority": self.priority,
            "due_date": _format_datetime(self.due_date),
            "assigned_to": self.assigned_to,
            "production_notes": self.production_notes,
            "quote_id": self.quote_id,
            "created_at": _format_datetime(self.created_at),
            "updated_at": _format_datetime(self.updated_at),
            "actual_start": _format_datetime(self.actual_start),
            "actual_finish": _format_datetime(self.actual_finish),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkOrder":
        """
        Create WorkOrder from an API payload.

        Raises:
            ValueError: If id is missing or status is outside the registry
        """
        work_order_id = str(data.get("id") or "")
        if not work_order_id:
            raise ValueError("Work order payload is missing 'id'")

        quote_id = data.get("quote_id")
        if quote_id is None and isinstance(data.get("quote"), dict):
            quote_id = data["quote"].get("id")

        created_at = parse_datetime(data.get("created_at")) or utc_now()
        return cls(
            id=work_order_id,
            status=parse_status(data.get("status", INITIAL_STATUS.value)),
            priority=_parse_priority(data.get("priority")),
            due_date=parse_datetime(data.get("due_date")),
            assigned_to=data.get("assigned_to") or None,
            production_notes=data.get("production_notes"),
            quote_id=str(quote_id) if quote_id is not None else None,
            created_at=created_at,
            updated_at=parse_datetime(data.get("updated_at")) or created_at,
            actual_start=parse_datetime(data.get("actual_start")),
            actual_finish=parse_datetime(data.get("actual_finish")),
        )


@dataclass(frozen=True)
class QuoteSummary:
    """Read-only display projection of the quote a work order came from."""

    quote_id: str
    customer_name: str = ""
    product_name: str = ""
    quantity: int | None = None
    total_price: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QuoteSummary":
        customer = data.get("customer") or {}
        product = data.get("product") or {}
        total = data.get("total_price", data.get("total"))
        quantity = data.get("quantity")
        return cls(
            quote_id=str(data.get("id", "")),
            customer_name=str(customer.get("name", data.get("customer_name", "")) or ""),
            product_name=str(product.get("name", data.get("product_name", "")) or ""),
            quantity=int(quantity) if quantity is not None else None,
            total_price=str(total) if total is not None else None,
        )


@dataclass(frozen=True)
class WorkOrderFilter:
    """
    Board and store filter.

    All fields are optional - None/False means "no filter".

    Attributes:
        assigned_to: Operator id, or "unassigned" for orders with no assignee
        overdue_only: Keep only orders whose due date has passed
        statuses: Keep only orders in one of these statuses
        due_by: Keep only orders due on or before this instant (undated dropped)
    """
    assigned_to: str | None = None
    overdue_only: bool = False
    statuses: frozenset[WorkOrderStatus] | None = None
    due_by: datetime | None = None

    @classmethod
    def create(
        cls,
        assigned_to: str | None = None,
        overdue_only: bool = False,
        statuses: Iterable[WorkOrderStatus | str] | None = None,
        due_by: Any = None,
    ) -> "WorkOrderFilter":
        """
        Build a filter from loose input.

        Raises:
            ValueError: Unknown status or unparseable due_by
        """
        parsed = frozenset(parse_status(s) for s in statuses) if statuses is not None else None
        return cls(
            assigned_to=assigned_to or None,
            overdue_only=overdue_only,
            statuses=parsed,
            due_by=parse_datetime(due_by),
        )

    def matches(self, order: WorkOrder, now: datetime | None = None) -> bool:
        if self.overdue_only and not order.is_overdue(now):
            return False
        if self.due_by is not None and (order.due_date is None or order.due_date > self.due_by):
            return False
        if self.assigned_to is not None:
            if self.assigned_to == UNASSIGNED:
                if order.assigned_to:
                    return False
            elif order.assigned_to != self.assigned_to:
                return False
        if self.statuses is not None and order.status not in self.statuses:
            return False
        return True


@dataclass(frozen=True)
class StatusChange:
    """Audit record of one applied status transition."""

    work_order_id: str
    from_status: WorkOrderStatus
    to_status: WorkOrderStatus
    at: datetime
    previous: WorkOrder
    current: WorkOrder
    notes: str | None = None
    actor: str = "system"


def validate_status_notes(notes: str | None) -> None:
    if notes is not None and len(notes) > MAX_STATUS_NOTES:
        raise FieldValidationError([f"notes must not exceed {MAX_STATUS_NOTES} characters"])


def validate_field_edit(fields: dict[str, Any]) -> dict[str, Any]:
    """
    Validate and normalize a partial field edit.

    Returns:
        Normalized field dict (due_date parsed, blank assignee -> None)

    Raises:
        FieldValidationError: Listing every problem found
    """
    errors: list[str] = []
    if not fields:
        errors.append("at least one field must be provided")

    unknown = sorted(set(fields) - EDITABLE_FIELDS)
    if unknown:
        errors.append(f"fields not editable: {', '.join(unknown)}")

    normalized: dict[str, Any] = {}

    if "priority" in fields:
        priority = fields["priority"]
        if not is_valid_priority(priority):
            errors.append("priority must be a positive integer")
        else:
            normalized["priority"] = priority

    if "due_date" in fields:
        try:
            normalized["due_date"] = parse_datetime(fields["due_date"])
        except ValueError:
            errors.append("due_date must be an ISO date or datetime")

    if "assigned_to" in fields:
        assignee = fields["assigned_to"]
        if assignee is not None and not isinstance(assignee, str):
            errors.append("assigned_to must be a string")
        else:
            normalized["assigned_to"] = (assignee or "").strip() or None

    if "production_notes" in fields:
        notes = fields["production_notes"]
        if notes is not None and not isinstance(notes, str):
            errors.append("production_notes must be a string")
        elif notes is not None and len(notes) > MAX_PRODUCTION_NOTES:
            errors.append(f"production_notes must not exceed {MAX_PRODUCTION_NOTES} characters")
        else:
            normalized["production_notes"] = notes

    if errors:
        raise FieldValidationError(errors)
    return normalized
