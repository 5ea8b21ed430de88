"""
Work order backend Protocol.

Defines the interface of the persistence/API collaborator the store and
interaction controller talk to. Uses Python's Protocol for structural
typing - backends don't need to explicitly inherit from this class.
"""

from typing import Any, Protocol, runtime_checkable

from printshop.production.registry import WorkOrderStatus
from printshop.production.stats import BoardStats
from printshop.production.types import QuoteSummary, WorkOrder, WorkOrderFilter


@runtime_checkable
class WorkOrderBackend(Protocol):
    """
    Authoritative store of work orders behind the board.

    Implementations include:
    - HttpWorkOrderBackend (REST API)
    - Mock backends (for testing)

    Every failure is reported as RemoteFailure.
    """

    @property
    def name(self) -> str:
        """Backend identifier (e.g., "http")."""
        ...

    def fetch_work_orders(self, filter: WorkOrderFilter | None = None) -> list[WorkOrder]:
        """
        Fetch work orders for the board.

        Only ``filter.assigned_to`` and ``filter.due_by`` are forwarded;
        ordering of the result is not relied upon.
        """
        ...

    def get_work_order(self, work_order_id: str) -> WorkOrder | None:
        """Fetch one work order, None if the server does not know it."""
        ...

    def fetch_stats(self) -> BoardStats:
        """Fetch aggregate statistics for display."""
        ...

    def update_status(
        self,
        work_order_id: str,
        status: WorkOrderStatus,
        notes: str | None = None,
    ) -> WorkOrder:
        """
        Persist a status change.

        Returns:
            The server's updated copy of the work order
        """
        ...

    def batch_update_status(
        self,
        work_order_ids: list[str],
        status: WorkOrderStatus,
        notes: str | None = None,
    ) -> int:
        """
        Persist one status change for several work orders, all or nothing.

        Returns:
            Number of work orders the server updated
        """
        ...

    def update_fields(self, work_order_id: str, fields: dict[str, Any]) -> WorkOrder:
        """
        Persist a partial field edit.

        Returns:
            The server's updated copy of the work order
        """
        ...


@runtime_checkable
class QuoteLookup(Protocol):
    """Read-only access to the quote subsystem, by id."""

    def get_quote(self, quote_id: str) -> QuoteSummary | None:
        ...
