"""
HTTP work order backend.

Implements the WorkOrderBackend and QuoteLookup protocols against the
print-shop REST API.
"""

import time
from typing import Any

import requests

from printshop.config import DEFAULT_API_URL, DEFAULT_TIMEOUT_S, get_backend_config
from printshop.logger import get_logger
from printshop.production.errors import RemoteFailure
from printshop.production.registry import WorkOrderStatus
from printshop.production.stats import BoardStats
from printshop.production.types import (
    QuoteSummary,
    UNASSIGNED,
    WorkOrder,
    WorkOrderFilter,
    parse_datetime,
)

log = get_logger("HTTP_BACKEND")


class HttpWorkOrderBackend:
    """
    WorkOrderBackend over the REST API.

    Responses use a ``{"data": ...}`` envelope; errors use
    ``{"error": {"message", "code", "statusCode"}}``. Every transport
    problem, non-2xx status or malformed body surfaces as RemoteFailure.
    """

    def __init__(self, config: dict | None = None, session: requests.Session | None = None):
        """
        Initialize backend with configuration.

        Args:
            config: Backend config dict. If None, loads from config file.
                    Expected keys: url, token, timeout_s
            session: Optional pre-built requests session
        """
        if config is None:
            config = get_backend_config("http")

        self._url = (config.get("url") or DEFAULT_API_URL).rstrip("/")
        self._token = config.get("token") or ""
        self._timeout_s = float(config.get("timeout_s") or DEFAULT_TIMEOUT_S)

        # Lazy session initialization
        self._session = session

    @property
    def session(self) -> requests.Session:
        """Get or create the HTTP session (lazy initialization)."""
        if self._session is None:
            session = requests.Session()
            session.headers.update({"Accept": "application/json"})
            if self._token:
                session.headers["Authorization"] = f"Bearer {self._token}"
            self._session = session
        return self._session

    @property
    def name(self) -> str:
        return "http"

    # --- Read Operations ---

    def fetch_work_orders(self, filter: WorkOrderFilter | None = None) -> list[WorkOrder]:
        params: dict[str, str] = {}
        if filter is not None:
            if filter.assigned_to and filter.assigned_to != UNASSIGNED:
                params["assignedTo"] = filter.assigned_to
            if filter.due_by is not None:
                params["dueDate"] = filter.due_by.isoformat()

        data = self._request("GET", "/work-orders/kanban", params=params)

        # The kanban route answers either a flat list or {"columns": {status: [...]}}
        if isinstance(data, dict) and isinstance(data.get("columns"), dict):
            rows = [row for column in data["columns"].values() for row in column]
        elif isinstance(data, list):
            rows = data
        else:
            raise RemoteFailure("Malformed work order list response")

        return [self._to_work_order(row) for row in rows]

    def get_work_order(self, work_order_id: str) -> WorkOrder | None:
        try:
            data = self._request("GET", f"/work-orders/{work_order_id}", work_order_id=work_order_id)
        except RemoteFailure as e:
            if e.status_code == 404:
                return None
            raise
        return self._to_work_order(data, work_order_id)

    def fetch_stats(self) -> BoardStats:
        data = self._request("GET", "/work-orders/stats")
        if not isinstance(data, dict):
            raise RemoteFailure("Malformed statistics response")
        return BoardStats.from_dict(data)

    def get_quote(self, quote_id: str) -> QuoteSummary | None:
        try:
            data = self._request("GET", f"/quotes/{quote_id}")
        except RemoteFailure as e:
            if e.status_code == 404:
                return None
            raise
        if not isinstance(data, dict):
            raise RemoteFailure("Malformed quote response")
        return QuoteSummary.from_dict(data)

    # --- Mutations ---

    def update_status(
        self,
        work_order_id: str,
        status: WorkOrderStatus,
        notes: str | None = None,
    ) -> WorkOrder:
        body: dict[str, Any] = {"status": status.value}
        if notes:
            body["notes"] = notes
        data = self._request(
            "PUT",
            f"/work-orders/{work_order_id}/status",
            work_order_id=work_order_id,
            json=body,
        )
        return self._to_work_order(data, work_order_id)

    def batch_update_status(
        self,
        work_order_ids: list[str],
        status: WorkOrderStatus,
        notes: str | None = None,
    ) -> int:
        updates: dict[str, Any] = {"status": status.value}
        if notes:
            updates["notes"] = notes
        data = self._request(
            "PATCH",
            "/work-orders/batch",
            json={"workOrderIds": list(work_order_ids), "updates": updates},
        )
        if not isinstance(data, dict):
            raise RemoteFailure("Malformed batch update response")
        count = data.get("count", data.get("updated"))
        if not isinstance(count, int) or isinstance(count, bool):
            raise RemoteFailure("Malformed batch update response")
        return count

    def update_fields(self, work_order_id: str, fields: dict[str, Any]) -> WorkOrder:
        body = dict(fields)
        if "due_date" in body:
            due = parse_datetime(body["due_date"])
            body["due_date"] = due.isoformat() if due else None
        data = self._request(
            "PUT",
            f"/work-orders/{work_order_id}",
            work_order_id=work_order_id,
            json=body,
        )
        return self._to_work_order(data, work_order_id)

    # --- Helpers ---

    def _request(
        self,
        method: str,
        path: str,
        work_order_id: str | None = None,
        **kwargs: Any,
    ) -> Any:
        """Issue a request and unwrap the data envelope."""
        url = f"{self._url}{path}"
        start_time = time.time()

        try:
            response = self.session.request(method, url, timeout=self._timeout_s, **kwargs)
        except requests.Timeout as e:
            elapsed_ms = int((time.time() - start_time) * 1000)
            raise RemoteFailure(
                f"{method} {path} timed out after {elapsed_ms}ms (timeout: {self._timeout_s}s)",
                work_order_id,
            ) from e
        except requests.RequestException as e:
            raise RemoteFailure(f"{method} {path} failed: {e}", work_order_id) from e

        elapsed_ms = int((time.time() - start_time) * 1000)
        log.debug(
            "API request completed",
            work_order_id=work_order_id,
            method=method,
            path=path,
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            message, server_code = self._error_details(payload, response)
            raise RemoteFailure(
                message,
                work_order_id,
                status_code=response.status_code,
                server_code=server_code,
            )

        if not isinstance(payload, dict) or "data" not in payload:
            raise RemoteFailure(
                f"{method} {path} returned a malformed body",
                work_order_id,
                status_code=response.status_code,
            )
        return payload["data"]

    @staticmethod
    def _error_details(payload: Any, response: requests.Response) -> tuple[str, str | None]:
        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict):
            message = str(error.get("message") or f"HTTP {response.status_code}")
            return message, error.get("code")
        return f"HTTP {response.status_code}: {response.reason or 'request failed'}", None

    @staticmethod
    def _to_work_order(data: Any, work_order_id: str | None = None) -> WorkOrder:
        if not isinstance(data, dict):
            raise RemoteFailure("Malformed work order payload", work_order_id)
        try:
            return WorkOrder.from_dict(data)
        except (ValueError, TypeError) as e:
            raise RemoteFailure(f"Malformed work order payload: {e}", work_order_id) from e
