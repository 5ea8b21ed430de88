"""Aggregate production statistics shown above the board."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from .registry import STATUSES, WorkOrderStatus, status_info
from .types import WorkOrder, utc_now

FINISHED = frozenset({WorkOrderStatus.COMPLETE, WorkOrderStatus.CANCELLED})


@dataclass(frozen=True)
class BoardStats:
    """
    Display-only statistics. Never consulted by the state machine.

    Attributes:
        total_active: Orders not complete or cancelled
        overdue: Active orders past their due date
        completed_today: Orders finished since midnight UTC
        utilization_rate: Percentage (0-100)
        by_status: Counts per status value
        by_phase: Counts per production phase
        avg_production_hours: Mean start-to-finish time of completed orders
    """
    total_active: int = 0
    overdue: int = 0
    completed_today: int = 0
    utilization_rate: float = 0.0
    by_status: dict[str, int] = field(default_factory=dict)
    by_phase: dict[str, int] = field(default_factory=dict)
    avg_production_hours: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BoardStats":
        """
        Build from a /work-orders/stats payload.

        Accepts the flat camelCase shape and the nested ``overview`` shape.
        """
        overview = data.get("overview") or {}
        by_status = data.get("ordersByStatus", data.get("byStatus")) or {}
        by_phase: dict[str, int] = {}
        for row in data.get("productionPhases") or []:
            phase = str(row.get("phase", ""))
            by_phase[phase] = by_phase.get(phase, 0) + int(row.get("count", 0))

        return cls(
            total_active=int(data.get("totalOrders", overview.get("total", 0)) or 0),
            overdue=int(data.get("overdueOrders", overview.get("overdue", 0)) or 0),
            completed_today=int(data.get("completedToday", overview.get("completed", 0)) or 0),
            utilization_rate=float(data.get("utilizationRate", 0.0) or 0.0),
            by_status={str(k): int(v) for k, v in by_status.items()},
            by_phase=by_phase,
            avg_production_hours=float(
                data.get("averageProductionTime", overview.get("avgProductionHours", 0.0)) or 0.0
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalOrders": self.total_active,
            "overdueOrders": self.overdue,
            "completedToday": self.completed_today,
            "utilizationRate": self.utilization_rate,
            "ordersByStatus": dict(self.by_status),
            "byPhase": dict(self.by_phase),
            "averageProductionTime": self.avg_production_hours,
        }


def summarize(orders: Iterable[WorkOrder], now: datetime | None = None) -> BoardStats:
    """
    Compute board statistics locally from cached orders.

    Utilization is the share of active orders that have an operator assigned.
    """
    now = now or utc_now()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    by_status = {info.status.value: 0 for info in STATUSES}
    by_phase: dict[str, int] = {}
    active = overdue = assigned = completed_today = 0
    production_hours: list[float] = []

    for order in orders:
        by_status[order.status.value] += 1
        phase = status_info(order.status).phase
        by_phase[phase] = by_phase.get(phase, 0) + 1

        if order.status not in FINISHED:
            active += 1
            if order.assigned_to:
                assigned += 1
            if order.is_overdue(now):
                overdue += 1

        if order.status == WorkOrderStatus.COMPLETE and order.actual_finish:
            if order.actual_finish >= midnight:
                completed_today += 1
            if order.actual_start:
                elapsed = (order.actual_finish - order.actual_start).total_seconds()
                production_hours.append(elapsed / 3600)

    return BoardStats(
        total_active=active,
        overdue=overdue,
        completed_today=completed_today,
        utilization_rate=round(100.0 * assigned / active, 1) if active else 0.0,
        by_status=by_status,
        by_phase=by_phase,
        avg_production_hours=(
            round(sum(production_hours) / len(production_hours), 2) if production_hours else 0.0
        ),
    )
