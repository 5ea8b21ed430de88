"""Pytest configuration for production board tests."""
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project root to path so 'printshop' package can be imported
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from printshop.production import WorkOrder, WorkOrderStatus, WorkOrderStore  # noqa: E402

NOW = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    """Fixed evaluation instant."""
    return NOW


@pytest.fixture
def make_order():
    """Factory for work orders with sensible defaults."""
    def _make(work_order_id="wo-1", status=WorkOrderStatus.PENDING, **fields):
        fields.setdefault("created_at", datetime(2024, 6, 1, tzinfo=timezone.utc))
        fields.setdefault("updated_at", fields["created_at"])
        return WorkOrder(id=work_order_id, status=status, **fields)
    return _make


@pytest.fixture
def store():
    """Empty store with a fixed clock."""
    return WorkOrderStore(clock=lambda: NOW)
