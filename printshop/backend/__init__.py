"""
Work order backend package.

Persistence/API collaborators behind the production board.
"""

from printshop.backend.protocol import QuoteLookup, WorkOrderBackend
from printshop.config import load_board_config


def create_backend(config: dict | None = None) -> WorkOrderBackend:
    """
    Instantiate the configured default backend.

    Raises:
        ValueError: If backend not supported
    """
    config = config if config is not None else load_board_config()
    name = config.get("default_backend", "http")
    backends_config = config.get("backends", {})

    if name == "http":
        from printshop.backend.http import HttpWorkOrderBackend
        return HttpWorkOrderBackend(backends_config.get("http", {}))

    raise ValueError(f"Unknown backend: {name}")


__all__ = [
    "QuoteLookup",
    "WorkOrderBackend",
    "create_backend",
]
