"""
Print-shop production tracking.

Work-order lifecycle engine: status registry, transition validation,
work order cache, Kanban board view and move interactions.
"""

__version__ = "0.3.0"
