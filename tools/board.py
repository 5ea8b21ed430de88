#!/usr/bin/env python3
"""CLI for inspecting the production board and moving work orders."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

# Support running as a standalone script from repo root.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from printshop.backend import create_backend
from printshop.config import load_board_config
from printshop.logger import configure_logging
from printshop.production import (
    FieldValidationError,
    InteractionController,
    WorkOrderError,
    WorkOrderFilter,
    WorkOrderStore,
    build_board,
    render_board_text,
)


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Production board CLI")
    parser.add_argument("--config", default=None, help="Path to board.yaml")
    subparsers = parser.add_subparsers(dest="command", required=True)

    show_parser = subparsers.add_parser("show", help="Print the board")
    show_parser.add_argument("--assignee", default=None, help='Operator id or "unassigned"')
    show_parser.add_argument("--overdue", action="store_true", help="Only overdue work orders")
    show_parser.add_argument("--due-by", default=None, help="Only work orders due on or before this date")
    show_parser.add_argument("--json", action="store_true", dest="as_json")

    move_parser = subparsers.add_parser("move", help="Move a work order to another status")
    move_parser.add_argument("work_order_id")
    move_parser.add_argument("status")
    move_parser.add_argument("--notes", default=None)

    batch_parser = subparsers.add_parser("batch", help="Move several work orders to one status")
    batch_parser.add_argument("status")
    batch_parser.add_argument("work_order_ids", nargs="+")
    batch_parser.add_argument("--notes", default=None)

    allowed_parser = subparsers.add_parser("allowed", help="List legal next statuses")
    allowed_parser.add_argument("work_order_id")

    edit_parser = subparsers.add_parser("edit", help="Edit work order fields")
    edit_parser.add_argument("work_order_id")
    edit_parser.add_argument("--assignee", default=None)
    edit_parser.add_argument("--due-date", default=None)
    edit_parser.add_argument("--priority", type=int, default=None)
    edit_parser.add_argument("--notes", default=None)

    subparsers.add_parser("stats", help="Print production statistics")

    return parser


def main() -> int:
    load_dotenv()
    configure_logging(stream=sys.stderr)
    args = _parser().parse_args()
    config = load_board_config(args.config)
    backend = create_backend(config)
    store = WorkOrderStore(backend)

    try:
        if args.command == "stats":
            stats = backend.fetch_stats()
            print(
                "stats:"
                f"active={stats.total_active}:"
                f"overdue={stats.overdue}:"
                f"completed_today={stats.completed_today}:"
                f"utilization={round(stats.utilization_rate)}%"
            )
            return 0

        board_filter = WorkOrderFilter.create(
            assigned_to=getattr(args, "assignee", None) if args.command == "show" else None,
            overdue_only=getattr(args, "overdue", False),
            due_by=getattr(args, "due_by", None),
        )
        store.refresh(board_filter)

        if args.command == "show":
            board = build_board(store.list(), board_filter)
            if args.as_json:
                print(json.dumps(board.to_dict(), indent=2))
            else:
                print(render_board_text(board))
            return 0

        with InteractionController(
            store,
            backend,
            timeout_s=float(config.get("move_timeout_s", 30)),
            quotes=backend if hasattr(backend, "get_quote") else None,
        ) as controller:
            if args.command == "allowed":
                detail = controller.detail(args.work_order_id)
                allowed = ",".join(status.value for status in detail.allowed_next)
                print(f"allowed:{detail.work_order.status.value}:{allowed}")
                return 0

            if args.command == "move":
                outcome = controller.request_move(args.work_order_id, args.status, notes=args.notes, actor="cli")
                if outcome.noop:
                    print(f"move:noop:{args.work_order_id}")
                    return 0
                outcome.raise_for_error()
                print(
                    f"move:{outcome.state.value}:{args.work_order_id}:"
                    f"{outcome.source_status.value}->{outcome.target_status.value}"
                )
                return 0

            if args.command == "batch":
                moved = controller.request_batch_move(
                    args.work_order_ids, args.status, notes=args.notes, actor="cli"
                )
                ids = ",".join(order.id for order in moved)
                print(f"batch:{len(moved)}:{moved[0].status.value}:{ids}")
                return 0

            if args.command == "edit":
                fields = {}
                if args.assignee is not None:
                    fields["assigned_to"] = args.assignee
                if args.due_date is not None:
                    fields["due_date"] = args.due_date
                if args.priority is not None:
                    fields["priority"] = args.priority
                if args.notes is not None:
                    fields["production_notes"] = args.notes
                updated = controller.edit_fields(args.work_order_id, fields)
                print(f"edit:{updated.id}:{','.join(sorted(fields))}")
                return 0
    except (WorkOrderError, FieldValidationError, ValueError) as err:
        print(f"error:{err}", file=sys.stderr)
        return 1

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
