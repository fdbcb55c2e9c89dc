from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from taskdeck.config import load_config
from taskdeck.context import AppContext, create_context
from taskdeck.storage import StorageError
from taskdeck.tasks import TaskCategory, TaskPriority, TaskRecord, TaskStatus

SORT_FIELDS = ["title", "dueDate", "createdAt", "priority"]


def _emit(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, ensure_ascii=False, default=str) + "\n")


def _task_view(record: TaskRecord) -> dict[str, Any]:
    """Stored fields plus the derived ones, for display."""
    view = record.to_snapshot()
    view["isCompleted"] = record.is_completed
    view["isOverdue"] = record.is_overdue
    view["daysUntilDue"] = record.days_until_due
    return view


def cmd_info(ctx: AppContext, args: argparse.Namespace) -> int:
    _emit(
        {
            "appName": ctx.store.app_name,
            "version": ctx.store.version,
            "backend": ctx.config.backend,
            "storage": ctx.store.get_storage_info().model_dump(mode="json", by_alias=True),
            "metadata": ctx.store.get_metadata().model_dump(mode="json", by_alias=True),
            "entities": sorted(ctx.store.get_entities()),
            "tasks": len(ctx.tasks),
            "skipped": len(ctx.tasks.last_load.skipped),
        }
    )
    return 0


def cmd_stats(ctx: AppContext, args: argparse.Namespace) -> int:
    stats = ctx.tasks.get_stats(args.owner)
    top = ctx.tasks.get_most_used_categories(args.owner)
    _emit(
        {
            "stats": stats.model_dump(mode="json", by_alias=True),
            "mostUsedCategories": [u.model_dump(mode="json", by_alias=True) for u in top],
        }
    )
    return 0


def cmd_list(ctx: AppContext, args: argparse.Namespace) -> int:
    records = ctx.tasks.filter(
        {
            "ownerId": args.owner,
            "status": args.status,
            "priority": args.priority,
            "category": args.category,
        }
    )
    if args.search:
        matched = {r.id for r in ctx.tasks.search(args.search)}
        records = [r for r in records if r.id in matched]
    records = ctx.tasks.sort(records, args.sort, "desc" if args.desc else "asc")
    _emit([_task_view(r) for r in records])
    return 0


def cmd_overdue(ctx: AppContext, args: argparse.Namespace) -> int:
    _emit([_task_view(r) for r in ctx.tasks.find_overdue()])
    return 0


def cmd_due_soon(ctx: AppContext, args: argparse.Namespace) -> int:
    days = args.days if args.days is not None else ctx.config.due_soon_days
    _emit([_task_view(r) for r in ctx.tasks.find_due_soon(days)])
    return 0


def cmd_export(ctx: AppContext, args: argparse.Namespace) -> int:
    snapshot = ctx.store.export_data().to_json_dict()
    if not args.output:
        _emit(snapshot)
        return 0
    try:
        path = Path(args.output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(snapshot, indent=2, ensure_ascii=False), "utf-8")
    except OSError as exc:
        sys.stderr.write(f"error: cannot write {args.output}: {exc}\n")
        return 1
    _emit({"exported": len(snapshot["data"]), "path": str(path)})
    return 0


def cmd_import(ctx: AppContext, args: argparse.Namespace) -> int:
    try:
        data = json.loads(Path(args.file).read_text("utf-8"))
    except (OSError, ValueError) as exc:
        sys.stderr.write(f"error: cannot read {args.file}: {exc}\n")
        return 1
    if not ctx.store.import_data(data):
        sys.stderr.write("error: import failed; see logs for details\n")
        return 1
    result = ctx.tasks.reload()
    _emit(
        {
            "imported": len(data.get("data") or {}),
            "tasks": len(result.records),
            "skipped": len(result.skipped),
        }
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser("taskdeck", description="Inspect and back up a taskdeck store")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_info = sub.add_parser("info", help="Storage usage, metadata and slot list")
    p_info.set_defaults(func=cmd_info)

    p_stats = sub.add_parser("stats", help="Task counts by status, category and priority")
    p_stats.add_argument("--owner")
    p_stats.set_defaults(func=cmd_stats)

    p_list = sub.add_parser("list", help="List tasks")
    p_list.add_argument("--owner")
    p_list.add_argument("--status", choices=[s.value for s in TaskStatus])
    p_list.add_argument("--priority", choices=[p.value for p in TaskPriority])
    p_list.add_argument("--category", choices=[c.value for c in TaskCategory])
    p_list.add_argument("--search")
    p_list.add_argument("--sort", choices=SORT_FIELDS, default="createdAt")
    p_list.add_argument("--desc", action="store_true")
    p_list.set_defaults(func=cmd_list)

    p_overdue = sub.add_parser("overdue", help="Open tasks past their due date")
    p_overdue.set_defaults(func=cmd_overdue)

    p_due = sub.add_parser("due-soon", help="Open tasks due within N days")
    p_due.add_argument("--days", type=int)
    p_due.set_defaults(func=cmd_due_soon)

    p_export = sub.add_parser("export", help="Export every key of the namespace as JSON")
    p_export.add_argument("-o", "--output")
    p_export.set_defaults(func=cmd_export)

    p_import = sub.add_parser("import", help="Import an export file")
    p_import.add_argument("file")
    p_import.set_defaults(func=cmd_import)
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    try:
        ctx = create_context(load_config())
    except StorageError as exc:
        sys.stderr.write(f"error: storage unavailable: {exc}\n")
        raise SystemExit(1) from exc
    raise SystemExit(args.func(ctx, args))


if __name__ == "__main__":
    main()
