#!/usr/bin/env python3
"""
Shrimp Tasks - CLI Interface
============================
Command-line front end over TaskManager.

Usage:
    shrimp-tasks plan tasks.json --mode clearAllTasks
    shrimp-tasks list --status pending
    shrimp-tasks start <id>
    shrimp-tasks complete <id> --summary "Implemented and tested"
    shrimp-tasks search "schema store" --page 2
    shrimp-tasks clear
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import Settings
from .errors import TaskManagerError, TaskValidationError
from .manager import TaskManager
from .schema import OperationResult, Task, TaskStatus, UpdateMode


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def _task_line(task: Task) -> str:
    return f"  [{task.id}] {task.name} ({task.status.value})"


def _report(result: OperationResult, as_json: bool = False) -> int:
    if as_json:
        _print_json(result.model_dump(mode="json", by_alias=True))
        return 0 if result.success else 1
    if result.success:
        print(f"✅ {result.message}")
    else:
        print(f"❌ [{result.error}] {result.message}")
        if result.blocking_ids:
            print(f"   Blocking: {', '.join(result.blocking_ids)}")
    for task in result.tasks:
        print(_task_line(task))
    for warning in result.warnings:
        print(f"⚠️ {warning}")
    return 0 if result.success else 1


def _parse_assignments(pairs: List[str]) -> dict:
    fields = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise TaskValidationError(f"Expected FIELD=VALUE, got {pair!r}")
        if key == "dependencies":
            fields[key] = [v.strip() for v in value.split(",") if v.strip()]
        else:
            fields[key] = value
    return fields


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shrimp-tasks",
        description="Shrimp Tasks - persistent task graph manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  shrimp-tasks plan tasks.json --mode selective   Merge a task batch by name
  shrimp-tasks list --status in_progress          List tasks in progress
  shrimp-tasks start <id>                         Start a task
  shrimp-tasks complete <id> -s "Done, tests pass"   Complete a task
  shrimp-tasks check <id>                         Show blocking dependencies
  shrimp-tasks search "api client" --page 2       Search live and archived tasks
  shrimp-tasks history -n 5                       Last five recorded changes
        """
    )
    parser.add_argument("--dir", dest="data_dir", help="Data directory (default: $SHRIMP_DATA_DIR or ./data)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # LIST command
    list_parser = subparsers.add_parser("list", help="List tasks")
    list_parser.add_argument("--status", choices=["all"] + [s.value for s in TaskStatus], default="all")
    list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # SHOW command
    show_parser = subparsers.add_parser("show", help="Show one task")
    show_parser.add_argument("task_id")
    show_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # PLAN command
    plan_parser = subparsers.add_parser("plan", help="Apply a JSON batch of task drafts")
    plan_parser.add_argument("file", help="JSON file with a list of tasks ('-' for stdin)")
    plan_parser.add_argument("-m", "--mode", choices=[m.value for m in UpdateMode], required=True)
    plan_parser.add_argument("--analysis", help="Global analysis stamped onto every task in the batch")
    plan_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # UPDATE command
    update_parser = subparsers.add_parser("update", help="Update task fields")
    update_parser.add_argument("task_id")
    update_parser.add_argument("--set", dest="assignments", action="append", default=[],
                               metavar="FIELD=VALUE", help="Field to update (repeatable)")
    update_parser.add_argument("--file", help="JSON object with the fields to update")
    update_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # STATUS TRANSITIONS
    start_parser = subparsers.add_parser("start", help="Start a task")
    start_parser.add_argument("task_id")
    complete_parser = subparsers.add_parser("complete", help="Mark a task as completed")
    complete_parser.add_argument("task_id")
    complete_parser.add_argument("-s", "--summary", required=True, help="Completion summary")
    block_parser = subparsers.add_parser("block", help="Mark a task as blocked")
    block_parser.add_argument("task_id")

    # DELETE / CHECK / ASSESS
    delete_parser = subparsers.add_parser("delete", help="Delete a task")
    delete_parser.add_argument("task_id")
    check_parser = subparsers.add_parser("check", help="Check whether a task can be executed")
    check_parser.add_argument("task_id")
    assess_parser = subparsers.add_parser("assess", help="Assess task complexity")
    assess_parser.add_argument("task_id")
    assess_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # SEARCH command
    search_parser = subparsers.add_parser("search", help="Search live and archived tasks")
    search_parser.add_argument("query", nargs="?", default="")
    search_parser.add_argument("--id", dest="is_id", action="store_true", help="Exact id lookup")
    search_parser.add_argument("-p", "--page", type=int, default=1)
    search_parser.add_argument("--page-size", type=int)
    search_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # CLEAR / STATUS / HISTORY
    subparsers.add_parser("clear", help="Archive completed tasks and clear the list")
    subparsers.add_parser("status", help="Show status report")
    history_parser = subparsers.add_parser("history", help="Show recorded changes")
    history_parser.add_argument("-n", "--limit", type=int, default=20)

    return parser


def run(args: argparse.Namespace, manager: TaskManager) -> int:
    if args.command == "list":
        result = manager.list_tasks(args.status)
        if not result.success:
            return _report(result)
        tasks = result.tasks
        if args.json:
            _print_json([t.model_dump(mode="json", by_alias=True) for t in tasks])
            return 0
        if not tasks:
            print("No tasks found")
            return 0
        print(f"📋 Tasks ({len(tasks)}):")
        for task in tasks:
            print(_task_line(task))

    elif args.command == "show":
        result = manager.get_task(args.task_id)
        if not result.success:
            return _report(result)
        task = result.task
        if args.json:
            _print_json(task.model_dump(mode="json", by_alias=True))
        else:
            print(f"[{task.id}] {task.name}")
            print(f"   Status: {task.status.value}")
            print(f"   Description: {task.description}")
            if task.dependencies:
                print(f"   Depends on: {', '.join(task.dependency_ids)}")
            if task.summary:
                print(f"   Summary: {task.summary}")

    elif args.command == "plan":
        raw = sys.stdin.read() if args.file == "-" else Path(args.file).read_text(encoding="utf-8")
        result = manager.create_or_reconcile(raw, args.mode, global_analysis=args.analysis)
        return _report(result, args.json)

    elif args.command == "update":
        fields = json.loads(Path(args.file).read_text(encoding="utf-8")) if args.file else {}
        if not isinstance(fields, dict):
            raise TaskValidationError("Update file must contain a JSON object")
        fields.update(_parse_assignments(args.assignments))
        return _report(manager.update_task_fields(args.task_id, fields), args.json)

    elif args.command == "start":
        return _report(manager.start_task(args.task_id))

    elif args.command == "complete":
        return _report(manager.complete_task(args.task_id, args.summary))

    elif args.command == "block":
        return _report(manager.transition_status(args.task_id, TaskStatus.BLOCKED))

    elif args.command == "delete":
        return _report(manager.delete_task(args.task_id))

    elif args.command == "check":
        check = manager.can_execute(args.task_id)
        if check.error:
            print(f"❌ [{check.error}] {check.reason}")
            return 1
        if check.allowed:
            print(f"▶️ Task {args.task_id} can be executed")
            return 0
        detail = f": {', '.join(check.blocking_ids)}" if check.blocking_ids else ""
        print(f"⛔ Task {args.task_id} cannot be executed ({check.reason}){detail}")
        return 1

    elif args.command == "assess":
        assessment = manager.assess_complexity(args.task_id)
        if not assessment.success:
            print(f"❌ [{assessment.error}] {assessment.message}")
            return 1
        if args.json:
            _print_json(assessment.model_dump(mode="json", by_alias=True))
        else:
            print(f"Complexity: {assessment.level.value}")
            for rec in assessment.recommendations:
                print(f"   - {rec}")

    elif args.command == "search":
        result = manager.search(args.query, args.is_id, args.page, args.page_size)
        if not result.success:
            print(f"❌ [{result.error}] {result.message}")
            return 1
        if args.json:
            _print_json(result.model_dump(mode="json", by_alias=True))
            return 0
        p = result.pagination
        print(f"🔎 {p.total_results} results (page {p.current_page}/{p.total_pages})")
        for task in result.tasks:
            print(_task_line(task))

    elif args.command == "clear":
        result = manager.clear_all()
        if not result.success:
            print(f"❌ [{result.error}] {result.message}")
            return 1
        print(f"✅ {result.message}")
        if result.archive_id:
            print(f"   Archive: {result.archive_id}")

    elif args.command == "status":
        print(manager.get_status_report())

    elif args.command == "history":
        entries = manager.history(args.limit)
        if not entries:
            print("No recorded changes")
        for entry in entries:
            print(f"  {entry.timestamp}  {entry.digest}  {entry.message}")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    settings = Settings()
    level = logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    manager = TaskManager(data_dir=args.data_dir, settings=settings)
    try:
        return run(args, manager)
    except TaskManagerError as e:
        print(f"❌ [{e.kind}] {e.message}")
        return 1
    except (OSError, json.JSONDecodeError) as e:
        print(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
