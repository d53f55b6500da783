"""datarepo CLI entry points.
This module exposes dataset repository commands.
It maps argparse commands onto DataRepository calls.
"""

from __future__ import annotations

import argparse
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys
from typing import Any, Sequence

from core.config import DataRepoConfig
from core.constants import DISPLAY_DATE_FORMAT, DISPLAY_TIMESTAMP_FORMAT
from core.errors import DataRepoError
from core.types import Criteria, DatasetRecord
from store.cleanup import (
    CleanupStrategy,
    ExistsCleanup,
    OrphanPayloadCleanup,
    RetentionCleanup,
    SizeBudgetCleanup,
)
from store.dataset_repository import DataRepository


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="datarepo", description="Local dataset repository")
    parser.add_argument("--repository", help="Override DATAREPO_ROOT for this command")
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_add_command(subparsers)
    _add_delete_command(subparsers)
    _add_replace_command(subparsers)
    _add_list_command(subparsers)
    _add_export_command(subparsers)
    _add_cleanup_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the datarepo CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = _build_config(args.repository)
        with DataRepository.open(config) as repository:
            return _dispatch(parser, repository, args)
    except DataRepoError as error:
        print(f"error: {error}", file=sys.stderr)
        return 1


def parse_date(raw_value: str) -> datetime:
    """Parse a CLI date as UTC.

    Accepts ``YYYY-MM-DD`` or ``YYYY-MM-DD HH:MM:SS``.

    Raises:
        argparse.ArgumentTypeError: If the value matches neither format.
    """
    date_format = DISPLAY_TIMESTAMP_FORMAT if len(raw_value) > 10 else DISPLAY_DATE_FORMAT
    try:
        parsed = datetime.strptime(raw_value, date_format)
    except ValueError as error:
        raise argparse.ArgumentTypeError(
            f"invalid date '{raw_value}', expected YYYY-MM-DD or 'YYYY-MM-DD HH:MM:SS'"
        ) from error
    return parsed.replace(tzinfo=timezone.utc)


def format_record(record: DatasetRecord) -> str:
    """Render one record as a tab-separated listing row."""
    return (
        f"{record.dataset_id}\t"
        f"{record.name}\t"
        f"{record.file_count}\t"
        f"{record.size_bytes}\t"
        f"{record.timestamp.strftime(DISPLAY_TIMESTAMP_FORMAT)}\t"
        f"{record.description or '-'}"
    )


def _build_config(repository: str | None) -> DataRepoConfig:
    """Build config with optional repository override.

    Args:
        repository: Optional override path.

    Returns:
        Runtime configuration.
    """
    config = DataRepoConfig.from_env()
    if repository:
        config = replace(config, repository_root=Path(repository).expanduser().resolve())
    return config


def _dispatch(
    parser: argparse.ArgumentParser,
    repository: DataRepository,
    args: argparse.Namespace,
) -> int:
    if args.command == "add":
        return _run_add_command(repository, args)
    if args.command == "delete":
        return _run_delete_command(parser, repository, args)
    if args.command == "replace":
        return _run_replace_command(repository, args)
    if args.command == "list":
        return _run_list_command(repository, args)
    if args.command == "export":
        return _run_export_command(repository, args)
    if args.command == "cleanup":
        return _run_cleanup_command(repository, args)
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _run_add_command(repository: DataRepository, args: argparse.Namespace) -> int:
    """Handle add command."""
    record = repository.add(
        args.source,
        name=args.name,
        description=args.description,
        move=args.move,
    )
    print(record.dataset_id)
    return 0


def _run_delete_command(
    parser: argparse.ArgumentParser,
    repository: DataRepository,
    args: argparse.Namespace,
) -> int:
    """Handle delete command; refuses to run without any filter."""
    criteria = _criteria_from_args(args)
    if criteria.is_match_all:
        parser.error("delete requires at least one of --id, --name, --text, --after, --before")
    for record in repository.delete(criteria):
        print(format_record(record))
    return 0


def _run_replace_command(repository: DataRepository, args: argparse.Namespace) -> int:
    """Handle replace command."""
    record = repository.replace(
        args.dataset_id,
        args.source,
        description=args.description,
        move=args.move,
    )
    print(format_record(record))
    return 0


def _run_list_command(repository: DataRepository, args: argparse.Namespace) -> int:
    """Handle list command."""
    for record in repository.list_datasets(_criteria_from_args(args)):
        print(format_record(record))
    return 0


def _run_export_command(repository: DataRepository, args: argparse.Namespace) -> int:
    """Handle export command."""
    for record in repository.export(_criteria_from_args(args), args.target):
        print(format_record(record))
    return 0


def _run_cleanup_command(repository: DataRepository, args: argparse.Namespace) -> int:
    """Handle cleanup command."""
    altered = repository.cleanup(_strategy_from_args(args))
    print(altered)
    return 0


def _criteria_from_args(args: argparse.Namespace) -> Criteria:
    """Build query criteria from filter flags."""
    return Criteria(
        dataset_id=args.id,
        name=args.name,
        text=args.text,
        after=args.after,
        before=args.before,
    )


def _strategy_from_args(args: argparse.Namespace) -> CleanupStrategy:
    """Map cleanup flags onto a strategy instance."""
    if args.strategy == "orphans":
        return OrphanPayloadCleanup()
    if args.strategy == "retention":
        return RetentionCleanup(max_age=timedelta(days=args.max_age_days))
    if args.strategy == "size":
        return SizeBudgetCleanup(max_total_bytes=args.max_bytes)
    return ExistsCleanup()


def _add_filter_arguments(parser: Any) -> None:
    """Register criteria filter flags on a subcommand."""
    parser.add_argument("--id", help="Exact dataset id; cannot be combined with other filters")
    parser.add_argument("--name", help="Exact dataset name")
    parser.add_argument("--text", help="Text contained in name or description")
    parser.add_argument("--after", type=parse_date, help="Only datasets stamped after this date")
    parser.add_argument("--before", type=parse_date, help="Only datasets stamped before this date")


def _add_add_command(subparsers: Any) -> None:
    """Register add subcommand."""
    parser = subparsers.add_parser("add", help="Add a file or directory as a dataset")
    parser.add_argument("source", help="File or directory to add")
    parser.add_argument("--name", help="Dataset name, defaults to the source file name")
    parser.add_argument("--description", default="", help="Dataset description")
    parser.add_argument("--move", action="store_true", help="Move the source instead of copying")


def _add_delete_command(subparsers: Any) -> None:
    """Register delete subcommand."""
    parser = subparsers.add_parser("delete", help="Delete matching datasets")
    _add_filter_arguments(parser)


def _add_replace_command(subparsers: Any) -> None:
    """Register replace subcommand."""
    parser = subparsers.add_parser("replace", help="Replace the payload of a dataset")
    parser.add_argument("dataset_id", help="Dataset id to replace")
    parser.add_argument("source", help="New file or directory")
    parser.add_argument("--description", help="New description, keeps the old one if omitted")
    parser.add_argument("--move", action="store_true", help="Move the source instead of copying")


def _add_list_command(subparsers: Any) -> None:
    """Register list subcommand."""
    parser = subparsers.add_parser("list", help="List matching datasets")
    _add_filter_arguments(parser)


def _add_export_command(subparsers: Any) -> None:
    """Register export subcommand."""
    parser = subparsers.add_parser("export", help="Copy matching dataset payloads out")
    parser.add_argument("target", help="Existing target directory")
    _add_filter_arguments(parser)


def _add_cleanup_command(subparsers: Any) -> None:
    """Register cleanup subcommand."""
    parser = subparsers.add_parser("cleanup", help="Reconcile metadata with the repository")
    parser.add_argument(
        "--strategy",
        default="exists",
        choices=("exists", "orphans", "retention", "size"),
        help="Cleanup strategy",
    )
    parser.add_argument(
        "--max-age-days",
        type=float,
        default=30.0,
        help="Maximum dataset age for the retention strategy",
    )
    parser.add_argument(
        "--max-bytes",
        type=int,
        default=0,
        help="Total size budget for the size strategy",
    )
