"""
Command-line interface for the dataset migration tool.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import TYPE_CHECKING

from .config import load_settings
from .exceptions import MigrationError
from .models import PLATFORMS
from .service import DEFAULT_RECENT_LIMIT, MigrationService
from .sql_storage import DEFAULT_DATABASE_URL
from .utils import setup_logging

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .config import Settings
    from .models import MigrationJob, MigrationStep

logger: logging.Logger = logging.getLogger(__name__)


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="dataset-migrator", description="Migrate datasets between GitHub, Kaggle and Hugging Face"
    )
    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    _ = parser.add_argument(
        "--database-url", help=f"SQLAlchemy database URL for migration records (default: {DEFAULT_DATABASE_URL})"
    )
    _ = parser.add_argument(
        "--github-pass-token", help="Path for GitHub token in pass utility (default: github/cli/token)"
    )
    _ = parser.add_argument(
        "--huggingface-pass-token",
        help="Path for Hugging Face token in pass utility (default: huggingface/cli/token)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    migrate = commands.add_parser("migrate", help="Migrate a dataset and wait for the result")
    _ = migrate.add_argument("source_platform", choices=PLATFORMS, help="Platform the dataset lives on")
    _ = migrate.add_argument("source_url", help="URL of the dataset on the source platform")
    _ = migrate.add_argument("destination_platform", choices=PLATFORMS, help="Platform to migrate to")
    _ = migrate.add_argument("--repository-name", help="Destination repository name (default: dataset name)")
    _ = migrate.add_argument("--private", action="store_true", help="Create a private destination repository")
    _ = migrate.add_argument("--generate-card", action="store_true", help="Generate a dataset card")
    _ = migrate.add_argument("--validate-schema", action="store_true", help="Require consistent CSV/TSV columns")
    _ = migrate.add_argument("--run-analysis", action="store_true", help="Analyze dataset quality")
    _ = migrate.add_argument(
        "--select", nargs="+", metavar="FILE", help="Only migrate these files (names or paths)"
    )

    status = commands.add_parser("status", help="Show a migration job")
    _ = status.add_argument("job_id", type=int)

    steps = commands.add_parser("steps", help="Show the steps of a migration job")
    _ = steps.add_argument("job_id", type=int)

    cancel = commands.add_parser("cancel", help="Cancel a migration job that has not finished")
    _ = cancel.add_argument("job_id", type=int)

    recent = commands.add_parser("recent", help="List the most recent migration jobs")
    _ = recent.add_argument("--limit", type=int, default=DEFAULT_RECENT_LIMIT)

    analyze = commands.add_parser("analyze", help="Analyze a recorded dataset")
    _ = analyze.add_argument("dataset_id", type=int)

    card = commands.add_parser("card", help="Print a dataset card for a recorded dataset")
    _ = card.add_argument("dataset_id", type=int)

    return parser.parse_args(argv)


def format_job(job: MigrationJob) -> str:
    line = f"Migration {job.id}: {job.status} ({job.progress}%) {job.source_url} -> {job.destination_platform}"
    if job.destination_url:
        line += f" [{job.destination_url}]"
    if job.error:
        line += f"\n  Error: {job.error}"
    return line


def format_steps(steps: Sequence[MigrationStep]) -> str:
    lines = []
    for step in steps:
        line = f"  [{step.status:<11}] {step.name}"
        if step.message:
            line += f": {step.message}"
        lines.append(line)
    return "\n".join(lines)


async def run_command(args: argparse.Namespace, settings: Settings) -> int:
    """Run the selected subcommand and return the process exit code."""
    service = await MigrationService.from_settings(settings)
    try:
        if args.command == "migrate":
            job = await service.start_migration(
                {
                    "sourcePlatform": args.source_platform,
                    "sourceUrl": args.source_url,
                    "destinationPlatform": args.destination_platform,
                    "repositoryName": args.repository_name,
                    "isPrivate": args.private,
                    "generateCard": args.generate_card,
                    "validateSchema": args.validate_schema,
                    "runAnalysis": args.run_analysis,
                    "selectedFiles": args.select,
                }
            )
            await service.orchestrator.wait(job.id)
            job = await service.get_migration(job.id)
            print(format_job(job))
            print(format_steps(await service.get_migration_steps(job.id)))
            return 0 if job.status == "completed" else 1

        if args.command == "status":
            print(format_job(await service.get_migration(args.job_id)))
        elif args.command == "steps":
            print(format_steps(await service.get_migration_steps(args.job_id)))
        elif args.command == "cancel":
            print(format_job(await service.cancel_migration(args.job_id)))
        elif args.command == "recent":
            for job in await service.recent_migrations(args.limit):
                print(format_job(job))
        elif args.command == "analyze":
            report = await service.analyze_dataset(args.dataset_id)
            print(json.dumps(report.to_dict(), indent=2))
        elif args.command == "card":
            print(await service.generate_card(args.dataset_id))
        return 0
    finally:
        await service.close()


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)

    # Setup logging
    verbose: bool = getattr(args, "verbose", False)
    setup_logging(verbose=verbose)

    try:
        settings = load_settings(
            database_url=args.database_url,
            github_pass_path=args.github_pass_token,
            huggingface_pass_path=args.huggingface_pass_token,
        )
        # Records must outlive the process so later commands can read them
        if not settings.database_url:
            settings = dataclasses.replace(settings, database_url=DEFAULT_DATABASE_URL)
        exit_code = asyncio.run(run_command(args, settings))
    except MigrationError as e:
        logger.error(str(e))
        sys.exit(1)
    except Exception:
        logger.exception("Command failed")
        sys.exit(1)

    sys.exit(exit_code)
