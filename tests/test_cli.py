"""
Tests for CLI module.
"""

import logging
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from dataset_migrator.cli import format_job, format_steps, main, parse_arguments
from dataset_migrator.config import Settings
from dataset_migrator.memory_storage import MemoryStorage
from dataset_migrator.models import MigrationJob, MigrationStep
from dataset_migrator.orchestrator import MigrationOrchestrator
from dataset_migrator.service import MigrationService
from dataset_migrator.utils import setup_logging

SOURCE_URL = "https://github.com/user/iris"


@pytest.fixture
def service(storage: MemoryStorage, orchestrator: MigrationOrchestrator, analysis) -> MigrationService:
    return MigrationService(storage, orchestrator, analysis)


def _run_main(service: MigrationService, argv: list[str]) -> int:
    with (
        patch("dataset_migrator.cli.setup_logging"),
        patch("dataset_migrator.cli.load_settings", return_value=Settings()),
        patch("dataset_migrator.cli.MigrationService.from_settings", AsyncMock(return_value=service)),
        pytest.raises(SystemExit) as exc_info,
    ):
        main(argv)
    return exc_info.value.code


@pytest.mark.unit
class TestParseArguments:
    """Test argument parsing."""

    def test_migrate_options(self) -> None:
        args = parse_arguments(
            [
                "--database-url",
                "sqlite+aiosqlite:///:memory:",
                "migrate",
                "kaggle",
                "https://www.kaggle.com/datasets/o/d",
                "huggingface",
                "--repository-name",
                "copy",
                "--private",
                "--validate-schema",
                "--select",
                "a.csv",
                "b.csv",
            ]
        )

        assert args.command == "migrate"
        assert args.database_url == "sqlite+aiosqlite:///:memory:"
        assert args.source_platform == "kaggle"
        assert args.repository_name == "copy"
        assert args.private is True
        assert args.validate_schema is True
        assert args.generate_card is False
        assert args.select == ["a.csv", "b.csv"]

    def test_recent_default_limit(self) -> None:
        assert parse_arguments(["recent"]).limit == 3

    def test_unknown_platform_is_rejected(self) -> None:
        with pytest.raises(SystemExit):
            parse_arguments(["migrate", "gitlab", SOURCE_URL, "huggingface"])


@pytest.mark.unit
class TestFormatting:
    """Test report formatting."""

    def test_format_failed_job(self) -> None:
        job = MigrationJob(
            id=3,
            dataset_id=1,
            source_platform="github",
            destination_platform="kaggle",
            source_url=SOURCE_URL,
            status="failed",
            progress=40,
            error="Unsupported destination platform: kaggle",
        )

        text = format_job(job)

        assert text.startswith(f"Migration 3: failed (40%) {SOURCE_URL} -> kaggle")
        assert "Error: Unsupported destination platform: kaggle" in text

    def test_format_steps(self) -> None:
        steps = [
            MigrationStep(id=1, migration_job_id=3, name="Repository validation", status="completed", message="ok"),
            MigrationStep(id=2, migration_job_id=3, name="Finalization"),
        ]

        lines = format_steps(steps).splitlines()

        assert lines[0] == "  [completed  ] Repository validation: ok"
        assert lines[1] == "  [pending    ] Finalization"


@pytest.mark.unit
class TestMain:
    """Test the CLI entry point with fake platforms."""

    def test_migrate_success(self, service: MigrationService, capsys: pytest.CaptureFixture[str]) -> None:
        code = _run_main(service, ["migrate", "github", SOURCE_URL, "huggingface", "--generate-card"])

        out = capsys.readouterr().out
        assert code == 0
        assert "Migration 1: completed (100%)" in out
        assert "Dataset card creation: Dataset card created" in out

    def test_migrate_failure_exit_code(self, service: MigrationService, capsys: pytest.CaptureFixture[str]) -> None:
        code = _run_main(service, ["migrate", "github", SOURCE_URL, "kaggle"])

        out = capsys.readouterr().out
        assert code == 1
        assert "Error: Unsupported destination platform: kaggle" in out

    def test_status_and_recent(self, service: MigrationService, capsys: pytest.CaptureFixture[str]) -> None:
        _run_main(service, ["migrate", "github", SOURCE_URL, "huggingface"])
        capsys.readouterr()

        assert _run_main(service, ["status", "1"]) == 0
        assert "Migration 1: completed" in capsys.readouterr().out
        assert _run_main(service, ["recent", "--limit", "1"]) == 0
        assert capsys.readouterr().out.count("Migration ") == 1

    def test_unknown_job(self, service: MigrationService, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR):
            assert _run_main(service, ["status", "99"]) == 1

        assert "Migration 99 not found" in caplog.text

    def test_cancel_completed_job(self, service: MigrationService, caplog: pytest.LogCaptureFixture) -> None:
        _run_main(service, ["migrate", "github", SOURCE_URL, "huggingface"])

        with caplog.at_level(logging.ERROR):
            assert _run_main(service, ["cancel", "1"]) == 1

        assert "Cannot cancel migration in completed state" in caplog.text

    def test_card(self, service: MigrationService, capsys: pytest.CaptureFixture[str]) -> None:
        _run_main(service, ["migrate", "github", SOURCE_URL, "huggingface"])
        capsys.readouterr()

        assert _run_main(service, ["card", "1"]) == 0
        assert "# Dataset Card for Iris Data" in capsys.readouterr().out


@pytest.mark.unit
class TestSetupLogging:
    """Test setup_logging verbosity levels."""

    @pytest.mark.parametrize(("verbose", "level"), [(False, logging.INFO), (True, logging.DEBUG)])
    def test_root_level(self, verbose: bool, level: int, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        root_logger = logging.getLogger()
        original_handlers = root_logger.handlers[:]
        original_level = root_logger.level
        root_logger.handlers.clear()

        try:
            setup_logging(verbose=verbose)
            assert root_logger.level == level
            assert any(isinstance(h, logging.FileHandler) for h in root_logger.handlers)
            assert (tmp_path / "migration.log").exists()
        finally:
            for h in root_logger.handlers:
                h.close()
            root_logger.handlers = original_handlers
            root_logger.setLevel(original_level)
