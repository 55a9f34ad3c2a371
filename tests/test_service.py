"""
Tests for the service boundary: request validation, lookups and dataset operations.
"""

from unittest.mock import patch

import pytest
from conftest import FakeAnalysis

from dataset_migrator.config import Settings
from dataset_migrator.exceptions import InvalidStateError, NotFoundError, RequestValidationError
from dataset_migrator.memory_storage import MemoryStorage
from dataset_migrator.models import MigrationOptions
from dataset_migrator.orchestrator import MigrationOrchestrator
from dataset_migrator.service import MigrationService, create_storage, parse_migration_request
from dataset_migrator.sql_storage import SqlStorage

REQUEST = {
    "sourcePlatform": "github",
    "sourceUrl": "https://github.com/user/iris",
    "destinationPlatform": "huggingface",
}


@pytest.fixture
def service(storage: MemoryStorage, orchestrator: MigrationOrchestrator, analysis: FakeAnalysis) -> MigrationService:
    return MigrationService(storage, orchestrator, analysis)


@pytest.mark.unit
class TestParseMigrationRequest:
    """Test migration request validation."""

    def test_minimal_request(self) -> None:
        assert parse_migration_request(REQUEST) == (
            "github",
            "https://github.com/user/iris",
            "huggingface",
            MigrationOptions(),
        )

    def test_full_request(self) -> None:
        body = {
            **REQUEST,
            "repositoryName": "iris",
            "isPrivate": True,
            "generateCard": True,
            "validateSchema": False,
            "runAnalysis": True,
            "selectedFiles": ["train.csv"],
        }

        _, _, _, options = parse_migration_request(body)

        assert options == MigrationOptions(
            repository_name="iris",
            is_private=True,
            generate_card=True,
            run_analysis=True,
            selected_files=("train.csv",),
        )

    def test_invalid_fields_are_reported_together(self) -> None:
        body = {
            "sourcePlatform": "gitlab",
            "sourceUrl": "not a url",
            "destinationPlatform": "huggingface",
            "isPrivate": "yes",
            "selectedFiles": "train.csv",
        }

        with pytest.raises(RequestValidationError) as exc_info:
            parse_migration_request(body)

        assert set(exc_info.value.errors) == {"sourcePlatform", "sourceUrl", "isPrivate", "selectedFiles"}

    def test_missing_source_url(self) -> None:
        body = {"sourcePlatform": "kaggle", "destinationPlatform": "huggingface"}

        with pytest.raises(RequestValidationError, match="sourceUrl: Required"):
            parse_migration_request(body)


@pytest.mark.unit
class TestMigrationOperations:
    """Test migration lookups and cancellation through the service."""

    @pytest.mark.asyncio
    async def test_start_and_poll_migration(self, service: MigrationService) -> None:
        job = await service.start_migration(REQUEST)
        await service.orchestrator.wait(job.id)

        assert (await service.get_migration(job.id)).status == "completed"
        assert len(await service.get_migration_steps(job.id)) == 5
        assert [j.id for j in await service.list_migrations()] == [job.id]

    @pytest.mark.asyncio
    async def test_invalid_request_creates_nothing(self, service: MigrationService, storage: MemoryStorage) -> None:
        with pytest.raises(RequestValidationError):
            await service.start_migration({**REQUEST, "destinationPlatform": "dropbox"})

        assert await storage.list_migration_jobs() == []
        assert await storage.list_datasets() == []

    @pytest.mark.asyncio
    async def test_unknown_ids_raise_not_found(self, service: MigrationService) -> None:
        with pytest.raises(NotFoundError):
            await service.get_migration(7)
        with pytest.raises(NotFoundError):
            await service.get_migration_steps(7)
        with pytest.raises(NotFoundError):
            await service.get_dataset(7)
        with pytest.raises(NotFoundError):
            await service.cancel_migration(7)

    @pytest.mark.asyncio
    async def test_recent_migrations_default_limit(self, service: MigrationService) -> None:
        jobs = [await service.start_migration(REQUEST) for _ in range(4)]
        await service.orchestrator.shutdown()

        recent = await service.recent_migrations()

        assert [j.id for j in recent] == [jobs[3].id, jobs[2].id, jobs[1].id]

    @pytest.mark.asyncio
    async def test_recent_migrations_rejects_bad_limit(self, service: MigrationService) -> None:
        with pytest.raises(RequestValidationError):
            await service.recent_migrations(0)

    @pytest.mark.asyncio
    async def test_cancel_twice(self, service: MigrationService) -> None:
        job = await service.start_migration(REQUEST)

        cancelled = await service.cancel_migration(job.id)
        assert cancelled.error == "Migration cancelled by user"

        with pytest.raises(InvalidStateError, match="Cannot cancel migration in failed state"):
            await service.cancel_migration(job.id)
        await service.orchestrator.wait(job.id)


@pytest.mark.unit
class TestDatasetOperations:
    """Test dataset lookups, analysis and card generation."""

    @pytest.mark.asyncio
    async def test_dataset_files(self, service: MigrationService) -> None:
        job = await service.start_migration(REQUEST)
        await service.orchestrator.wait(job.id)

        dataset = await service.get_dataset(job.dataset_id)
        files = await service.get_dataset_files(dataset.id)

        assert dataset.files_count == 3
        assert dataset.total_size == sum(f.size for f in files)
        assert [d.id for d in await service.list_datasets()] == [dataset.id]

    @pytest.mark.asyncio
    async def test_analyze_dataset_stores_report(self, service: MigrationService, analysis: FakeAnalysis) -> None:
        job = await service.start_migration(REQUEST)
        await service.orchestrator.wait(job.id)

        report = await service.analyze_dataset(job.dataset_id)

        assert report.quality == 80
        assert report.report["recommendations"] == ["Add more rows"]
        assert "train.csv" in analysis.samples[0]
        assert [r.id for r in await service.get_analysis_reports(job.dataset_id)] == [report.id]

    @pytest.mark.asyncio
    async def test_generate_card_uses_newest_report(self, service: MigrationService, analysis: FakeAnalysis) -> None:
        job = await service.start_migration(REQUEST)
        await service.orchestrator.wait(job.id)

        assert await service.generate_card(job.dataset_id) == "# Dataset Card for Iris Data\n"
        assert analysis.card_requests[-1] is None

        await service.analyze_dataset(job.dataset_id)
        await service.generate_card(job.dataset_id)

        assert analysis.card_requests[-1]["quality"] == 80
        assert analysis.card_requests[-1]["summary"] == "Iris Data looks fine"


@pytest.mark.unit
class TestCreateStorage:
    """Test storage selection from settings."""

    @pytest.mark.asyncio
    async def test_memory_storage_without_database_url(self) -> None:
        assert isinstance(await create_storage(Settings()), MemoryStorage)

    @pytest.mark.asyncio
    async def test_sql_storage_with_database_url(self) -> None:
        storage = await create_storage(Settings(database_url="sqlite+aiosqlite:///:memory:"))
        try:
            assert isinstance(storage, SqlStorage)
            assert await storage.list_datasets() == []
        finally:
            await storage.close()

    @pytest.mark.asyncio
    async def test_from_settings_uses_heuristic_analysis_without_key(self) -> None:
        with patch("dataset_migrator.platforms.kgu.load_credentials", return_value=None):
            service = await MigrationService.from_settings(Settings())

        assert service._analysis.ai_generated is False
        await service.close()
