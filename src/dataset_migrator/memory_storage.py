"""In-memory Storage implementation.

Records live in dicts keyed by integer ids. Every read returns a copy so a
snapshot taken by a poller never changes underneath it.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, TypeVar

from .models import (
    AnalysisReport,
    Dataset,
    DatasetFile,
    MigrationJob,
    MigrationStep,
    TERMINAL_STATUSES,
    check_job_transition,
    clamp_progress,
    utcnow,
)

if TYPE_CHECKING:
    from .models import AnalysisResult, MigrationOptions, NewDataset, NewDatasetFile

logger: logging.Logger = logging.getLogger(__name__)

_T = TypeVar("_T", Dataset, MigrationJob, MigrationStep, DatasetFile, AnalysisReport)


def _copy(record: _T | None) -> _T | None:
    return replace(record) if record is not None else None


class MemoryStorage:
    """Storage backed by process memory. Contents are lost on exit."""

    def __init__(self) -> None:
        self._datasets: dict[int, Dataset] = {}
        self._jobs: dict[int, MigrationJob] = {}
        self._steps: dict[int, MigrationStep] = {}
        self._files: dict[int, DatasetFile] = {}
        self._reports: dict[int, AnalysisReport] = {}
        self._next_ids: dict[str, int] = {
            "datasets": 1,
            "jobs": 1,
            "steps": 1,
            "files": 1,
            "reports": 1,
        }

    def _next_id(self, collection: str) -> int:
        next_id = self._next_ids[collection]
        self._next_ids[collection] = next_id + 1
        return next_id

    # Datasets

    async def list_datasets(self) -> list[Dataset]:
        return [replace(d) for d in self._datasets.values()]

    async def get_dataset(self, dataset_id: int) -> Dataset | None:
        return _copy(self._datasets.get(dataset_id))

    async def find_dataset_by_original_url(self, url: str) -> Dataset | None:
        for dataset in self._datasets.values():
            if dataset.original_url == url:
                return replace(dataset)
        return None

    async def create_dataset(self, dataset: NewDataset) -> Dataset:
        now = utcnow()
        record = Dataset(
            id=self._next_id("datasets"),
            name=dataset.name,
            description=dataset.description,
            original_platform=dataset.original_platform,
            current_platform=dataset.current_platform,
            original_url=dataset.original_url,
            current_url=dataset.current_url,
            files_count=dataset.files_count,
            total_size=dataset.total_size,
            metadata=dict(dataset.metadata),
            created_at=now,
            updated_at=now,
        )
        self._datasets[record.id] = record
        return replace(record)

    async def update_dataset_location(self, dataset_id: int, platform: str, url: str | None) -> Dataset | None:
        existing = self._datasets.get(dataset_id)
        if existing is None:
            return None
        updated = replace(existing, current_platform=platform, current_url=url, updated_at=utcnow())
        self._datasets[dataset_id] = updated
        return replace(updated)

    async def delete_dataset(self, dataset_id: int) -> bool:
        if self._datasets.pop(dataset_id, None) is None:
            return False
        for file_id in [f.id for f in self._files.values() if f.dataset_id == dataset_id]:
            del self._files[file_id]
        for report_id in [r.id for r in self._reports.values() if r.dataset_id == dataset_id]:
            del self._reports[report_id]
        for job_id in [j.id for j in self._jobs.values() if j.dataset_id == dataset_id]:
            await self.delete_migration_job(job_id)
        return True

    # Migration jobs

    async def list_migration_jobs(self) -> list[MigrationJob]:
        return [replace(j) for j in self._jobs.values()]

    async def get_migration_job(self, job_id: int) -> MigrationJob | None:
        return _copy(self._jobs.get(job_id))

    async def list_migration_jobs_for_dataset(self, dataset_id: int) -> list[MigrationJob]:
        return [replace(j) for j in self._jobs.values() if j.dataset_id == dataset_id]

    async def get_recent_migration_jobs(self, limit: int) -> list[MigrationJob]:
        jobs = sorted(self._jobs.values(), key=lambda j: (j.created_at, j.id), reverse=True)
        return [replace(j) for j in jobs[: max(limit, 0)]]

    async def create_migration_job(
        self,
        dataset_id: int,
        source_platform: str,
        source_url: str,
        destination_platform: str,
        options: MigrationOptions,
    ) -> MigrationJob:
        record = MigrationJob(
            id=self._next_id("jobs"),
            dataset_id=dataset_id,
            source_platform=source_platform,
            destination_platform=destination_platform,
            source_url=source_url,
            generate_card=options.generate_card,
            validate_schema=options.validate_schema,
            run_analysis=options.run_analysis,
        )
        self._jobs[record.id] = record
        return replace(record)

    async def set_migration_job_destination_url(self, job_id: int, url: str) -> MigrationJob | None:
        existing = self._jobs.get(job_id)
        if existing is None:
            return None
        updated = replace(existing, destination_url=url)
        self._jobs[job_id] = updated
        return replace(updated)

    async def update_migration_job_progress(self, job_id: int, progress: int) -> MigrationJob | None:
        existing = self._jobs.get(job_id)
        if existing is None:
            return None
        updated = replace(existing, progress=max(existing.progress, clamp_progress(progress)))
        self._jobs[job_id] = updated
        return replace(updated)

    async def update_migration_job_status(
        self, job_id: int, status: str, error: str | None = None
    ) -> MigrationJob | None:
        existing = self._jobs.get(job_id)
        if existing is None:
            return None
        check_job_transition(existing.status, status)

        now = utcnow()
        updated = replace(existing, status=status)
        if status == "in_progress" and existing.started_at is None:
            updated.started_at = now
        if status in TERMINAL_STATUSES:
            updated.completed_at = now
        if status == "completed":
            updated.progress = 100
        if error:
            updated.error = error
        self._jobs[job_id] = updated
        return replace(updated)

    async def delete_migration_job(self, job_id: int) -> bool:
        if self._jobs.pop(job_id, None) is None:
            return False
        for step_id in [s.id for s in self._steps.values() if s.migration_job_id == job_id]:
            del self._steps[step_id]
        return True

    # Migration steps

    async def list_migration_steps(self, job_id: int) -> list[MigrationStep]:
        steps = [s for s in self._steps.values() if s.migration_job_id == job_id]
        return [replace(s) for s in sorted(steps, key=lambda s: s.id)]

    async def get_migration_step(self, step_id: int) -> MigrationStep | None:
        return _copy(self._steps.get(step_id))

    async def create_migration_step(self, job_id: int, name: str) -> MigrationStep:
        record = MigrationStep(id=self._next_id("steps"), migration_job_id=job_id, name=name)
        self._steps[record.id] = record
        return replace(record)

    async def update_migration_step_progress(
        self, step_id: int, progress: int, message: str | None = None
    ) -> MigrationStep | None:
        existing = self._steps.get(step_id)
        if existing is None:
            return None
        updated = replace(existing, progress=clamp_progress(progress))
        if message:
            updated.message = message
        self._steps[step_id] = updated
        return replace(updated)

    async def update_migration_step_status(
        self, step_id: int, status: str, message: str | None = None
    ) -> MigrationStep | None:
        existing = self._steps.get(step_id)
        if existing is None:
            return None

        now = utcnow()
        updated = replace(existing, status=status)
        if status == "in_progress" and existing.started_at is None:
            updated.started_at = now
        if status in TERMINAL_STATUSES:
            updated.completed_at = now
        if status == "completed":
            updated.progress = 100
        if message:
            updated.message = message
        self._steps[step_id] = updated
        return replace(updated)

    # Dataset files

    async def list_dataset_files(self, dataset_id: int) -> list[DatasetFile]:
        files = [f for f in self._files.values() if f.dataset_id == dataset_id]
        return [replace(f) for f in sorted(files, key=lambda f: f.id)]

    async def get_dataset_file(self, file_id: int) -> DatasetFile | None:
        return _copy(self._files.get(file_id))

    async def create_dataset_file(self, file: NewDatasetFile) -> DatasetFile:
        record = DatasetFile(
            id=self._next_id("files"),
            dataset_id=file.dataset_id,
            name=file.name,
            path=file.path,
            size=file.size,
            type=file.type,
            selected=file.selected,
        )
        self._files[record.id] = record
        return replace(record)

    async def set_dataset_file_selected(self, file_id: int, selected: bool) -> DatasetFile | None:
        existing = self._files.get(file_id)
        if existing is None:
            return None
        updated = replace(existing, selected=selected)
        self._files[file_id] = updated
        return replace(updated)

    async def delete_dataset_file(self, file_id: int) -> bool:
        return self._files.pop(file_id, None) is not None

    # Analysis reports

    async def list_analysis_reports(self, dataset_id: int) -> list[AnalysisReport]:
        reports = [r for r in self._reports.values() if r.dataset_id == dataset_id]
        return [replace(r) for r in sorted(reports, key=lambda r: (r.created_at, r.id), reverse=True)]

    async def get_analysis_report(self, report_id: int) -> AnalysisReport | None:
        return _copy(self._reports.get(report_id))

    async def create_analysis_report(
        self,
        dataset_id: int,
        result: AnalysisResult,
        *,
        ai_generated: bool,
    ) -> AnalysisReport:
        record = AnalysisReport(
            id=self._next_id("reports"),
            dataset_id=dataset_id,
            quality=result.quality,
            completeness=result.completeness,
            usability=result.usability,
            report=result.to_dict(),
            ai_generated=ai_generated,
        )
        self._reports[record.id] = record
        logger.debug(f"Stored analysis report {record.id} for dataset {dataset_id}")
        return replace(record)
