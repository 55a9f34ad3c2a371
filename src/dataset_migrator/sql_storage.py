"""Relational Storage implementation on SQLAlchemy's asyncio ORM.

Tables mirror the records in models.py. Each Storage call opens its own
session and commits a single-row change, so concurrent jobs never need
cross-row transactions.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text, delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

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

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///dataset_migrator.db"

Base = declarative_base()


class DatasetRow(Base):
    __tablename__ = "datasets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    original_platform = Column(String, nullable=False)
    current_platform = Column(String, nullable=False)
    original_url = Column(String, nullable=True, index=True)
    current_url = Column(String, nullable=True)
    files_count = Column(Integer, nullable=True)
    total_size = Column(Integer, nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class MigrationJobRow(Base):
    __tablename__ = "migration_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    dataset_id = Column(Integer, ForeignKey("datasets.id", ondelete="CASCADE"), nullable=False, index=True)
    source_platform = Column(String, nullable=False)
    destination_platform = Column(String, nullable=False)
    source_url = Column(String, nullable=False)
    destination_url = Column(String, nullable=True)
    status = Column(String, nullable=False, default="pending")
    progress = Column(Integer, nullable=False, default=0)
    error = Column(Text, nullable=True)
    generate_card = Column(Boolean, nullable=False, default=False)
    validate_schema = Column(Boolean, nullable=False, default=False)
    run_analysis = Column(Boolean, nullable=False, default=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class MigrationStepRow(Base):
    __tablename__ = "migration_steps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    migration_job_id = Column(
        Integer, ForeignKey("migration_jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")
    progress = Column(Integer, nullable=False, default=0)
    message = Column(Text, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class DatasetFileRow(Base):
    __tablename__ = "dataset_files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    dataset_id = Column(Integer, ForeignKey("datasets.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    path = Column(String, nullable=False)
    size = Column(Integer, nullable=True)
    type = Column(String, nullable=True)
    selected = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class AnalysisReportRow(Base):
    __tablename__ = "analysis_reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    dataset_id = Column(Integer, ForeignKey("datasets.id", ondelete="CASCADE"), nullable=False, index=True)
    quality = Column(Integer, nullable=True)
    completeness = Column(Integer, nullable=True)
    usability = Column(Integer, nullable=True)
    report = Column(JSON, nullable=True)
    ai_generated = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


def _aware(value: dt.datetime | None) -> dt.datetime | None:
    """SQLite drops tzinfo on the way back; stored values are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=dt.UTC)
    return value


def _to_dataset(row: DatasetRow) -> Dataset:
    return Dataset(
        id=row.id,
        name=row.name,
        description=row.description,
        original_platform=row.original_platform,
        current_platform=row.current_platform,
        original_url=row.original_url,
        current_url=row.current_url,
        files_count=row.files_count,
        total_size=row.total_size,
        metadata=dict(row.metadata_ or {}),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _to_job(row: MigrationJobRow) -> MigrationJob:
    return MigrationJob(
        id=row.id,
        dataset_id=row.dataset_id,
        source_platform=row.source_platform,
        destination_platform=row.destination_platform,
        source_url=row.source_url,
        destination_url=row.destination_url,
        status=row.status,
        progress=row.progress,
        error=row.error,
        generate_card=row.generate_card,
        validate_schema=row.validate_schema,
        run_analysis=row.run_analysis,
        started_at=_aware(row.started_at),
        completed_at=_aware(row.completed_at),
        created_at=_aware(row.created_at),
    )


def _to_step(row: MigrationStepRow) -> MigrationStep:
    return MigrationStep(
        id=row.id,
        migration_job_id=row.migration_job_id,
        name=row.name,
        status=row.status,
        progress=row.progress,
        message=row.message,
        started_at=_aware(row.started_at),
        completed_at=_aware(row.completed_at),
        created_at=_aware(row.created_at),
    )


def _to_file(row: DatasetFileRow) -> DatasetFile:
    return DatasetFile(
        id=row.id,
        dataset_id=row.dataset_id,
        name=row.name,
        path=row.path,
        size=row.size,
        type=row.type,
        selected=row.selected,
        created_at=_aware(row.created_at),
    )


def _to_report(row: AnalysisReportRow) -> AnalysisReport:
    return AnalysisReport(
        id=row.id,
        dataset_id=row.dataset_id,
        quality=row.quality,
        completeness=row.completeness,
        usability=row.usability,
        report=dict(row.report or {}),
        ai_generated=row.ai_generated,
        created_at=_aware(row.created_at),
    )


def create_engine_for_url(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine; in-memory SQLite shares one connection across sessions."""
    kwargs: dict[str, Any] = {"echo": echo}
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_async_engine(database_url, **kwargs)


class SqlStorage:
    """Storage backed by a relational database through SQLAlchemy."""

    _engine: AsyncEngine

    def __init__(self, database_url: str = DEFAULT_DATABASE_URL, *, echo: bool = False) -> None:
        self.database_url: str = database_url
        self._engine = create_engine_for_url(database_url, echo=echo)
        self._sessions = async_sessionmaker(bind=self._engine, autoflush=False, expire_on_commit=False)

    async def init(self) -> None:
        """Create missing tables."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.debug(f"Database schema ready at {self.database_url}")

    async def close(self) -> None:
        await self._engine.dispose()

    # Datasets

    async def list_datasets(self) -> list[Dataset]:
        async with self._sessions() as session:
            rows = await session.scalars(select(DatasetRow).order_by(DatasetRow.id))
            return [_to_dataset(r) for r in rows]

    async def get_dataset(self, dataset_id: int) -> Dataset | None:
        async with self._sessions() as session:
            row = await session.get(DatasetRow, dataset_id)
            return _to_dataset(row) if row else None

    async def find_dataset_by_original_url(self, url: str) -> Dataset | None:
        async with self._sessions() as session:
            row = await session.scalar(
                select(DatasetRow).where(DatasetRow.original_url == url).order_by(DatasetRow.id).limit(1)
            )
            return _to_dataset(row) if row else None

    async def create_dataset(self, dataset: NewDataset) -> Dataset:
        now = utcnow()
        row = DatasetRow(
            name=dataset.name,
            description=dataset.description,
            original_platform=dataset.original_platform,
            current_platform=dataset.current_platform,
            original_url=dataset.original_url,
            current_url=dataset.current_url,
            files_count=dataset.files_count,
            total_size=dataset.total_size,
            metadata_=dict(dataset.metadata),
            created_at=now,
            updated_at=now,
        )
        async with self._sessions() as session, session.begin():
            session.add(row)
        return _to_dataset(row)

    async def update_dataset_location(self, dataset_id: int, platform: str, url: str | None) -> Dataset | None:
        async with self._sessions() as session, session.begin():
            row = await session.get(DatasetRow, dataset_id)
            if row is None:
                return None
            row.current_platform = platform
            row.current_url = url
            row.updated_at = utcnow()
        return _to_dataset(row)

    async def delete_dataset(self, dataset_id: int) -> bool:
        async with self._sessions() as session, session.begin():
            row = await session.get(DatasetRow, dataset_id)
            if row is None:
                return False
            job_ids = select(MigrationJobRow.id).where(MigrationJobRow.dataset_id == dataset_id)
            await session.execute(delete(MigrationStepRow).where(MigrationStepRow.migration_job_id.in_(job_ids)))
            await session.execute(delete(MigrationJobRow).where(MigrationJobRow.dataset_id == dataset_id))
            await session.execute(delete(DatasetFileRow).where(DatasetFileRow.dataset_id == dataset_id))
            await session.execute(delete(AnalysisReportRow).where(AnalysisReportRow.dataset_id == dataset_id))
            await session.delete(row)
        return True

    # Migration jobs

    async def list_migration_jobs(self) -> list[MigrationJob]:
        async with self._sessions() as session:
            rows = await session.scalars(select(MigrationJobRow).order_by(MigrationJobRow.id))
            return [_to_job(r) for r in rows]

    async def get_migration_job(self, job_id: int) -> MigrationJob | None:
        async with self._sessions() as session:
            row = await session.get(MigrationJobRow, job_id)
            return _to_job(row) if row else None

    async def list_migration_jobs_for_dataset(self, dataset_id: int) -> list[MigrationJob]:
        async with self._sessions() as session:
            rows = await session.scalars(
                select(MigrationJobRow).where(MigrationJobRow.dataset_id == dataset_id).order_by(MigrationJobRow.id)
            )
            return [_to_job(r) for r in rows]

    async def get_recent_migration_jobs(self, limit: int) -> list[MigrationJob]:
        async with self._sessions() as session:
            rows = await session.scalars(
                select(MigrationJobRow)
                .order_by(MigrationJobRow.created_at.desc(), MigrationJobRow.id.desc())
                .limit(max(limit, 0))
            )
            return [_to_job(r) for r in rows]

    async def create_migration_job(
        self,
        dataset_id: int,
        source_platform: str,
        source_url: str,
        destination_platform: str,
        options: MigrationOptions,
    ) -> MigrationJob:
        row = MigrationJobRow(
            dataset_id=dataset_id,
            source_platform=source_platform,
            destination_platform=destination_platform,
            source_url=source_url,
            status="pending",
            progress=0,
            generate_card=options.generate_card,
            validate_schema=options.validate_schema,
            run_analysis=options.run_analysis,
            created_at=utcnow(),
        )
        async with self._sessions() as session, session.begin():
            session.add(row)
        return _to_job(row)

    async def set_migration_job_destination_url(self, job_id: int, url: str) -> MigrationJob | None:
        async with self._sessions() as session, session.begin():
            row = await session.get(MigrationJobRow, job_id)
            if row is None:
                return None
            row.destination_url = url
        return _to_job(row)

    async def update_migration_job_progress(self, job_id: int, progress: int) -> MigrationJob | None:
        async with self._sessions() as session, session.begin():
            row = await session.get(MigrationJobRow, job_id)
            if row is None:
                return None
            row.progress = max(row.progress or 0, clamp_progress(progress))
        return _to_job(row)

    async def update_migration_job_status(
        self, job_id: int, status: str, error: str | None = None
    ) -> MigrationJob | None:
        async with self._sessions() as session, session.begin():
            row = await session.get(MigrationJobRow, job_id)
            if row is None:
                return None
            check_job_transition(row.status, status)

            now = utcnow()
            row.status = status
            if status == "in_progress" and row.started_at is None:
                row.started_at = now
            if status in TERMINAL_STATUSES:
                row.completed_at = now
            if status == "completed":
                row.progress = 100
            if error:
                row.error = error
        return _to_job(row)

    async def delete_migration_job(self, job_id: int) -> bool:
        async with self._sessions() as session, session.begin():
            row = await session.get(MigrationJobRow, job_id)
            if row is None:
                return False
            await session.execute(delete(MigrationStepRow).where(MigrationStepRow.migration_job_id == job_id))
            await session.delete(row)
        return True

    # Migration steps

    async def list_migration_steps(self, job_id: int) -> list[MigrationStep]:
        async with self._sessions() as session:
            rows = await session.scalars(
                select(MigrationStepRow)
                .where(MigrationStepRow.migration_job_id == job_id)
                .order_by(MigrationStepRow.id)
            )
            return [_to_step(r) for r in rows]

    async def get_migration_step(self, step_id: int) -> MigrationStep | None:
        async with self._sessions() as session:
            row = await session.get(MigrationStepRow, step_id)
            return _to_step(row) if row else None

    async def create_migration_step(self, job_id: int, name: str) -> MigrationStep:
        row = MigrationStepRow(migration_job_id=job_id, name=name, status="pending", progress=0, created_at=utcnow())
        async with self._sessions() as session, session.begin():
            session.add(row)
        return _to_step(row)

    async def update_migration_step_progress(
        self, step_id: int, progress: int, message: str | None = None
    ) -> MigrationStep | None:
        async with self._sessions() as session, session.begin():
            row = await session.get(MigrationStepRow, step_id)
            if row is None:
                return None
            row.progress = clamp_progress(progress)
            if message:
                row.message = message
        return _to_step(row)

    async def update_migration_step_status(
        self, step_id: int, status: str, message: str | None = None
    ) -> MigrationStep | None:
        async with self._sessions() as session, session.begin():
            row = await session.get(MigrationStepRow, step_id)
            if row is None:
                return None

            now = utcnow()
            row.status = status
            if status == "in_progress" and row.started_at is None:
                row.started_at = now
            if status in TERMINAL_STATUSES:
                row.completed_at = now
            if status == "completed":
                row.progress = 100
            if message:
                row.message = message
        return _to_step(row)

    # Dataset files

    async def list_dataset_files(self, dataset_id: int) -> list[DatasetFile]:
        async with self._sessions() as session:
            rows = await session.scalars(
                select(DatasetFileRow).where(DatasetFileRow.dataset_id == dataset_id).order_by(DatasetFileRow.id)
            )
            return [_to_file(r) for r in rows]

    async def get_dataset_file(self, file_id: int) -> DatasetFile | None:
        async with self._sessions() as session:
            row = await session.get(DatasetFileRow, file_id)
            return _to_file(row) if row else None

    async def create_dataset_file(self, file: NewDatasetFile) -> DatasetFile:
        row = DatasetFileRow(
            dataset_id=file.dataset_id,
            name=file.name,
            path=file.path,
            size=file.size,
            type=file.type,
            selected=file.selected,
            created_at=utcnow(),
        )
        async with self._sessions() as session, session.begin():
            session.add(row)
        return _to_file(row)

    async def set_dataset_file_selected(self, file_id: int, selected: bool) -> DatasetFile | None:
        async with self._sessions() as session, session.begin():
            row = await session.get(DatasetFileRow, file_id)
            if row is None:
                return None
            row.selected = selected
        return _to_file(row)

    async def delete_dataset_file(self, file_id: int) -> bool:
        async with self._sessions() as session, session.begin():
            row = await session.get(DatasetFileRow, file_id)
            if row is None:
                return False
            await session.delete(row)
        return True

    # Analysis reports

    async def list_analysis_reports(self, dataset_id: int) -> list[AnalysisReport]:
        async with self._sessions() as session:
            rows = await session.scalars(
                select(AnalysisReportRow)
                .where(AnalysisReportRow.dataset_id == dataset_id)
                .order_by(AnalysisReportRow.created_at.desc(), AnalysisReportRow.id.desc())
            )
            return [_to_report(r) for r in rows]

    async def get_analysis_report(self, report_id: int) -> AnalysisReport | None:
        async with self._sessions() as session:
            row = await session.get(AnalysisReportRow, report_id)
            return _to_report(row) if row else None

    async def create_analysis_report(
        self,
        dataset_id: int,
        result: AnalysisResult,
        *,
        ai_generated: bool,
    ) -> AnalysisReport:
        row = AnalysisReportRow(
            dataset_id=dataset_id,
            quality=result.quality,
            completeness=result.completeness,
            usability=result.usability,
            report=result.to_dict(),
            ai_generated=ai_generated,
            created_at=utcnow(),
        )
        async with self._sessions() as session, session.begin():
            session.add(row)
        return _to_report(row)
