"""Migration orchestrator that drives a job from creation to a terminal state.

The MigrationOrchestrator is the central coordinator for a migration. It:
1. Resolves the source URL to a Dataset record
2. Persists the job and its step plan before any work starts
3. Runs the steps in a background task, one after another
4. Records progress checkpoints so pollers can follow the job at any time

Migration Flow
--------------
start_migration() returns as soon as the job and its steps are stored. The
background routine then:

    job pending ──► in_progress
        │
        ▼
    for each step, in creation order:
        re-read the job; stop if it was cancelled
        step pending ──► in_progress ──► completed (with message)
        job progress ──► checkpoint of the step
        │
        ▼
    job in_progress ──► completed (progress 100)

Steps
-----
Repository validation      Fetch source metadata
File selection             Apply the requested file selection
Downloading files          Read the leading bytes of every selected file
Creating destination       Create the destination repository
Dataset card creation      Generate a dataset card (optional)
Schema validation          Compare the column headers of tabular files (optional)
AI analysis                Score the dataset and store a report (optional)
Finalization               Move the dataset record to the destination

Error Handling
--------------
- Any error fails the active step and then the job with the same message;
  later steps stay pending and nothing is rolled back.
- Each step runs under the configured timeout; a timeout is a step failure.
- Cancellation only marks the stored job as failed. The routine notices it
  before each step and between downloaded files and fails the step it was
  about to run with the cancellation message.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from . import steps
from .analysis import build_sample
from .config import DEFAULT_SAMPLE_BYTES, DEFAULT_STEP_TIMEOUT
from .exceptions import (
    InvalidStateError,
    InvalidTransitionError,
    MigrationError,
    NotFoundError,
    StepTimeoutError,
)
from .models import MigrationOptions
from .resolution import DatasetResolver
from .utils import format_bytes, repo_slug

if TYPE_CHECKING:
    from .models import Dataset, DatasetFile, MigrationJob, MigrationStep
    from .platforms import PlatformRegistry
    from .protocols import AnalysisProvider, SchemaValidator, Storage

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

CANCELLED_MESSAGE: Final[str] = "Migration cancelled by user"


class MigrationCancelledError(MigrationError):
    """Raised inside the routine when the stored job was failed from outside."""


@dataclass
class RunContext:
    """State shared by the steps of one background run."""

    job: MigrationJob
    options: MigrationOptions
    dataset: Dataset
    samples: dict[str, bytes] = field(default_factory=dict)
    destination_url: str | None = None
    card: str | None = None


StepHandler = Callable[["MigrationStep", RunContext], Awaitable[str]]


class MigrationOrchestrator:
    """Creates migration jobs and runs them in background tasks.

    Usage:
        orchestrator = MigrationOrchestrator(storage, registry, analysis, validator)
        job = await orchestrator.start_migration("github", url, "huggingface", MigrationOptions())
        await orchestrator.wait(job.id)
    """

    def __init__(
        self,
        storage: Storage,
        registry: PlatformRegistry,
        analysis: AnalysisProvider,
        validator: SchemaValidator,
        *,
        step_timeout: float | None = DEFAULT_STEP_TIMEOUT,
        sample_bytes: int = DEFAULT_SAMPLE_BYTES,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            storage: Where jobs, steps and datasets are persisted
            registry: Source and destination platform adapters
            analysis: Provider for dataset cards and quality analysis
            validator: Gate used by the schema validation step
            step_timeout: Seconds a single step may take (None disables the limit)
            sample_bytes: Bytes kept per downloaded file for validation and analysis
        """
        self._storage = storage
        self._registry = registry
        self._analysis = analysis
        self._validator = validator
        self._step_timeout = step_timeout
        self._sample_bytes = sample_bytes
        self._resolver = DatasetResolver(storage, registry)
        # Running tasks by job id; a reference is kept until the task finishes
        self._tasks: dict[int, asyncio.Task[None]] = {}
        self._handlers: dict[str, StepHandler] = {
            steps.REPOSITORY_VALIDATION: self._validate_source,
            steps.FILE_SELECTION: self._select_files,
            steps.DOWNLOADING_FILES: self._download_files,
            steps.CREATING_DESTINATION: self._create_destination,
            steps.DATASET_CARD: self._create_card,
            steps.SCHEMA_VALIDATION: self._validate_schema,
            steps.AI_ANALYSIS: self._analyze,
            steps.FINALIZATION: self._finalize,
        }

    async def start_migration(
        self,
        source_platform: str,
        source_url: str,
        destination_platform: str,
        options: MigrationOptions | None = None,
    ) -> MigrationJob:
        """Record a migration job with its steps and start running it in the background.

        Returns the job as stored, before the routine has touched it.
        """
        options = options or MigrationOptions()
        dataset = await self._resolver.resolve(source_platform, source_url)
        job = await self._storage.create_migration_job(
            dataset.id, source_platform, source_url, destination_platform, options
        )
        for name in steps.build_step_plan(options):
            await self._storage.create_migration_step(job.id, name)

        task = asyncio.create_task(self._run(job.id, options), name=f"migration-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job.id, None))
        logger.info(f"Started migration {job.id}: {source_platform} {source_url} -> {destination_platform}")
        return job

    async def cancel(self, job_id: int) -> MigrationJob:
        """Mark a job that has not finished as failed.

        Raises:
            NotFoundError: If the job does not exist
            InvalidStateError: If the job already completed or failed
        """
        job = await self._storage.get_migration_job(job_id)
        if job is None:
            msg = f"Migration {job_id} not found"
            raise NotFoundError(msg)
        if job.is_terminal:
            msg = f"Cannot cancel migration in {job.status} state"
            raise InvalidStateError(msg)

        try:
            updated = await self._storage.update_migration_job_status(job_id, "failed", CANCELLED_MESSAGE)
        except InvalidTransitionError as e:
            # The routine finished between the read and the write
            msg = f"Cannot cancel migration {job_id}: {e}"
            raise InvalidStateError(msg) from e
        if updated is None:
            msg = f"Migration {job_id} not found"
            raise NotFoundError(msg)
        logger.info(f"Cancelled migration {job_id}")
        return updated

    async def wait(self, job_id: int) -> None:
        """Wait until the background routine of a job has finished."""
        task = self._tasks.get(job_id)
        if task is not None:
            await task

    async def shutdown(self) -> None:
        """Wait for every running migration."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks.values()))

    # Background routine

    async def _run(self, job_id: int, options: MigrationOptions) -> None:
        active: MigrationStep | None = None
        try:
            job = await self._storage.get_migration_job(job_id)
            if job is None:
                logger.warning(f"Migration {job_id} disappeared before it started")
                return
            dataset = await self._storage.get_dataset(job.dataset_id)
            if dataset is None:
                msg = f"Dataset {job.dataset_id} of migration {job_id} not found"
                raise NotFoundError(msg)
            context = RunContext(job=job, options=options, dataset=dataset)
            plan = await self._storage.list_migration_steps(job_id)

            if job.status != "failed":
                try:
                    await self._storage.update_migration_job_status(job_id, "in_progress")
                except InvalidTransitionError:
                    # Cancelled after the read above; the first step check stops the run
                    logger.debug(f"Migration {job_id} was cancelled before it started")

            for step in plan:
                handler = self._handlers.get(step.name)
                if handler is None:
                    logger.warning(f"Skipping unknown step '{step.name}' of migration {job_id}")
                    continue
                active = step
                await self._check_cancelled(job_id)

                await self._storage.update_migration_step_status(step.id, "in_progress")
                logger.info(f"Migration {job_id}: {step.name}")
                message = await self._run_step(step, handler, context)
                await self._storage.update_migration_step_status(step.id, "completed", message)
                if step.name != steps.FINALIZATION:
                    await self._storage.update_migration_job_progress(job_id, steps.CHECKPOINTS[step.name])

            try:
                await self._storage.update_migration_job_status(job_id, "completed")
            except InvalidTransitionError as e:
                raise MigrationCancelledError(CANCELLED_MESSAGE) from e
            active = None
            logger.info(f"Migration {job_id} completed")

        except MigrationCancelledError as e:
            logger.info(f"Migration {job_id} stopped after cancellation")
            if active is not None:
                await self._storage.update_migration_step_status(active.id, "failed", str(e))
        except MigrationError as e:
            logger.error(f"Migration {job_id} failed: {e}")
            await self._fail(job_id, active, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in migration {job_id}")
            await self._fail(job_id, active, str(e) or type(e).__name__)

    async def _run_step(self, step: MigrationStep, handler: StepHandler, context: RunContext) -> str:
        if self._step_timeout is None:
            return await handler(step, context)
        try:
            return await asyncio.wait_for(handler(step, context), timeout=self._step_timeout)
        except TimeoutError as e:
            msg = f"Step '{step.name}' timed out after {self._step_timeout:g} seconds"
            raise StepTimeoutError(msg) from e

    async def _check_cancelled(self, job_id: int) -> None:
        job = await self._storage.get_migration_job(job_id)
        if job is None:
            msg = f"Migration {job_id} was deleted"
            raise MigrationCancelledError(msg)
        if job.status == "failed":
            raise MigrationCancelledError(job.error or CANCELLED_MESSAGE)

    async def _fail(self, job_id: int, step: MigrationStep | None, message: str) -> None:
        if step is not None:
            await self._storage.update_migration_step_status(step.id, "failed", message)
        job = await self._storage.get_migration_job(job_id)
        if job is not None and not job.is_terminal:
            await self._storage.update_migration_job_status(job_id, "failed", message)

    async def _selected_files(self, dataset_id: int) -> list[DatasetFile]:
        return [f for f in await self._storage.list_dataset_files(dataset_id) if f.selected]

    # Step handlers; each returns the message of its completed step

    async def _validate_source(self, step: MigrationStep, context: RunContext) -> str:
        source = self._registry.source(context.job.source_platform)
        info = await source.get_info(context.job.source_url)
        return f"Validated {source.label}: {info.title}"

    async def _select_files(self, step: MigrationStep, context: RunContext) -> str:
        files = await self._storage.list_dataset_files(context.dataset.id)
        if context.options.selected_files:
            wanted = set(context.options.selected_files)
            for f in files:
                selected = f.name in wanted or f.path in wanted
                if f.selected != selected:
                    await self._storage.set_dataset_file_selected(f.id, selected)
                    f.selected = selected

        chosen = [f for f in files if f.selected]
        total = sum(f.size or 0 for f in chosen)
        return f"Selected {len(chosen)} files ({format_bytes(total)})"

    async def _download_files(self, step: MigrationStep, context: RunContext) -> str:
        files = await self._selected_files(context.dataset.id)
        if not files:
            return "No files selected for download"

        source = self._registry.source(context.job.source_platform)
        count = len(files)
        for index, f in enumerate(files):
            if index:
                await self._check_cancelled(context.job.id)
            content = await source.download_file(context.job.source_url, f.path, max_bytes=self._sample_bytes)
            context.samples[f.path] = content[: self._sample_bytes]
            done = index + 1
            await self._storage.update_migration_step_progress(
                step.id, math.floor(done / count * 100 + 0.5), f"{done} of {count} files downloaded"
            )
        return f"All {count} files downloaded"

    async def _create_destination(self, step: MigrationStep, context: RunContext) -> str:
        destination = self._registry.destination(context.job.destination_platform)
        name = context.options.repository_name or repo_slug(context.dataset.name)
        url = await destination.create_repository(name, private=context.options.is_private)
        await self._storage.set_migration_job_destination_url(context.job.id, url)
        context.destination_url = url
        return f"Created repository: {url}"

    async def _create_card(self, step: MigrationStep, context: RunContext) -> str:
        dataset = context.dataset
        context.card = await self._analysis.generate_card(dataset.name, dataset.description or "", dataset.metadata)
        logger.debug(f"Dataset card for {dataset.name}:\n{context.card}")
        return "Dataset card created"

    async def _validate_schema(self, step: MigrationStep, context: RunContext) -> str:
        files = await self._selected_files(context.dataset.id)
        result = self._validator.validate(files, context.samples)
        if not result.valid:
            raise MigrationError(result.message)
        return "Dataset schema validation passed"

    async def _analyze(self, step: MigrationStep, context: RunContext) -> str:
        dataset = context.dataset
        files = await self._selected_files(dataset.id)
        result = await self._analysis.analyze(
            dataset.name, dataset.description or "", dataset.metadata, build_sample(files, context.samples)
        )
        await self._storage.create_analysis_report(dataset.id, result, ai_generated=self._analysis.ai_generated)
        return "Dataset analysis completed"

    async def _finalize(self, step: MigrationStep, context: RunContext) -> str:
        await self._storage.update_dataset_location(
            context.dataset.id, context.job.destination_platform, context.destination_url
        )
        return "Migration completed successfully"
