"""Resolve a source URL to exactly one Dataset record."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .exceptions import MigrationError
from .models import NewDataset, NewDatasetFile, utcnow

if TYPE_CHECKING:
    from .models import Dataset
    from .platforms import PlatformRegistry
    from .protocols import Storage

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)


class DatasetResolver:
    """Reuses the dataset recorded for a URL, or creates it from the source platform.

    Reused datasets are not refreshed. When reading the platform raises, a
    placeholder dataset without files is created so the migration can still
    be recorded and fail at its validation step.
    """

    def __init__(self, storage: Storage, registry: PlatformRegistry) -> None:
        self._storage = storage
        self._registry = registry

    async def resolve(self, platform: str, url: str) -> Dataset:
        existing = await self._storage.find_dataset_by_original_url(url)
        if existing is not None:
            logger.debug(f"Reusing dataset {existing.id} for {url}")
            return existing

        try:
            return await self._create_from_source(platform, url)
        except MigrationError as e:
            logger.warning(f"Could not read {platform} source {url}, recording a placeholder dataset: {e}")
        except Exception as e:
            logger.warning(
                f"Unexpected {type(e).__name__} reading {platform} source {url}, recording a placeholder dataset: {e}"
            )
        return await self._create_placeholder(platform, url)

    async def _create_from_source(self, platform: str, url: str) -> Dataset:
        source = self._registry.source(platform)
        info = await source.get_info(url)
        files = await source.list_files(url)

        dataset = await self._storage.create_dataset(
            NewDataset(
                name=info.name,
                description=info.description,
                original_platform=platform,
                current_platform=platform,
                original_url=url,
                current_url=url,
                files_count=len(files),
                total_size=sum(f.size for f in files),
                metadata=dict(info.metadata),
            )
        )
        for f in files:
            await self._storage.create_dataset_file(
                NewDatasetFile(dataset_id=dataset.id, name=f.name, path=f.path, size=f.size, type=f.type)
            )
        logger.info(f"Recorded dataset {dataset.id} ({dataset.name}) with {len(files)} files from {platform}")
        return dataset

    async def _create_placeholder(self, platform: str, url: str) -> Dataset:
        timestamp = int(utcnow().timestamp() * 1000)
        return await self._storage.create_dataset(
            NewDataset(
                name=f"dataset-{timestamp}",
                description=f"Dataset imported from {platform}",
                original_platform=platform,
                current_platform=platform,
                original_url=url,
                current_url=url,
                files_count=0,
                total_size=0,
            )
        )
