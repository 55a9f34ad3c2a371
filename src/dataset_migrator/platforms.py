"""Async platform adapters and the registry the orchestrator resolves them from.

The *_utils modules talk to the platforms with blocking clients (PyGithub,
requests); the adapters here run those calls in worker threads so a slow
platform only suspends the job that is waiting on it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from . import github_utils as ghu
from . import huggingface_utils as hfu
from . import kaggle_utils as kgu
from .exceptions import UnsupportedPlatformError

if TYPE_CHECKING:
    from github import Github

    from .config import Settings
    from .models import SourceFile, SourceInfo
    from .protocols import DestinationPlatform, SourcePlatform

logger: logging.Logger = logging.getLogger(__name__)


class GitHubSource:
    label: str = "GitHub repository"

    def __init__(self, token: str | None = None, client: Github | None = None) -> None:
        self._token = token
        self._client = client or ghu.get_client(token)

    async def get_info(self, url: str) -> SourceInfo:
        return await asyncio.to_thread(ghu.get_repository_info, self._client, url)

    async def list_files(self, url: str) -> list[SourceFile]:
        return await asyncio.to_thread(ghu.list_repository_files, self._client, url)

    async def download_file(self, url: str, path: str, max_bytes: int | None = None) -> bytes:
        return await asyncio.to_thread(
            ghu.download_file, self._client, url, path, token=self._token, max_bytes=max_bytes
        )


class KaggleSource:
    label: str = "Kaggle dataset"

    def __init__(self, credentials: kgu.KaggleCredentials | None = None) -> None:
        self._credentials = credentials

    async def get_info(self, url: str) -> SourceInfo:
        return await asyncio.to_thread(kgu.get_dataset_info, self._credentials, url)

    async def list_files(self, url: str) -> list[SourceFile]:
        return await asyncio.to_thread(kgu.list_dataset_files, self._credentials, url)

    async def download_file(self, url: str, path: str, max_bytes: int | None = None) -> bytes:
        return await asyncio.to_thread(kgu.download_file, self._credentials, url, path, max_bytes=max_bytes)


class HuggingFaceSource:
    label: str = "Hugging Face dataset"

    def __init__(self, token: str | None = None) -> None:
        self._token = token

    async def get_info(self, url: str) -> SourceInfo:
        return await asyncio.to_thread(hfu.get_dataset_info, self._token, url)

    async def list_files(self, url: str) -> list[SourceFile]:
        return await asyncio.to_thread(hfu.list_dataset_files, self._token, url)

    async def download_file(self, url: str, path: str, max_bytes: int | None = None) -> bytes:
        return await asyncio.to_thread(hfu.download_file, self._token, url, path, max_bytes=max_bytes)


class HuggingFaceDestination:
    def __init__(self, token: str | None = None) -> None:
        self._token = token

    async def create_repository(self, name: str, private: bool = False) -> str:
        return await asyncio.to_thread(hfu.create_dataset_repo, self._token, name, private=private)


class PlatformRegistry:
    """Maps platform names to source and destination adapters."""

    def __init__(
        self,
        sources: dict[str, SourcePlatform] | None = None,
        destinations: dict[str, DestinationPlatform] | None = None,
    ) -> None:
        self._sources: dict[str, SourcePlatform] = dict(sources or {})
        self._destinations: dict[str, DestinationPlatform] = dict(destinations or {})

    def source(self, platform: str) -> SourcePlatform:
        try:
            return self._sources[platform]
        except KeyError:
            msg = f"Unsupported source platform: {platform}"
            raise UnsupportedPlatformError(msg) from None

    def destination(self, platform: str) -> DestinationPlatform:
        try:
            return self._destinations[platform]
        except KeyError:
            msg = f"Unsupported destination platform: {platform}"
            raise UnsupportedPlatformError(msg) from None


def build_registry(settings: Settings) -> PlatformRegistry:
    """Create the registry of real platform adapters from settings."""
    credentials = kgu.load_credentials(settings.kaggle_username, settings.kaggle_key)
    if credentials is None:
        logger.warning("No Kaggle credentials found; Kaggle sources will fail")
    return PlatformRegistry(
        sources={
            "github": GitHubSource(settings.github_token),
            "kaggle": KaggleSource(credentials),
            "huggingface": HuggingFaceSource(settings.huggingface_token),
        },
        destinations={
            "huggingface": HuggingFaceDestination(settings.huggingface_token),
        },
    )
