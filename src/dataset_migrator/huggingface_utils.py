"""Hugging Face Hub access through its REST API."""

from __future__ import annotations

import logging
import re
from typing import Any, Final
from urllib.parse import quote

from . import http_utils
from .exceptions import InvalidUrlError, PlatformError
from .models import SourceFile, SourceInfo
from .utils import file_extension

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

HUB_URL: Final[str] = "https://huggingface.co"
_URL_PATTERN: Final[re.Pattern[str]] = re.compile(r"huggingface\.co/(?:datasets/)?([^/\s]+)/([^/\s?#]+)")
_HTTP_CONFLICT: Final[int] = 409


def parse_dataset_id(url: str) -> str:
    """Return "owner/name" for a Hugging Face dataset URL."""
    match = _URL_PATTERN.search(url)
    if not match:
        msg = f"Invalid Hugging Face dataset URL: {url}"
        raise InvalidUrlError(msg)
    return f"{match.group(1)}/{match.group(2)}"


def _headers(token: str | None) -> dict[str, str] | None:
    return {"Authorization": f"Bearer {token}"} if token else None


def _license(data: dict[str, Any]) -> str:
    card = data.get("cardData") or {}
    license_value = card.get("license")
    if isinstance(license_value, list):
        license_value = ", ".join(str(v) for v in license_value)
    if license_value:
        return str(license_value)
    for tag in data.get("tags") or []:
        if isinstance(tag, str) and tag.startswith("license:"):
            return tag.split(":", 1)[1]
    return "Unknown"


def get_dataset_info(token: str | None, url: str) -> SourceInfo:
    """Fetch dataset metadata and map it into the generic dataset shape."""
    dataset_id = parse_dataset_id(url)
    data: dict[str, Any] = http_utils.get_json(
        f"{HUB_URL}/api/datasets/{dataset_id}",
        what=f"Hugging Face dataset lookup for {dataset_id}",
        headers=_headers(token),
    )
    hub_id = data.get("id") or dataset_id
    return SourceInfo(
        name=hub_id.split("/")[-1],
        title=hub_id,
        description=data.get("description") or "",
        metadata={
            "license": _license(data),
            "author": data.get("author") or dataset_id.split("/")[0],
            "tags": list(data.get("tags") or []),
            "downloads": data.get("downloads"),
            "lastUpdated": data.get("lastModified"),
        },
    )


def list_dataset_files(token: str | None, url: str) -> list[SourceFile]:
    """List every file on the main revision, following the tree pages; directories are skipped."""
    dataset_id = parse_dataset_id(url)
    what = f"Hugging Face file listing for {dataset_id}"
    files: list[SourceFile] = []
    page_url: str | None = f"{HUB_URL}/api/datasets/{dataset_id}/tree/main"
    params: dict[str, Any] | None = {"recursive": "true"}
    while page_url:
        entries, page_url = http_utils.get_json_page(page_url, what=what, headers=_headers(token), params=params)
        if not isinstance(entries, list):
            msg = f"{what} returned an unexpected payload"
            raise PlatformError(msg)
        # The next link already carries the query
        params = None
        files.extend(
            SourceFile(
                name=entry["path"].rsplit("/", 1)[-1],
                path=entry["path"],
                size=int(entry.get("size") or 0),
                type=file_extension(entry["path"].rsplit("/", 1)[-1]),
            )
            for entry in entries
            if entry.get("type") == "file"
        )
    logger.debug(f"Listed {len(files)} files in Hugging Face dataset {dataset_id}")
    return files


def download_file(token: str | None, url: str, path: str, *, max_bytes: int | None = None) -> bytes:
    dataset_id = parse_dataset_id(url)
    return http_utils.download_bytes(
        f"{HUB_URL}/datasets/{dataset_id}/resolve/main/{quote(path)}",
        what=f"Hugging Face download of {path}",
        headers=_headers(token),
        max_bytes=max_bytes,
    )


def get_namespace(token: str) -> str:
    """Return the user name the token belongs to."""
    data: dict[str, Any] = http_utils.get_json(
        f"{HUB_URL}/api/whoami-v2",
        what="Hugging Face token lookup",
        headers=_headers(token),
    )
    name = data.get("name")
    if not name:
        msg = "Hugging Face token lookup returned no user name"
        raise PlatformError(msg)
    return str(name)


def create_dataset_repo(token: str | None, name: str, *, private: bool = False) -> str:
    """Create a dataset repository under the token owner's namespace and return its URL."""
    if not token:
        msg = "A Hugging Face token is required to create repositories (HF_TOKEN)"
        raise PlatformError(msg)

    namespace = get_namespace(token)
    response = http_utils.post_json(
        f"{HUB_URL}/api/repos/create",
        {"type": "dataset", "name": name, "private": private},
        what=f"Hugging Face repository creation for {name}",
        headers=_headers(token),
    )
    if response.status_code == _HTTP_CONFLICT:
        msg = f"Repository {namespace}/{name} already exists"
        raise PlatformError(msg, status=response.status_code)
    if not response.ok:
        msg = f"Hugging Face repository creation failed: {response.status_code} {response.reason}"
        raise PlatformError(msg, status=response.status_code)

    try:
        repo_url = response.json().get("url")
    except ValueError:
        repo_url = None
    logger.info(f"Created Hugging Face dataset repository {namespace}/{name}")
    return repo_url or f"{HUB_URL}/datasets/{namespace}/{name}"
