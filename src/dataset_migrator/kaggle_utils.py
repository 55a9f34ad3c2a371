"""Kaggle dataset access through the Kaggle REST API (v1)."""

from __future__ import annotations

import io
import json
import logging
import re
import struct
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from . import http_utils
from .exceptions import InvalidUrlError, PlatformError
from .models import SourceFile, SourceInfo
from .utils import file_extension

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

API_URL: Final[str] = "https://www.kaggle.com/api/v1"
_URL_PATTERN: Final[re.Pattern[str]] = re.compile(r"kaggle\.com/(?:datasets/)?([^/\s]+)/([^/\s?#]+)")
_CREDENTIALS_FILE: Final[Path] = Path.home() / ".kaggle" / "kaggle.json"
_LOCAL_HEADER_SIGNATURE: Final[bytes] = b"PK\x03\x04"
# signature, version, flags, method, time, date, crc, compressed size, size, name length, extra length
_LOCAL_HEADER: Final[struct.Struct] = struct.Struct("<4s5H3I2H")


@dataclass(frozen=True)
class KaggleCredentials:
    username: str
    key: str

    @property
    def auth(self) -> tuple[str, str]:
        return (self.username, self.key)


def parse_dataset_ref(url: str) -> str:
    """Return "owner/dataset" for a Kaggle dataset URL."""
    match = _URL_PATTERN.search(url)
    if not match:
        msg = f"Invalid Kaggle dataset URL: {url}"
        raise InvalidUrlError(msg)
    return f"{match.group(1)}/{match.group(2)}"


def load_credentials(
    username: str | None = None,
    key: str | None = None,
    credentials_file: Path = _CREDENTIALS_FILE,
) -> KaggleCredentials | None:
    """Use explicit credentials, else the kaggle.json the Kaggle CLI writes."""
    if username and key:
        return KaggleCredentials(username=username, key=key)
    if not credentials_file.exists():
        return None
    try:
        data = json.loads(credentials_file.read_text())
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable Kaggle credentials file {credentials_file}: {e}")
        return None
    if data.get("username") and data.get("key"):
        return KaggleCredentials(username=data["username"], key=data["key"])
    return None


def _require(credentials: KaggleCredentials | None) -> tuple[str, str]:
    if credentials is None:
        msg = "Kaggle credentials not set (KAGGLE_USERNAME/KAGGLE_KEY or ~/.kaggle/kaggle.json)"
        raise PlatformError(msg)
    return credentials.auth


def get_dataset_info(credentials: KaggleCredentials | None, url: str) -> SourceInfo:
    """Fetch dataset metadata and map it into the generic dataset shape."""
    ref = parse_dataset_ref(url)
    data: dict[str, Any] = http_utils.get_json(
        f"{API_URL}/datasets/view/{ref}",
        what=f"Kaggle dataset lookup for {ref}",
        auth=_require(credentials),
    )
    title = data.get("title") or ref.split("/")[1].replace("-", " ")
    return SourceInfo(
        name=title,
        title=title,
        description=data.get("description") or data.get("subtitle") or "",
        metadata={
            "license": data.get("licenseName"),
            "owner": data.get("ownerName") or ref.split("/")[0],
            "downloads": data.get("downloadCount"),
            "votes": data.get("voteCount"),
            "usabilityRating": data.get("usabilityRating"),
            "lastUpdated": data.get("lastUpdated"),
        },
    )


def list_dataset_files(credentials: KaggleCredentials | None, url: str) -> list[SourceFile]:
    """List dataset files, following page tokens."""
    ref = parse_dataset_ref(url)
    auth = _require(credentials)
    files: list[SourceFile] = []
    page_token: str | None = None
    while True:
        params = {"pageToken": page_token} if page_token else None
        data: dict[str, Any] = http_utils.get_json(
            f"{API_URL}/datasets/list/{ref}",
            what=f"Kaggle file listing for {ref}",
            auth=auth,
            params=params,
        )
        for entry in data.get("datasetFiles") or []:
            name = entry.get("name") or ""
            files.append(
                SourceFile(
                    name=name.rsplit("/", 1)[-1],
                    path=name,
                    size=int(entry.get("totalBytes") or 0),
                    type=file_extension(name),
                )
            )
        page_token = data.get("nextPageToken") or None
        if not page_token:
            break

    logger.debug(f"Listed {len(files)} files in Kaggle dataset {ref}")
    return files


def _inflate_first_member(content: bytes, path: str, max_bytes: int | None) -> bytes:
    """Decode the first archive member from its local file header.

    Used for downloads cut off before the central directory.
    """
    if len(content) < _LOCAL_HEADER.size:
        msg = f"Kaggle download of {path} is too short to hold a zip entry"
        raise PlatformError(msg)
    fields = _LOCAL_HEADER.unpack_from(content)
    method, name_length, extra_length = fields[3], fields[9], fields[10]
    data = content[_LOCAL_HEADER.size + name_length + extra_length :]
    if method == zipfile.ZIP_STORED:
        return data[:max_bytes] if max_bytes is not None else data
    if method != zipfile.ZIP_DEFLATED:
        msg = f"Kaggle download of {path} uses unsupported zip compression method {method}"
        raise PlatformError(msg)
    try:
        return zlib.decompressobj(-zlib.MAX_WBITS).decompress(data, max_bytes or 0)
    except zlib.error as e:
        msg = f"Kaggle download of {path} is not a valid zip archive: {e}"
        raise PlatformError(msg) from e


def _unzip_single(content: bytes, path: str, max_bytes: int | None) -> bytes:
    """Kaggle serves single-file downloads zipped when they are large."""
    if not content.startswith(_LOCAL_HEADER_SIGNATURE):
        return content
    try:
        with zipfile.ZipFile(io.BytesIO(content)) as archive:
            members = archive.namelist()
            if not members:
                msg = f"Kaggle download of {path} is an empty zip archive"
                raise PlatformError(msg)
            member = path if path in members else members[0]
            with archive.open(member) as handle:
                return handle.read(max_bytes) if max_bytes is not None else handle.read()
    except zipfile.BadZipFile:
        logger.debug(f"Kaggle download of {path} is a partial zip archive")
        return _inflate_first_member(content, path, max_bytes)


def download_file(
    credentials: KaggleCredentials | None,
    url: str,
    path: str,
    *,
    max_bytes: int | None = None,
) -> bytes:
    ref = parse_dataset_ref(url)
    content = http_utils.download_bytes(
        f"{API_URL}/datasets/download/{ref}/{path}",
        what=f"Kaggle download of {path}",
        auth=_require(credentials),
        max_bytes=max_bytes,
    )
    return _unzip_single(content, path, max_bytes)
