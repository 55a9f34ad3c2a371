"""HTTP helpers shared by the Kaggle, Hugging Face and GitHub download code."""

from __future__ import annotations

import logging
from typing import Any, Final

import requests

from .exceptions import PlatformError

logger: logging.Logger = logging.getLogger(__name__)

REQUEST_TIMEOUT: Final[int] = 30
_CHUNK_SIZE: Final[int] = 8192


def _check(response: requests.Response, what: str) -> None:
    if not response.ok:
        msg = f"{what} failed: {response.status_code} {response.reason}"
        raise PlatformError(msg, status=response.status_code)


def _get_json_response(
    url: str,
    what: str,
    headers: dict[str, str] | None,
    auth: tuple[str, str] | None,
    params: dict[str, Any] | None,
) -> tuple[Any, requests.Response]:
    try:
        response = requests.get(url, headers=headers, auth=auth, params=params, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        msg = f"{what} failed: {e}"
        raise PlatformError(msg) from e
    _check(response, what)
    try:
        return response.json(), response
    except ValueError as e:
        msg = f"{what} returned invalid JSON"
        raise PlatformError(msg, status=response.status_code) from e


def get_json(
    url: str,
    *,
    what: str,
    headers: dict[str, str] | None = None,
    auth: tuple[str, str] | None = None,
    params: dict[str, Any] | None = None,
) -> Any:
    """GET a JSON document, raising PlatformError on transport or HTTP errors."""
    data, _ = _get_json_response(url, what, headers, auth, params)
    return data


def get_json_page(
    url: str,
    *,
    what: str,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
) -> tuple[Any, str | None]:
    """GET one page of a paginated JSON listing.

    Returns the payload and the URL of the next page from the `Link: rel="next"`
    header, or None on the last page.
    """
    data, response = _get_json_response(url, what, headers, None, params)
    next_url = response.links.get("next", {}).get("url")
    return data, next_url or None


def post_json(
    url: str,
    payload: dict[str, Any],
    *,
    what: str,
    headers: dict[str, str] | None = None,
) -> requests.Response:
    """POST a JSON body; the caller inspects the returned response."""
    try:
        return requests.post(url, json=payload, headers=headers, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as e:
        msg = f"{what} failed: {e}"
        raise PlatformError(msg) from e


def download_bytes(
    url: str,
    *,
    what: str,
    headers: dict[str, str] | None = None,
    auth: tuple[str, str] | None = None,
    max_bytes: int | None = None,
) -> bytes:
    """Stream a download, stopping after `max_bytes` when given."""
    try:
        with requests.get(url, headers=headers, auth=auth, stream=True, timeout=REQUEST_TIMEOUT) as response:
            _check(response, what)
            chunks: list[bytes] = []
            received = 0
            for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                if not chunk:
                    continue
                chunks.append(chunk)
                received += len(chunk)
                if max_bytes is not None and received >= max_bytes:
                    break
    except requests.RequestException as e:
        msg = f"{what} failed: {e}"
        raise PlatformError(msg) from e

    content = b"".join(chunks)
    logger.debug(f"{what}: received {len(content)} bytes")
    return content[:max_bytes] if max_bytes is not None else content
