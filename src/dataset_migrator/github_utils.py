from __future__ import annotations

import logging
import re
from typing import Final

import requests
from github import Auth, Github, GithubException, UnknownObjectException
from github.ContentFile import ContentFile
from github.Repository import Repository

from . import http_utils
from .exceptions import InvalidUrlError, PlatformError
from .models import SourceFile, SourceInfo
from .utils import file_extension

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_URL_PATTERN: Final[re.Pattern[str]] = re.compile(r"github\.com/([^/\s]+)/([^/\s?#]+)")


def parse_repo_url(url: str) -> str:
    """Return "owner/repo" for a GitHub repository URL."""
    match = _URL_PATTERN.search(url)
    if not match:
        msg = f"Invalid GitHub repository URL: {url}"
        raise InvalidUrlError(msg)
    owner, repo = match.group(1), match.group(2)
    repo = repo.removesuffix(".git")
    return f"{owner}/{repo}"


def get_client(token: str | None = None) -> Github:
    """Get a GitHub client using the token. Anonymous access when no token is given."""
    if token:
        return Github(auth=Auth.Token(token))
    return Github()


def get_repo(client: Github, repo_path: str) -> Repository:
    try:
        return client.get_repo(repo_path)
    except UnknownObjectException as e:
        msg = f"GitHub repository {repo_path} not found"
        raise PlatformError(msg, status=e.status) from e
    except GithubException as e:
        msg = f"GitHub API error for {repo_path}: {e}"
        raise PlatformError(msg, status=e.status) from e
    except requests.RequestException as e:
        msg = f"Could not reach GitHub for {repo_path}: {e}"
        raise PlatformError(msg) from e


def get_repository_info(client: Github, url: str) -> SourceInfo:
    """Fetch repository metadata and map it into the generic dataset shape."""
    repo_path = parse_repo_url(url)
    repo = get_repo(client, repo_path)
    try:
        license_name = repo.license.name if repo.license else "Unknown"
        metadata = {
            "license": license_name,
            "owner": repo.owner.login,
            "stars": repo.stargazers_count,
            "forks": repo.forks_count,
            "defaultBranch": repo.default_branch,
            "lastUpdated": repo.updated_at.isoformat() if repo.updated_at else None,
        }
    except GithubException as e:
        msg = f"GitHub API error for {repo_path}: {e}"
        raise PlatformError(msg, status=e.status) from e
    except requests.RequestException as e:
        msg = f"Could not reach GitHub for {repo_path}: {e}"
        raise PlatformError(msg) from e

    return SourceInfo(
        name=repo.name,
        title=repo.name,
        description=repo.description or "",
        metadata=metadata,
    )


def _walk_contents(repo: Repository, ref: str) -> list[ContentFile]:
    """Return every file of the repository at `ref`, directory by directory in listing order."""
    files: list[ContentFile] = []
    pending: list[str] = [""]
    while pending:
        path = pending.pop(0)
        contents = repo.get_contents(path, ref=ref)
        entries = contents if isinstance(contents, list) else [contents]
        for entry in entries:
            if entry.type == "dir":
                pending.append(entry.path)
            elif entry.type == "file":
                files.append(entry)
    return files


def list_repository_files(client: Github, url: str) -> list[SourceFile]:
    """List all files on the repository's default branch."""
    repo_path = parse_repo_url(url)
    repo = get_repo(client, repo_path)
    try:
        entries = _walk_contents(repo, repo.default_branch)
    except GithubException as e:
        msg = f"Failed to list files of {repo_path}: {e}"
        raise PlatformError(msg, status=e.status) from e
    except requests.RequestException as e:
        msg = f"Failed to list files of {repo_path}: {e}"
        raise PlatformError(msg) from e

    logger.debug(f"Listed {len(entries)} files in {repo_path}")
    return [
        SourceFile(name=entry.name, path=entry.path, size=entry.size or 0, type=file_extension(entry.name))
        for entry in entries
    ]


def download_file(
    client: Github,
    url: str,
    path: str,
    *,
    token: str | None = None,
    max_bytes: int | None = None,
) -> bytes:
    """Download a repository file through its raw download URL."""
    repo_path = parse_repo_url(url)
    repo = get_repo(client, repo_path)
    try:
        content = repo.get_contents(path, ref=repo.default_branch)
    except GithubException as e:
        msg = f"Failed to look up {path} in {repo_path}: {e}"
        raise PlatformError(msg, status=e.status) from e
    except requests.RequestException as e:
        msg = f"Failed to look up {path} in {repo_path}: {e}"
        raise PlatformError(msg) from e
    if isinstance(content, list) or not content.download_url:
        msg = f"{path} in {repo_path} is not a downloadable file"
        raise PlatformError(msg)

    headers = {"Authorization": f"token {token}"} if token else None
    return http_utils.download_bytes(
        content.download_url,
        what=f"GitHub download of {path}",
        headers=headers,
        max_bytes=max_bytes,
    )
