"""Settings for the dataset migration tool.

Values come from environment variables. Secrets may instead be kept in the
`pass` password store; an explicit pass path wins over the environment, and
the default pass path is only tried when the environment is empty.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Final

from . import utils
from .exceptions import ConfigurationError

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_STEP_TIMEOUT: Final[float] = 300.0
DEFAULT_SAMPLE_BYTES: Final[int] = 65536
DEFAULT_MODEL: Final[str] = "gpt-4o-mini"

_GITHUB_TOKEN_ENV_VAR: Final[str] = "GITHUB_TOKEN"  # noqa: S105
_GITHUB_DEFAULT_PASS_PATH: Final[str] = "github/cli/token"  # noqa: S105
_HF_TOKEN_ENV_VAR: Final[str] = "HF_TOKEN"  # noqa: S105
_HF_DEFAULT_PASS_PATH: Final[str] = "huggingface/cli/token"  # noqa: S105
_OPENAI_KEY_ENV_VAR: Final[str] = "OPENAI_API_KEY"
_OPENAI_DEFAULT_PASS_PATH: Final[str] = "openai/cli/api_key"


@dataclass(frozen=True)
class Settings:
    database_url: str | None = None
    step_timeout: float | None = DEFAULT_STEP_TIMEOUT
    sample_bytes: int = DEFAULT_SAMPLE_BYTES
    github_token: str | None = None
    huggingface_token: str | None = None
    kaggle_username: str | None = None
    kaggle_key: str | None = None
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    model: str = DEFAULT_MODEL


def get_token(env_var: str, default_pass_path: str, pass_path: str | None = None) -> str | None:
    """Get a secret from pass path, env var, or default pass location."""
    if pass_path:
        return utils.get_pass_value(pass_path)

    token: str | None = os.environ.get(env_var)
    if token:
        return token

    try:
        return utils.get_pass_value(default_pass_path)
    except (ValueError, utils.PassError):
        logger.debug(f"No {env_var} specified nor found in pass at {default_pass_path}")
        return None


def _float_env(name: str, default: float) -> float | None:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        msg = f"{name} must be a number of seconds, got {raw!r}"
        raise ConfigurationError(msg) from e
    if value < 0:
        msg = f"{name} must not be negative, got {raw!r}"
        raise ConfigurationError(msg)
    # 0 disables the timeout
    return value or None


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        msg = f"{name} must be an integer, got {raw!r}"
        raise ConfigurationError(msg) from e
    if value <= 0:
        msg = f"{name} must be positive, got {raw!r}"
        raise ConfigurationError(msg)
    return value


def load_settings(
    *,
    database_url: str | None = None,
    github_pass_path: str | None = None,
    huggingface_pass_path: str | None = None,
    openai_pass_path: str | None = None,
) -> Settings:
    """Build Settings from the environment, with optional overrides from the command line."""
    return Settings(
        database_url=database_url or os.environ.get("DATASET_MIGRATOR_DATABASE_URL") or None,
        step_timeout=_float_env("DATASET_MIGRATOR_STEP_TIMEOUT", DEFAULT_STEP_TIMEOUT),
        sample_bytes=_int_env("DATASET_MIGRATOR_SAMPLE_BYTES", DEFAULT_SAMPLE_BYTES),
        github_token=get_token(_GITHUB_TOKEN_ENV_VAR, _GITHUB_DEFAULT_PASS_PATH, github_pass_path),
        huggingface_token=get_token(_HF_TOKEN_ENV_VAR, _HF_DEFAULT_PASS_PATH, huggingface_pass_path),
        kaggle_username=os.environ.get("KAGGLE_USERNAME") or None,
        kaggle_key=os.environ.get("KAGGLE_KEY") or None,
        openai_api_key=get_token(_OPENAI_KEY_ENV_VAR, _OPENAI_DEFAULT_PASS_PATH, openai_pass_path),
        openai_base_url=os.environ.get("OPENAI_BASE_URL") or None,
        model=os.environ.get("DATASET_MIGRATOR_MODEL") or DEFAULT_MODEL,
    )
