"""Load config from BASECAMP_CONFIG_PATH or return the default.

``load_config()`` is memoised with ``functools.lru_cache`` so the file is read
and parsed at most once per process.  Call ``load_config.cache_clear()`` to
force a re-read (tests, or when the environment changes at runtime).
"""

from __future__ import annotations

import functools
import json
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .schema import BasecampConfig, DEFAULT_CONFIG


class _Env(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BASECAMP_", extra="ignore")
    config_path: Optional[str] = None
    openrouter_api_key: Optional[str] = None


_env: Optional[_Env] = None


def _get_env() -> _Env:
    global _env
    if _env is None:
        _env = _Env()
    return _env


def _read_config_file(path: Optional[str]) -> BasecampConfig:
    if not path or not path.strip():
        return DEFAULT_CONFIG
    p = Path(path).expanduser().resolve()
    if not p.is_file():
        return DEFAULT_CONFIG
    data = json.loads(p.read_text(encoding="utf-8"))
    return BasecampConfig.model_validate(data)


@functools.lru_cache(maxsize=1)
def load_config() -> BasecampConfig:
    """Load config from BASECAMP_CONFIG_PATH if set and valid; else return DEFAULT_CONFIG.

    ``BASECAMP_OPENROUTER_API_KEY`` overrides ``openrouter.api_key`` so the key
    can stay out of the config file.  Result is cached for the lifetime of the
    process.
    """
    env = _get_env()
    config = _read_config_file(env.config_path)
    if env.openrouter_api_key:
        openrouter = config.openrouter.model_copy(update={"api_key": env.openrouter_api_key})
        config = config.model_copy(update={"openrouter": openrouter})
    return config
