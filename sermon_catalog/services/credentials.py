from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol

from dotenv import dotenv_values

LOGGER = logging.getLogger("sermon_catalog.credentials")


class CredentialStore(Protocol):
    def lookup(self, name: str) -> str | None:
        ...


class EnvironmentCredentialStore:
    """Resolves credential names (for example ``YOUTUBE_API_KEY_GRACE``) to secret values."""

    def __init__(self, values: Mapping[str, str | None]) -> None:
        self._values = dict(values)

    def lookup(self, name: str) -> str | None:
        normalized_name = name.strip()
        if not normalized_name:
            return None
        raw_value = self._values.get(normalized_name)
        if raw_value is None:
            return None
        secret = raw_value.strip()
        return secret or None


def build_credential_store(
    *,
    env_file: Path | None,
    environ: Mapping[str, str] | None = None,
) -> EnvironmentCredentialStore:
    values: dict[str, str | None] = {}
    if env_file is not None and env_file.is_file():
        values.update(dotenv_values(env_file))
        LOGGER.debug("credential env file loaded path=%s entries=%s", env_file, len(values))

    # Process environment overrides the env file.
    values.update(os.environ if environ is None else environ)
    return EnvironmentCredentialStore(values)
