# settings.py

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

import streamlit as st

logger = logging.getLogger(__name__)

_DEV_SECRET = "crewboard-dev-secret"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///crewboard.db"
    secret: str = _DEV_SECRET
    token_ttl: int = 7 * 24 * 3600
    store_timeout: float = 5.0
    log_level: str = "INFO"
    min_password: int = 6


def _read_secrets() -> Mapping:
    # st.secrets raises when no secrets.toml exists; env/defaults apply then.
    try:
        return dict(getattr(st, "secrets", {}))
    except Exception:
        return {}


def load_settings(overrides: Optional[Mapping] = None) -> Settings:
    """Build settings from Streamlit secrets, then environment, then defaults."""
    secrets = _read_secrets()
    overrides = overrides or {}

    def pick(key: str, default):
        for source in (overrides, secrets, os.environ):
            value = source.get(key)
            if value not in (None, ""):
                return value
        return default

    defaults = Settings()
    settings = Settings(
        database_url=pick("DATABASE_URL", defaults.database_url),
        secret=pick("CREWBOARD_SECRET", defaults.secret),
        token_ttl=int(pick("CREWBOARD_TOKEN_TTL", defaults.token_ttl)),
        store_timeout=float(pick("CREWBOARD_STORE_TIMEOUT", defaults.store_timeout)),
        log_level=str(pick("CREWBOARD_LOG_LEVEL", defaults.log_level)).upper(),
        min_password=int(pick("CREWBOARD_MIN_PASSWORD", defaults.min_password)),
    )
    if settings.secret == _DEV_SECRET:
        logger.warning("CREWBOARD_SECRET is not set; using the development secret")
    return settings


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO), format=LOG_FORMAT)
