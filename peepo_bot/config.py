"""Configuration from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_GALLERY_URL = "https://peepo.pics/gallery"
DEFAULT_SUBSCRIPTIONS_FILE = "data/subscriptions.json"


@dataclass(frozen=True)
class BotConfig:
    """Runtime settings for the bot."""

    token: str
    command_cooldown: float = 5.0
    delivery_interval: float = 3600.0
    delivery_tick: float = 60.0
    gallery_url: str = DEFAULT_GALLERY_URL
    subscriptions_file: Path = Path(DEFAULT_SUBSCRIPTIONS_FILE)
    max_handlers: int = 32
    shutdown_grace: float = 10.0
    poll_timeout: int = 60
    debug: bool = False


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    return value


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {raw!r}")
    return value


def _get_bool(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "").strip().lower() in ("1", "true", "yes", "on")


def load_config(env: Optional[Mapping[str, str]] = None) -> BotConfig:
    """
    Build BotConfig from environment variables.

    Args:
        env: Mapping to read instead of os.environ

    Returns:
        BotConfig

    Raises:
        ValueError: If the bot token is not set or a value is malformed
    """
    env = os.environ if env is None else env

    token = env.get("TELEGRAM_BOT_TOKEN", "").strip()
    if not token:
        raise ValueError("TELEGRAM_BOT_TOKEN environment variable is not set")

    return BotConfig(
        token=token,
        command_cooldown=_get_float(env, "PEEPO_COMMAND_COOLDOWN", 5.0),
        delivery_interval=_get_float(env, "PEEPO_DELIVERY_INTERVAL", 3600.0),
        delivery_tick=_get_float(env, "PEEPO_DELIVERY_TICK", 60.0) or 60.0,
        gallery_url=env.get("PEEPO_GALLERY_URL", "").strip() or DEFAULT_GALLERY_URL,
        subscriptions_file=Path(
            env.get("PEEPO_SUBSCRIPTIONS_FILE", "").strip() or DEFAULT_SUBSCRIPTIONS_FILE
        ),
        max_handlers=_get_int(env, "PEEPO_MAX_HANDLERS", 32),
        shutdown_grace=_get_float(env, "PEEPO_SHUTDOWN_GRACE", 10.0),
        poll_timeout=_get_int(env, "PEEPO_POLL_TIMEOUT", 60),
        debug=_get_bool(env, "PEEPO_DEBUG"),
    )
