from __future__ import annotations

import os
import string
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path


DEFAULT_CODE_LENGTH = 5
DEFAULT_CODE_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_CODE_MAX_ATTEMPTS = 100
DEFAULT_OUTBOX_MAX_QUEUE = 1000
DEFAULT_STATIC_DIR = "public"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True, slots=True)
class Settings:
    code_length: int = DEFAULT_CODE_LENGTH
    code_alphabet: str = DEFAULT_CODE_ALPHABET
    code_max_attempts: int = DEFAULT_CODE_MAX_ATTEMPTS
    outbox_max_queue: int = DEFAULT_OUTBOX_MAX_QUEUE
    static_dir: Path = Path(DEFAULT_STATIC_DIR)
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = DEFAULT_LOG_LEVEL


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from environment variables (defaults for anything unset)."""

    # Slotted dataclass: class attributes are descriptors, so defaults come
    # from the module constants.
    env = os.environ if environ is None else environ
    return Settings(
        code_length=_get_int(env, "HEXSYNC_CODE_LENGTH", DEFAULT_CODE_LENGTH),
        code_alphabet=env.get("HEXSYNC_CODE_ALPHABET") or DEFAULT_CODE_ALPHABET,
        code_max_attempts=_get_int(env, "HEXSYNC_CODE_MAX_ATTEMPTS", DEFAULT_CODE_MAX_ATTEMPTS),
        outbox_max_queue=_get_int(env, "HEXSYNC_OUTBOX_MAX_QUEUE", DEFAULT_OUTBOX_MAX_QUEUE),
        static_dir=Path(env.get("HEXSYNC_STATIC_DIR") or DEFAULT_STATIC_DIR),
        host=env.get("HOST") or DEFAULT_HOST,
        port=_get_int(env, "PORT", DEFAULT_PORT),
        log_level=(env.get("LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
    )
