"""Environment loading helpers for CLI entry points."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv


_ENV_ALIASES: tuple[tuple[str, ...], ...] = (
    ("SHORTABLE_PROCESSING_DATE", "QC_DATAFLEET_DEPLOYMENT_DATE"),
    ("SHORTABLE_RAW_DIR", "RAW_DATA_DIRECTORY"),
    ("SHORTABLE_OUTPUT_DIR", "TEMP_OUTPUT_DIRECTORY"),
    ("SHORTABLE_DATA_DIR", "DATA_FOLDER"),
    ("SHORTABLE_RAW_FILE",),
)

_REQUIRED_PRIMARY: tuple[str, ...] = ("SHORTABLE_PROCESSING_DATE",)

DEFAULT_RAW_DIR = "/raw"
DEFAULT_OUTPUT_DIR = "/temp-output-directory"
DEFAULT_DATA_DIR = "data"
DEFAULT_RAW_FILE = "usa.txt"


@dataclass(frozen=True)
class ConverterSettings:
    processing_date: str
    raw_dir: Path
    output_dir: Path
    data_dir: Path
    raw_file: str = DEFAULT_RAW_FILE


def _load_env_file(path: Path, *, override: bool = False) -> bool:
    if not path.exists():
        return False
    return bool(load_dotenv(path, override=override))


def resolve_env_value(primary: str, *aliases: str) -> tuple[str, str | None, bool]:
    """Return ``(value, source_key, had_whitespace)`` for env ``primary``/aliases."""

    had_whitespace = False
    keys = (primary, *aliases)
    for key in keys:
        if key not in os.environ:
            continue
        raw = os.environ.get(key) or ""
        trimmed = raw.strip()
        if raw != trimmed:
            os.environ[key] = trimmed
            had_whitespace = True
        if trimmed:
            if key != primary:
                os.environ[primary] = trimmed
            return trimmed, key, had_whitespace
        had_whitespace = True
    return "", None, had_whitespace


def _normalize_env_aliases() -> None:
    for primary_key, *aliases in _ENV_ALIASES:
        resolve_env_value(primary_key, *aliases)


def load_env(
    required_keys: Sequence[str] | None = None,
    *,
    override: bool = False,
) -> tuple[list[str], list[str]]:
    """Load environment files from well-known locations.

    Returns a tuple of ``(loaded_files, missing_required)`` so callers can emit
    diagnostics before proceeding. Legacy variable names (for example
    ``QC_DATAFLEET_DEPLOYMENT_DATE``) are copied onto their ``SHORTABLE_*``
    counterparts.
    """

    repo_root = Path(__file__).resolve().parents[1]
    user_env = Path(os.path.expanduser("~/.config/shortable/.env"))
    repo_env = repo_root / ".env"

    loaded_files: list[str] = []
    for path in (user_env, repo_env):
        if _load_env_file(path, override=override):
            loaded_files.append(str(path))

    _normalize_env_aliases()

    required = list(required_keys) if required_keys is not None else list(_REQUIRED_PRIMARY)
    missing_required = [key for key in required if not os.environ.get(key)]
    return loaded_files, missing_required


def settings_from_env(**overrides: str | None) -> ConverterSettings:
    """Build :class:`ConverterSettings` from the environment.

    Keyword ``overrides`` (``processing_date``, ``raw_dir``, ``output_dir``,
    ``data_dir``, ``raw_file``) take precedence when not ``None``; this is how
    CLI flags win over ``.env`` values.
    """

    def pick(name: str, key: str, default: str) -> str:
        value = overrides.get(name)
        if value is not None and str(value).strip():
            return str(value).strip()
        return os.environ.get(key, "").strip() or default

    return ConverterSettings(
        processing_date=pick("processing_date", "SHORTABLE_PROCESSING_DATE", ""),
        raw_dir=Path(pick("raw_dir", "SHORTABLE_RAW_DIR", DEFAULT_RAW_DIR)),
        output_dir=Path(pick("output_dir", "SHORTABLE_OUTPUT_DIR", DEFAULT_OUTPUT_DIR)),
        data_dir=Path(pick("data_dir", "SHORTABLE_DATA_DIR", DEFAULT_DATA_DIR)),
        raw_file=pick("raw_file", "SHORTABLE_RAW_FILE", DEFAULT_RAW_FILE),
    )


__all__ = [
    "ConverterSettings",
    "load_env",
    "resolve_env_value",
    "settings_from_env",
]
