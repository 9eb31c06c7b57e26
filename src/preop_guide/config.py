"""
config.py – Central settings for the Preop Guide
=================================================
All configuration is loaded from environment variables / .env file.
Copy .env.example → .env and override only what you need; every value
has a working default so the guide runs with no .env at all.

Storage falls back to an in-memory store automatically when the SQLite
file cannot be written (see storage.open_store).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env into os.environ (no-op if already set, safe to call multiple times)
load_dotenv(override=False)

_DEFAULT_DATA_DIR = Path.home() / ".preop_guide"


# ─── Helpers ────────────────────────────────────────────────────────────────

def _str(key: str, default: str = "") -> str:
    return os.getenv(key, default).strip()


def _int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, str(default)) or default)
    except ValueError:
        return default


def _float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)) or default)
    except ValueError:
        return default


def _bool(key: str, default: bool = False) -> bool:
    return os.getenv(key, str(default)).lower() in ("1", "true", "yes")


def _namespace(key: str, default: str) -> str:
    # "_" separates namespace from record name, so it cannot appear in the namespace
    value = _str(key, default)
    return value if value and "_" not in value else default


# ─── Persistent store ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class StorageConfig:
    db_path:      Path
    namespace:    str    # prefix for every stored key, e.g. "preop_survey_answers"
    force_memory: bool   # skip SQLite entirely (session-only mode)


# ─── Progress tuning ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ProgressConfig:
    survey_weight:   float   # share of completion coming from the survey
    section_weight:  float   # share coming from visited personalised sections
    movement_tasks:  int
    nutrition_tasks: int
    mental_tasks:    int

    def fixed_task_totals(self) -> dict[str, int]:
        """Task totals for the sections whose count does not depend on the profile."""
        return {
            "movement":         self.movement_tasks,
            "nutrition":        self.nutrition_tasks,
            "mental_wellbeing": self.mental_tasks,
        }


# ─── Documents ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DocumentConfig:
    output_dir: Path
    author:     str


# ─── Logging ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class LoggingConfig:
    level: str


# ─── Master settings object ──────────────────────────────────────────────────

@dataclass(frozen=True)
class Settings:
    storage:   StorageConfig
    progress:  ProgressConfig
    documents: DocumentConfig
    logging:   LoggingConfig

    def status_summary(self) -> dict[str, str]:
        """Return a dict of setting → human-readable value for the CLI status view."""
        store = "memory (forced)" if self.storage.force_memory else str(self.storage.db_path)
        return {
            "Store":            store,
            "Namespace":        self.storage.namespace,
            "Completion split": (
                f"{self.progress.survey_weight:.0%} survey / "
                f"{self.progress.section_weight:.0%} sections"
            ),
            "Output directory": str(self.documents.output_dir),
            "Log level":        self.logging.level,
        }


def get_settings() -> Settings:
    """Load all configuration from environment variables."""
    data_dir = Path(_str("PREOP_DATA_DIR", str(_DEFAULT_DATA_DIR))).expanduser()

    return Settings(
        storage=StorageConfig(
            db_path      = Path(_str("PREOP_DB_PATH", str(data_dir / "guide.db"))).expanduser(),
            namespace    = _namespace("PREOP_NAMESPACE", "preop"),
            force_memory = _bool("PREOP_FORCE_MEMORY_STORE", False),
        ),
        progress=ProgressConfig(
            survey_weight   = _float("PREOP_SURVEY_WEIGHT", 0.5),
            section_weight  = _float("PREOP_SECTION_WEIGHT", 0.5),
            movement_tasks  = _int("PREOP_MOVEMENT_TASKS", 3),
            nutrition_tasks = _int("PREOP_NUTRITION_TASKS", 3),
            mental_tasks    = _int("PREOP_MENTAL_TASKS", 4),
        ),
        documents=DocumentConfig(
            output_dir = Path(_str("PREOP_OUTPUT_DIR", str(data_dir / "documents"))).expanduser(),
            author     = _str("PREOP_DOCUMENT_AUTHOR", "Preop Guide") or "Preop Guide",
        ),
        logging=LoggingConfig(
            level = _str("PREOP_LOG_LEVEL", "WARNING").upper() or "WARNING",
        ),
    )
