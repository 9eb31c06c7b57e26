"""
preop_guide/storage.py – Persistent store adapter
=================================================
Keeps every piece of guide state (survey answers, visited sections,
per-section progress, screening-test histories, preferences) as one JSON
blob per key in a small local key-value store.

Design decisions
----------------
- **Injected store**: ``GuideStore`` wraps any ``KeyValueStore``, so the
  profile and progress code can be tested against a ``MemoryKeyValueStore``
  with fixture data.
- **One blob per key**: each logical record is serialised and written in
  a single statement; a write that fails leaves the previous value of that
  key untouched.
- **Failure tolerant**: ``GuideStore`` never raises to its caller.
  Reads return a safe default (missing *or* unparseable blob), writes
  return ``StorageResult(success=False, error=...)``.
- **Namespaced keys**: every key is stored as ``<namespace>_<name>`` and
  names come from the ``RECORD_NAMES`` registry; ``clear_all`` and the
  export only touch those keys, never another namespace sharing the prefix.
- **All-or-nothing import**: every record is serialised before anything is
  cleared, and a failed write puts the previous records back.

Database file location
----------------------
``PREOP_DB_PATH`` (default ``~/.preop_guide/guide.db``). When the file
cannot be opened or written, ``open_store`` degrades to session-only
memory storage and logs a warning.

Public API
----------
  open_store(settings)                 → GuideStore (never raises)
  GuideStore.read_json / write_json    generic blob access
  save_survey_answers / load_survey_answers / load_survey_envelope
  save_progress / load_progress
  mark_section_visited / get_visited_sections
  save_preferences / load_preferences / save_user_data / load_user_data
  load_section_progress / save_section_progress
  append_test_result / load_test_results
  clear_user_profile()                 user-initiated reset
  clear_all()                          remove every record this store owns
  storage_stats / has_stored_data / export_user_data / import_user_data
"""

from __future__ import annotations

import json
import logging
import random
import sqlite3
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from preop_guide.config import Settings, get_settings
from preop_guide.models import CONTENT_SECTIONS

logger = logging.getLogger(__name__)

STORAGE_VERSION = "1.0"
TOTAL_SECTIONS  = 5

# Record names (the stored key is "<namespace>_<name>")
SURVEY_ANSWERS   = "survey_answers"
PROGRESS         = "progress"
VISITED_SECTIONS = "visited_sections"
PREFERENCES      = "preferences"
USER_DATA        = "user_data"
SESSION_ID       = "session_id"

CORE_RECORDS = (USER_DATA, SURVEY_ANSWERS, PROGRESS, VISITED_SECTIONS, PREFERENCES, SESSION_ID)
TEST_RESULT_RECORDS = ("alcohol_test_results", "smoking_test_results", "substance_test_results")

# Every record a GuideStore owns; anything else under the prefix belongs to someone else
RECORD_NAMES = (
    *CORE_RECORDS,
    *(s.progress_key for s in CONTENT_SECTIONS),
    *TEST_RESULT_RECORDS,
)

_PROBE_KEY = "__storage_test__"


def utc_now_iso() -> str:
    """Current UTC time as ``2026-01-31T12:00:00.000Z``."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class StorageError(Exception):
    """Raised by a ``KeyValueStore`` backend when it cannot read or write."""


@dataclass
class StorageResult:
    success: bool
    error:   Optional[str] = None


# ─── Key-value backends ──────────────────────────────────────────────────────

class KeyValueStore:
    """Minimal string → string store. Backends raise ``StorageError`` on failure."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> list[str]:
        raise NotImplementedError

    def clear(self) -> None:
        for key in self.keys():
            self.remove(key)


class MemoryKeyValueStore(KeyValueStore):
    """Session-only store; also the fallback when SQLite is unavailable."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)

    def clear(self) -> None:
        self._data.clear()


class SqliteKeyValueStore(KeyValueStore):
    """Single-table SQLite store: ``kv(key PRIMARY KEY, value, updated_at)``."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _get_conn(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.path))
        try:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key        TEXT PRIMARY KEY,
                value      TEXT NOT NULL,
                updated_at TEXT DEFAULT (datetime('now'))
            )
            """)
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    def _run(self, sql: str, params: tuple = ()) -> list[tuple]:
        try:
            conn = self._get_conn()
        except (sqlite3.Error, OSError) as exc:
            raise StorageError(f"Cannot open {self.path}: {exc}") from exc
        try:
            with conn:   # one transaction per statement
                return conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc
        finally:
            conn.close()

    def get(self, key: str) -> Optional[str]:
        rows = self._run("SELECT value FROM kv WHERE key = ?", (key,))
        return rows[0][0] if rows else None

    def set(self, key: str, value: str) -> None:
        self._run(
            """
            INSERT INTO kv (key, value, updated_at) VALUES (?, ?, datetime('now'))
            ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                           updated_at = excluded.updated_at
            """,
            (key, value),
        )

    def remove(self, key: str) -> None:
        self._run("DELETE FROM kv WHERE key = ?", (key,))

    def keys(self) -> list[str]:
        return [row[0] for row in self._run("SELECT key FROM kv ORDER BY key")]


def is_storage_available(backend: KeyValueStore) -> bool:
    """Write-then-delete probe; False when the backend cannot be used."""
    try:
        backend.set(_PROBE_KEY, _PROBE_KEY)
        backend.remove(_PROBE_KEY)
        return True
    except StorageError as exc:
        logger.warning("Persistent storage is not available: %s", exc)
        return False


# ─── Namespaced JSON store ───────────────────────────────────────────────────

class GuideStore:
    """
    JSON record store for one user's guide state.

    Every method is failure tolerant: reads fall back to a default,
    writes report failure through ``StorageResult``.
    """

    def __init__(self, backend: KeyValueStore, namespace: str = "preop", persistent: bool = True):
        self.backend    = backend
        self.namespace  = namespace
        self.persistent = persistent   # False when running on the memory fallback

    # ── generic access ───────────────────────────────────────────────────────

    def key(self, name: str) -> str:
        return f"{self.namespace}_{name}"

    def read_raw(self, name: str) -> Optional[str]:
        try:
            return self.backend.get(self.key(name))
        except StorageError as exc:
            logger.warning("Could not read %s: %s", self.key(name), exc)
            return None

    def read_json(self, name: str, default: Any = None) -> Any:
        raw = self.read_raw(name)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as exc:
            logger.warning("Ignoring malformed record %s: %s", self.key(name), exc)
            return default

    def write_json(self, name: str, value: Any) -> StorageResult:
        try:
            payload = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            logger.error("Cannot serialise %s: %s", self.key(name), exc)
            return StorageResult(False, str(exc))
        try:
            self.backend.set(self.key(name), payload)
        except StorageError as exc:
            logger.error("Error saving %s: %s", self.key(name), exc)
            return StorageResult(False, str(exc))
        return StorageResult(True)

    def remove(self, name: str) -> StorageResult:
        try:
            self.backend.remove(self.key(name))
        except StorageError as exc:
            logger.error("Error removing %s: %s", self.key(name), exc)
            return StorageResult(False, str(exc))
        return StorageResult(True)

    def names(self) -> list[str]:
        """Known record names currently stored under this namespace."""
        try:
            keys = set(self.backend.keys())
        except StorageError as exc:
            logger.warning("Could not list keys: %s", exc)
            return []
        return [name for name in RECORD_NAMES if self.key(name) in keys]

    # ── session identity ─────────────────────────────────────────────────────

    def session_id(self) -> str:
        """Lazily generated once, then reused for every stored record."""
        sid = self.read_json(SESSION_ID)
        if isinstance(sid, str) and sid:
            return sid
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
        sid = f"{self.namespace}_{int(time.time() * 1000)}_{suffix}"
        self.write_json(SESSION_ID, sid)
        return sid

    # ── survey answers ───────────────────────────────────────────────────────

    def save_survey_answers(self, answers: dict[str, Any]) -> StorageResult:
        result = self.write_json(SURVEY_ANSWERS, {
            "answers":   answers,
            "timestamp": utc_now_iso(),
            "sessionId": self.session_id(),
            "version":   STORAGE_VERSION,
        })
        if result.success:
            logger.info("Survey answers saved (%d questions)", len(answers))
        return result

    def load_survey_envelope(self) -> Optional[dict[str, Any]]:
        data = self.read_json(SURVEY_ANSWERS)
        if not isinstance(data, dict) or not isinstance(data.get("answers"), dict):
            return None
        return data

    def load_survey_answers(self) -> Optional[dict[str, Any]]:
        envelope = self.load_survey_envelope()
        return envelope["answers"] if envelope else None

    # ── navigation progress ──────────────────────────────────────────────────

    def save_progress(self, current_section: str, completed_sections: list[str] | None = None) -> StorageResult:
        return self.write_json(PROGRESS, {
            "currentSection":    current_section,
            "completedSections": list(dict.fromkeys(completed_sections or [])),
            "lastUpdated":       utc_now_iso(),
            "sessionId":         self.session_id(),
            "totalSections":     TOTAL_SECTIONS,
        })

    def load_progress(self) -> Optional[dict[str, Any]]:
        data = self.read_json(PROGRESS)
        return data if isinstance(data, dict) else None

    def get_visited_sections(self) -> list[str]:
        data = self.read_json(VISITED_SECTIONS)
        if not isinstance(data, dict) or not isinstance(data.get("sections"), list):
            return []
        return [str(s) for s in data["sections"]]

    def mark_section_visited(self, section_id: str) -> StorageResult:
        visited = self.get_visited_sections()
        if section_id not in visited:
            visited.append(section_id)
        return self.write_json(VISITED_SECTIONS, {
            "sections":    visited,
            "lastUpdated": utc_now_iso(),
            "sessionId":   self.session_id(),
        })

    # ── free-form records ────────────────────────────────────────────────────

    def _save_free_form(self, name: str, data: dict[str, Any], **extra: Any) -> StorageResult:
        return self.write_json(name, {
            **data,
            "lastUpdated": utc_now_iso(),
            "sessionId":   self.session_id(),
            **extra,
        })

    def save_preferences(self, preferences: dict[str, Any]) -> StorageResult:
        return self._save_free_form(PREFERENCES, preferences)

    def load_preferences(self) -> Optional[dict[str, Any]]:
        data = self.read_json(PREFERENCES)
        return data if isinstance(data, dict) else None

    def save_user_data(self, user_data: dict[str, Any]) -> StorageResult:
        return self._save_free_form(USER_DATA, user_data, version=STORAGE_VERSION)

    def load_user_data(self) -> Optional[dict[str, Any]]:
        data = self.read_json(USER_DATA)
        return data if isinstance(data, dict) else None

    # ── per-section progress ─────────────────────────────────────────────────

    def load_section_progress(self, progress_key: str) -> dict[str, Any]:
        data = self.read_json(progress_key)
        return data if isinstance(data, dict) else {}

    def save_section_progress(self, progress_key: str, record: dict[str, Any]) -> StorageResult:
        return self.write_json(progress_key, record)

    # ── screening-test histories ─────────────────────────────────────────────

    def load_test_results(self, results_key: str) -> list[dict[str, Any]]:
        data = self.read_json(results_key)
        return data if isinstance(data, list) else []

    def append_test_result(self, results_key: str, result: dict[str, Any]) -> StorageResult:
        history = self.load_test_results(results_key)
        history.append(result)
        return self.write_json(results_key, history)

    # ── reset ────────────────────────────────────────────────────────────────

    def clear_user_profile(self, section_progress_keys: tuple[str, ...] = ()) -> StorageResult:
        """User-initiated reset: survey, navigation and section progress.
        Screening-test histories are kept."""
        errors = []
        for name in (SURVEY_ANSWERS, PROGRESS, VISITED_SECTIONS, *section_progress_keys):
            result = self.remove(name)
            if not result.success:
                errors.append(result.error)
        if errors:
            return StorageResult(False, "; ".join(e for e in errors if e))
        logger.info("Profile reset for namespace %s", self.namespace)
        return StorageResult(True)

    def clear_all(self) -> StorageResult:
        errors = [r.error for r in (self.remove(n) for n in self.names()) if not r.success]
        if errors:
            return StorageResult(False, "; ".join(e for e in errors if e))
        logger.info("All stored data cleared for namespace %s", self.namespace)
        return StorageResult(True)

    # ── diagnostics / backup ─────────────────────────────────────────────────

    def has_stored_data(self) -> bool:
        return any(self.read_raw(name) is not None for name in CORE_RECORDS)

    def storage_stats(self) -> dict[str, Any]:
        individual: dict[str, dict[str, Any]] = {}
        total = 0
        for name in sorted(set(CORE_RECORDS) | set(self.names())):
            raw = self.read_raw(name)
            size = len(raw.encode("utf-8")) if raw is not None else 0
            individual[name] = {
                "key":    self.key(name),
                "exists": raw is not None,
                "size":   size,
                "sizeKB": f"{size / 1024:.2f}",
            }
            total += size
        return {
            "individual": individual,
            "total": {
                "size":   total,
                "sizeKB": f"{total / 1024:.2f}",
                "sizeMB": f"{total / (1024 * 1024):.2f}",
            },
        }

    def export_user_data(self) -> tuple[bool, str]:
        """Return ``(True, json_text)`` with every stored record, or ``(False, error)``."""
        data = {}
        for name in self.names():
            value = self.read_json(name)
            if value is not None:
                data[name] = value
        try:
            text = json.dumps(
                {"exportDate": utc_now_iso(), "version": STORAGE_VERSION, "data": data},
                ensure_ascii=False, indent=2,
            )
        except (TypeError, ValueError) as exc:
            return False, str(exc)
        return True, text

    def import_user_data(self, exported: str) -> StorageResult:
        """Replace all stored records with the contents of an export."""
        try:
            parsed = json.loads(exported)
        except ValueError as exc:
            return StorageResult(False, f"Invalid export data: {exc}")
        if not isinstance(parsed, dict) or not isinstance(parsed.get("data"), dict):
            return StorageResult(False, "Invalid export data format")

        payloads: dict[str, str] = {}
        for name, value in parsed["data"].items():
            if value is None:
                continue
            if name not in RECORD_NAMES:
                logger.warning("Skipping unknown record %r in import", name)
                continue
            try:
                payloads[name] = json.dumps(value, ensure_ascii=False)
            except (TypeError, ValueError) as exc:
                return StorageResult(False, f"Invalid export data: {exc}")

        previous = {name: self.read_raw(name) for name in self.names()}
        cleared = self.clear_all()
        if not cleared.success:
            self._restore(previous)
            return cleared
        for name, payload in payloads.items():
            try:
                self.backend.set(self.key(name), payload)
            except StorageError as exc:
                logger.error("Import failed at %s, restoring previous records: %s", self.key(name), exc)
                self._restore(previous)
                return StorageResult(False, str(exc))
        logger.info("Imported %d records", len(payloads))
        return StorageResult(True)

    def _restore(self, previous: dict[str, Optional[str]]) -> None:
        """Best-effort rollback to the raw records captured before an import."""
        for name in RECORD_NAMES:
            raw = previous.get(name)
            try:
                if raw is None:
                    self.backend.remove(self.key(name))
                else:
                    self.backend.set(self.key(name), raw)
            except StorageError as exc:
                logger.error("Could not restore %s: %s", self.key(name), exc)


def open_store(settings: Settings | None = None) -> GuideStore:
    """
    Open the configured store. Falls back to session-only memory storage
    when the SQLite file is not usable; never raises.
    """
    settings = settings or get_settings()
    cfg = settings.storage
    if not cfg.force_memory:
        backend = SqliteKeyValueStore(cfg.db_path)
        if is_storage_available(backend):
            return GuideStore(backend, cfg.namespace, persistent=True)
        logger.warning("Falling back to in-memory storage; progress will not be saved")
    return GuideStore(MemoryKeyValueStore(), cfg.namespace, persistent=False)
