"""
session.py – GuideSession
=========================
One user's guide, as seen by a front end. Owns the ``GuideStore`` and the
``Settings`` and exposes every user action as a method that runs to
completion and returns an ``ActionResult``:

  record_answer / submit_survey / set_show_all
  mark_section_visited / toggle_read_section / mark_section_done
  submit_test / request_document
  reset / clear_all / export_data / import_data

Read accessors (``profile``, ``content_flags``, ``completion``,
``overview``, ``history``, ``journey``) always re-derive from the store.

Error boundary
--------------
Rejected screening submissions come back as ``success=False`` with the
validation message. Any other exception raised inside an action is
logged with its traceback and returned as a failed ``ActionResult``, so
one bad action never takes the front end down.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from preop_guide import progress as progress_calc
from preop_guide.config import Settings, get_settings
from preop_guide.documents import DocumentResult, bundle_from_profile, download_document
from preop_guide.models import (
    SECTION_BY_ID,
    SECTION_IDS,
    SURVEY_QUESTION_BY_ID,
    ContentFlags,
    DocumentKind,
    MultiChoice,
    Relevance,
    UserProfile,
    dump_raw_answers,
    make_answer,
    normalise_section_id,
)
from preop_guide.profile import derive_content_flags, load_profile, section_relevance, visible_sections
from preop_guide.screening import (
    ScreeningError,
    ScreeningTestResult,
    get_instrument,
    load_results,
    submit_test,
)
from preop_guide.storage import GuideStore, StorageResult, open_store

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    success: bool
    error:   Optional[str] = None
    value:   Any = None

    @classmethod
    def from_storage(cls, result: StorageResult, value: Any = None) -> "ActionResult":
        return cls(result.success, result.error, value)


@dataclass
class SectionOverview:
    id:        str
    title:     str
    relevance: Relevance
    progress:  int
    visited:   bool


class GuideSession:

    def __init__(self, store: GuideStore | None = None, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.store    = store or open_store(self.settings)

    # ── error boundary ───────────────────────────────────────────────────────

    def _run(self, action: str, fn: Callable[[], ActionResult]) -> ActionResult:
        try:
            return fn()
        except ScreeningError as exc:
            logger.info("%s rejected: %s", action, exc)
            return ActionResult(False, str(exc))
        except Exception as exc:
            logger.exception("Unexpected error during %s (namespace=%s)", action, self.store.namespace)
            return ActionResult(False, f"{type(exc).__name__}: {exc}")

    # ── read accessors ───────────────────────────────────────────────────────

    def profile(self) -> UserProfile:
        return load_profile(self.store)

    def content_flags(self) -> ContentFlags:
        return derive_content_flags(self.profile())

    def completion(self) -> int:
        return progress_calc.calculate_completion_percentage(self.store, self.settings)

    def overview(self) -> list[SectionOverview]:
        """Visible sections in display order with relevance and progress."""
        profile = self.profile()
        visited = set(self.store.get_visited_sections())
        rows = []
        for section_id in visible_sections(profile, visited, SECTION_IDS):
            rows.append(SectionOverview(
                id=section_id,
                title=SECTION_BY_ID[section_id].title,
                relevance=section_relevance(section_id, profile),
                progress=progress_calc.section_progress(self.store, section_id, profile, self.settings.progress),
                visited=section_id in visited,
            ))
        return rows

    def history(self, instrument_key: str) -> list[ScreeningTestResult]:
        return load_results(self.store, get_instrument(instrument_key))

    def journey(self) -> dict[str, Any]:
        return progress_calc.user_journey(self.store, self.settings)

    # ── survey ───────────────────────────────────────────────────────────────

    def _save_answers(self, updates: dict[str, Any]) -> ActionResult:
        unknown = [q for q in updates if q not in SURVEY_QUESTION_BY_ID]
        if unknown:
            return ActionResult(False, f"Unknown survey question(s): {', '.join(unknown)}")
        for qid, value in updates.items():
            question = SURVEY_QUESTION_BY_ID[qid]
            answer = make_answer(qid, value)
            chosen = answer.values if isinstance(answer, MultiChoice) else answer.flatten()
            invalid = set(chosen) - question.option_ids()
            if invalid:
                return ActionResult(False, f"Invalid option(s) for {qid}: {', '.join(sorted(invalid))}")

        current = self.store.load_survey_answers() or {}
        merged = {**current, **dump_raw_answers({q: make_answer(q, v) for q, v in updates.items()})}
        return ActionResult.from_storage(self.store.save_survey_answers(merged), merged)

    def record_answer(self, question_id: str, value: Any) -> ActionResult:
        """Overwrite the answer to one survey question."""
        return self._run("record_answer", lambda: self._save_answers({question_id: value}))

    def submit_survey(self, answers: dict[str, Any]) -> ActionResult:
        return self._run("submit_survey", lambda: self._save_answers(dict(answers)))

    def set_show_all(self, show_all: bool) -> ActionResult:
        def _set() -> ActionResult:
            prefs = self.store.load_preferences() or {}
            prefs = {k: v for k, v in prefs.items() if k not in ("lastUpdated", "sessionId")}
            prefs["showAllContent"] = bool(show_all)
            return ActionResult.from_storage(self.store.save_preferences(prefs), bool(show_all))
        return self._run("set_show_all", _set)

    # ── sections ─────────────────────────────────────────────────────────────

    def mark_section_visited(self, section_id: str) -> ActionResult:
        def _visit() -> ActionResult:
            canonical = normalise_section_id(section_id)
            if canonical not in SECTION_BY_ID:
                return ActionResult(False, f"Unknown section: {section_id}")
            result = self.store.mark_section_visited(canonical)
            if result.success:
                self.store.save_progress(canonical, self.store.get_visited_sections())
            return ActionResult.from_storage(result, canonical)
        return self._run("mark_section_visited", _visit)

    def toggle_read_section(self, section_id: str, topic: str) -> ActionResult:
        return self._run("toggle_read_section", lambda: ActionResult.from_storage(
            progress_calc.toggle_read_section(self.store, section_id, topic)
        ))

    def mark_section_done(self, section_id: str, done: bool = True) -> ActionResult:
        return self._run("mark_section_done", lambda: ActionResult.from_storage(
            progress_calc.mark_section_done(self.store, section_id, done)
        ))

    # ── screening tests ──────────────────────────────────────────────────────

    def submit_test(self, instrument_key: str, answers: dict[Any, Any],
                    now: Optional[datetime] = None) -> ActionResult:
        def _submit() -> ActionResult:
            result = submit_test(self.store, get_instrument(instrument_key), answers, now)
            if not result.saved:
                return ActionResult(False, "Tulosta ei voitu tallentaa", result)
            return ActionResult(True, value=result)
        return self._run("submit_test", _submit)

    # ── documents ────────────────────────────────────────────────────────────

    def request_document(
        self,
        kind: DocumentKind | str,
        *,
        score: Optional[int] = None,
        answers: Optional[dict[Any, Any]] = None,
        output_dir: Optional[Path] = None,
        now: Optional[datetime] = None,
    ) -> ActionResult:
        """
        Write one document. Test reports default to the latest stored
        result of their instrument.
        """
        def _request() -> ActionResult:
            doc_kind = DocumentKind(kind)
            profile = self.profile()
            nonlocal score, answers
            if doc_kind.is_test_result and score is None and not answers:
                history = load_results(self.store, get_instrument(doc_kind))
                if not history:
                    return ActionResult(False, "Testiä ei ole vielä tehty")
                score, answers = history[-1].score, history[-1].answers
            result: DocumentResult = download_document(
                doc_kind,
                bundle_from_profile(profile, score, answers),
                output_dir=output_dir,
                profile=profile,
                settings=self.settings,
                now=now,
            )
            return ActionResult(result.success, result.error, result)
        return self._run("request_document", _request)

    # ── reset / backup ───────────────────────────────────────────────────────

    def reset(self) -> ActionResult:
        """Clear survey, navigation and section progress; test histories stay."""
        return self._run("reset", lambda: ActionResult.from_storage(
            self.store.clear_user_profile(progress_calc.section_progress_keys())
        ))

    def clear_all(self) -> ActionResult:
        return self._run("clear_all", lambda: ActionResult.from_storage(self.store.clear_all()))

    def export_data(self) -> ActionResult:
        def _export() -> ActionResult:
            ok, text = self.store.export_user_data()
            return ActionResult(True, value=text) if ok else ActionResult(False, text)
        return self._run("export_data", _export)

    def import_data(self, exported: str) -> ActionResult:
        return self._run("import_data", lambda: ActionResult.from_storage(
            self.store.import_user_data(exported)
        ))
