"""
progress.py – Progress Calculator
=================================
Overall completion and per-section progress for the guide.

  completion_percentage(answers, visited, …)        → int 0–100  (pure)
  calculate_completion_percentage(store, settings)  → int 0–100  (store-backed)
  per_section_progress(record, total_tasks, …)      → int 0–100
  section_task_total(section_id, profile, cfg)      → int
  section_progress(store, section_id, profile)      → int 0–100
  toggle_read_section / mark_section_done           SectionProgress mutations
  user_journey(store)                               → summary dict
  progress_message(pct)                             → motivational text

Overall completion is a weighted blend of two shares (default 50 / 50):

  survey   = answered questions / 3 × 100
  sections = |visited ∩ personalised| / |personalised| × 100

Rounding is half-up (``floor(x + 0.5)``) so that x.5 always rounds away
from zero, exactly like the stored percentages users have already seen.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from preop_guide.config import ProgressConfig, Settings, get_settings
from preop_guide.models import (
    CONTENT_SECTIONS,
    TOTAL_SURVEY_QUESTIONS,
    ContentSection,
    RawAnswers,
    UserProfile,
    flatten_answer_values,
    get_section,
    normalise_section_id,
    parse_raw_answers,
)
from preop_guide.storage import GuideStore, StorageResult

logger = logging.getLogger(__name__)

# Sections whose task total depends on which of their topics are relevant
_DYNAMIC_SECTIONS = ("substance_use", "other_diseases")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp_pct(value: int) -> int:
    return max(0, min(100, value))


# ─── Overall completion ──────────────────────────────────────────────────────

def count_answered(answers: Optional[RawAnswers]) -> int:
    """Number of questions with a non-empty answer."""
    return sum(1 for a in (answers or {}).values() if a.answered)


def personalized_sections(answers: Optional[RawAnswers]) -> list[ContentSection]:
    """Sections relevant to everyone, plus those matching any selected option."""
    values = flatten_answer_values(answers)
    return [s for s in CONTENT_SECTIONS if s.is_personalised_for(values)]


def completion_percentage(
    answers: Optional[RawAnswers],
    visited: Iterable[str],
    survey_weight: float = 0.5,
    section_weight: float = 0.5,
) -> int:
    """
    Weighted completion percentage, clamped to 0–100. Pure.
    Without answers the survey share is 0 but visits to the sections
    relevant to everyone still count.
    """
    survey_completion = count_answered(answers) / TOTAL_SURVEY_QUESTIONS * 100

    personalised = {s.id for s in personalized_sections(answers)}
    visited_ids  = {normalise_section_id(v) for v in visited}
    if personalised:
        section_completion = len(visited_ids & personalised) / len(personalised) * 100
    else:
        section_completion = 0.0

    blended = survey_weight * survey_completion + section_weight * section_completion
    return _clamp_pct(round_half_up(blended))


def calculate_completion_percentage(store: GuideStore, settings: Settings | None = None) -> int:
    """Completion from whatever is currently stored."""
    cfg = (settings or get_settings()).progress
    try:
        answers = parse_raw_answers(store.load_survey_answers())
    except (TypeError, ValueError) as exc:
        logger.warning("Unreadable survey answers, treating them as absent: %s", exc)
        answers = None
    return completion_percentage(
        answers,
        store.get_visited_sections(),
        survey_weight=cfg.survey_weight,
        section_weight=cfg.section_weight,
    )


# ─── Per-section progress ────────────────────────────────────────────────────

@dataclass
class SectionProgress:
    """Read sub-topics plus the terminal "done" flag of one content section."""
    section_id:    str
    read_sections: list[str] = field(default_factory=list)
    done:          bool = False

    @classmethod
    def from_record(cls, section: ContentSection, record: dict[str, Any]) -> "SectionProgress":
        read = record.get("readSections", [])
        if not isinstance(read, list):
            read = []
        return cls(
            section_id=section.id,
            read_sections=list(dict.fromkeys(str(t) for t in read)),
            done=bool(record.get(section.done_flag, False)),
        )

    def to_record(self) -> dict[str, Any]:
        section = get_section(self.section_id)
        return {"readSections": list(self.read_sections), section.done_flag: self.done}


def per_section_progress(
    record: SectionProgress,
    total_tasks: int,
    relevant_topics: Optional[Iterable[str]] = None,
) -> int:
    """
    ``round(completed / total × 100)`` where completed is the number of read
    sub-topics (only the relevant ones when *relevant_topics* is given) plus
    one when the done flag is set.
    """
    if total_tasks <= 0:
        return 0
    read = record.read_sections
    if relevant_topics is not None:
        relevant = set(relevant_topics)
        read = [t for t in read if t in relevant]
    completed = len(read) + (1 if record.done else 0)
    return _clamp_pct(round_half_up(completed / total_tasks * 100))


def relevant_topics(section_id: str, profile: UserProfile) -> Optional[list[str]]:
    """Currently relevant sub-topics of a dynamic section; ``None`` for fixed ones."""
    section = get_section(section_id)
    if section.id not in _DYNAMIC_SECTIONS:
        return None
    if profile.show_all_content or not profile.has_completed_survey:
        return list(section.topics)
    return [t for t in section.topics if profile.has(t)]


def section_task_total(section_id: str, profile: UserProfile, cfg: ProgressConfig | None = None) -> int:
    cfg = cfg or get_settings().progress
    section = get_section(section_id)
    topics = relevant_topics(section.id, profile)
    if topics is None:
        return cfg.fixed_task_totals().get(section.id, len(section.topics))
    return len(topics) + 1


def load_section_record(store: GuideStore, section_id: str) -> SectionProgress:
    section = get_section(section_id)
    return SectionProgress.from_record(section, store.load_section_progress(section.progress_key))


def section_progress(
    store: GuideStore,
    section_id: str,
    profile: UserProfile,
    cfg: ProgressConfig | None = None,
) -> int:
    record = load_section_record(store, section_id)
    return per_section_progress(
        record,
        section_task_total(section_id, profile, cfg),
        relevant_topics(section_id, profile),
    )


def toggle_read_section(store: GuideStore, section_id: str, topic: str) -> StorageResult:
    """Flip the "read" mark of one sub-topic. Unknown topics raise ``ValueError``."""
    section = get_section(section_id)
    if topic not in section.topics:
        raise ValueError(f"Unknown topic {topic!r} for section {section.id!r}")
    record = load_section_record(store, section.id)
    if topic in record.read_sections:
        record.read_sections.remove(topic)
    else:
        record.read_sections.append(topic)
    logger.debug("Section %s read topics: %s", section.id, record.read_sections)
    return store.save_section_progress(section.progress_key, record.to_record())


def mark_section_done(store: GuideStore, section_id: str, done: bool = True) -> StorageResult:
    """Set the terminal task flag (exercises done, meal plan created, …)."""
    section = get_section(section_id)
    record = load_section_record(store, section.id)
    record.done = done
    return store.save_section_progress(section.progress_key, record.to_record())


def section_progress_keys() -> tuple[str, ...]:
    return tuple(s.progress_key for s in CONTENT_SECTIONS)


# ─── Journey summary ─────────────────────────────────────────────────────────

def user_journey(store: GuideStore, settings: Settings | None = None) -> dict[str, Any]:
    """Start date, last activity and completion of the current user."""
    envelope = store.load_survey_envelope()
    progress = store.load_progress() or {}
    return {
        "start_date":             envelope.get("timestamp") if envelope else None,
        "last_activity":          progress.get("lastUpdated"),
        "completion_percentage":  calculate_completion_percentage(store, settings),
        "sections_visited":       len(store.get_visited_sections()),
        "has_completed_survey":   envelope is not None,
    }


def progress_message(pct: int) -> str:
    if pct >= 90:
        return "Erinomaista! Olet melkein valmis."
    if pct >= 70:
        return "Hyvää edistystä! Jatka samaan malliin."
    if pct >= 50:
        return "Puolivälissä! Hyvin menee."
    if pct >= 25:
        return "Hyvä alku! Jatka tutustumista."
    return "Tervetuloa! Aloita tutustuminen oppaaseen."
