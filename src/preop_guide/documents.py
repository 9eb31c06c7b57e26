"""
documents.py – Document Assembler
=================================
Builds the downloadable PDF guides and screening-test reports.

  bundle_from_user_data(user_data)   → ContentBundle
  bundle_from_profile(profile, …)    → ContentBundle
  build_blocks(spec, profile, …)     → list[Block]     per-kind templates
  render_pdf(pages, title, …)        → bytes           reportlab canvas
  assemble(kind, …)                  → PaginatedDocument
  download_document(kind, …)         → DocumentResult  never raises

Document kinds
--------------
Guidance documents (exercise, nutrition, mental wellbeing, substance,
disease) pick fixed narrative passages from ``content`` according to the
bundle's flags; exercise, nutrition and substance plans end with a
14-day tracking table. Test-result documents show the score fraction,
the classification, the instrument's static advice and every question
paired with the label of the chosen answer.

Pagination is done by ``layout.LayoutEngine``; this module only decides
*what* goes on the page and replays the engine's draw operations onto a
reportlab canvas.
"""

from __future__ import annotations

import io
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from preop_guide import content
from preop_guide.config import Settings, get_settings
from preop_guide.layout import (
    AnswerEcho,
    Block,
    BulletList,
    Heading,
    LayoutEngine,
    LineOp,
    Page,
    PageGeometry,
    Paragraph,
    RectOp,
    Rule,
    Subtitle,
    TextOp,
    Timestamp,
    Title,
    TrackingTable,
)
from preop_guide.models import AgeGroup, DocumentKind, UserProfile
from preop_guide.profile import age_group_display
from preop_guide.screening import answer_label, classify, get_instrument, score

logger = logging.getLogger(__name__)


# ─── Input / output models ───────────────────────────────────────────────────

@dataclass
class ContentBundle:
    """Everything a template needs to personalise one document."""
    age_group:          str = AgeGroup.UNDER_65.value
    has_low_activity:   bool = False
    has_heart_disease:  bool = False
    has_diabetes:       bool = False
    has_sleep_apnea:    bool = False
    has_mental_health:  bool = False
    includes_smoking:   bool = False
    includes_alcohol:   bool = False
    includes_substance: bool = False
    conditions:         list[str] = field(default_factory=list)
    show_all:           bool = False   # include every gated subsection
    score:              Optional[int] = None
    answers:            dict[Any, Any] = field(default_factory=dict)


@dataclass
class DocumentSpec:
    kind:    DocumentKind
    title:   str
    content: ContentBundle


@dataclass
class PaginatedDocument:
    kind:      DocumentKind
    title:     str
    pages:     list[Page]
    pdf_bytes: bytes
    filename:  str

    @property
    def page_count(self) -> int:
        return len(self.pages)


@dataclass
class DocumentResult:
    success:  bool
    status:   str                       # "success" | "fallback"
    path:     Optional[Path] = None
    error:    Optional[str] = None
    document: Optional[PaginatedDocument] = None


def bundle_from_user_data(user_data: Optional[dict[str, Any]]) -> ContentBundle:
    """
    Build a bundle from a loose ``user_data`` mapping
    (``age``, ``conditions``, ``smoking``, ``alcohol``, ``substance``,
    ``low_activity``, ``show_all``, ``score``, ``answers``).
    """
    data = user_data or {}
    conditions = list(data.get("conditions") or [])
    return ContentBundle(
        age_group=data.get("age") or AgeGroup.UNDER_65.value,
        has_low_activity=bool(data.get("low_activity", False)),
        has_heart_disease="heart_disease" in conditions,
        has_diabetes="diabetes" in conditions,
        has_sleep_apnea="sleep_apnea" in conditions,
        has_mental_health="mental_health" in conditions,
        includes_smoking=bool(data.get("smoking", False)),
        includes_alcohol=bool(data.get("alcohol", False)),
        includes_substance=bool(data.get("substance", False)),
        conditions=conditions,
        show_all=bool(data.get("show_all", False)),
        score=data.get("score"),
        answers=dict(data.get("answers") or {}),
    )


def bundle_from_profile(
    profile: UserProfile,
    score: Optional[int] = None,
    answers: Optional[dict[Any, Any]] = None,
) -> ContentBundle:
    """Bundle for the current user; an unprofiled user gets every subsection."""
    conditions = sorted(profile.health_conditions)
    return ContentBundle(
        age_group=(profile.age_group or AgeGroup.UNDER_65).value,
        has_low_activity="low_activity" in profile.lifestyle,
        has_heart_disease="heart_disease" in conditions,
        has_diabetes="diabetes" in conditions,
        has_sleep_apnea="sleep_apnea" in conditions,
        has_mental_health="mental_health" in conditions,
        includes_smoking="smoking" in profile.lifestyle,
        includes_alcohol="alcohol" in profile.lifestyle,
        includes_substance="substance" in profile.lifestyle,
        conditions=conditions,
        show_all=profile.show_all_content or not profile.has_completed_survey,
        score=score,
        answers=dict(answers or {}),
    )


def document_title(kind: DocumentKind) -> str:
    return content.DOCUMENT_TITLES[DocumentKind(kind)]


def document_filename(kind: DocumentKind, now: Optional[datetime] = None) -> str:
    """``<kind with '-' → '_'>_<epoch-ms>.pdf``"""
    epoch_ms = int((now.timestamp() if now else time.time()) * 1000)
    return f"{DocumentKind(kind).value.replace('-', '_')}_{epoch_ms}.pdf"


# ─── Templates ───────────────────────────────────────────────────────────────

def passage_blocks(passage: content.Passage) -> list[Block]:
    blocks: list[Block] = []
    for kind, payload in passage:
        if kind == "group":
            blocks.append(Heading(str(payload), level=2, advance=8))
        elif kind in ("h3", "h4"):
            blocks.append(Heading(str(payload), level=2))
        elif kind == "p":
            blocks.append(Paragraph(str(payload)))
        elif kind == "ul":
            blocks.append(BulletList(tuple(payload)))
        else:
            raise ValueError(f"Unknown passage part: {kind!r}")
    return blocks


def _table(spec: tuple[str, tuple[str, ...]]) -> TrackingTable:
    title, columns = spec
    return TrackingTable(title, columns)


def _header_blocks(title: str, profile: Optional[UserProfile], created: datetime) -> list[Block]:
    blocks: list[Block] = [Title(title)]
    if profile is not None and profile.has_completed_survey:
        blocks.append(Subtitle(content.PERSONALISED_NOTE))
        blocks.append(Subtitle(f"{content.AGE_GROUP_PREFIX}{age_group_display(profile.age_group)}"))
    # Finnish short date: 5.3.2026
    blocks.append(Timestamp(f"{content.CREATED_PREFIX}{created.day}.{created.month}.{created.year}"))
    blocks.append(Rule())
    return blocks


def _exercise(bundle: ContentBundle) -> list[Block]:
    senior = bundle.age_group == AgeGroup.OVER_65.value
    return (
        [Heading(content.EXERCISE_SECTION)]
        + passage_blocks(content.EXERCISE_SENIOR if senior else content.EXERCISE_ADULT)
        + [_table(content.EXERCISE_TABLE)]
    )


def _nutrition(bundle: ContentBundle) -> list[Block]:
    return (
        [Heading(content.NUTRITION_SECTION)]
        + passage_blocks(content.NUTRITION)
        + [_table(content.NUTRITION_TABLE)]
    )


def _mental(bundle: ContentBundle) -> list[Block]:
    return [Heading(content.MENTAL_SECTION)] + passage_blocks(content.MENTAL_WELLBEING)


def _substance(bundle: ContentBundle) -> list[Block]:
    smoking   = bundle.includes_smoking or bundle.show_all
    alcohol   = bundle.includes_alcohol or bundle.show_all
    substance = bundle.includes_substance or bundle.show_all

    blocks: list[Block] = [Heading(content.SUBSTANCE_SECTION)]
    if smoking:
        blocks += passage_blocks(content.SUBSTANCE_SMOKING)
    if alcohol:
        blocks += passage_blocks(content.SUBSTANCE_ALCOHOL)
    if substance:
        blocks += passage_blocks(content.SUBSTANCE_OTHER)
    blocks += passage_blocks(content.SUBSTANCE_IMPORTANT)
    blocks += passage_blocks(content.SUPPORT_HEADING)
    if smoking:
        blocks += passage_blocks(content.SUPPORT_SMOKING)
    if alcohol:
        blocks += passage_blocks(content.SUPPORT_ALCOHOL)
    if substance:
        blocks += passage_blocks(content.SUPPORT_SUBSTANCE)
    blocks.append(_table(content.SUBSTANCE_TABLE))
    return blocks


def _disease(bundle: ContentBundle) -> list[Block]:
    blocks: list[Block] = [Heading(content.DISEASE_SECTION)]
    if bundle.has_diabetes or bundle.show_all:
        blocks += passage_blocks(content.DISEASE_DIABETES)
    if bundle.has_sleep_apnea or bundle.show_all:
        blocks += passage_blocks(content.DISEASE_SLEEP_APNEA)
    if bundle.has_heart_disease or bundle.show_all:
        blocks += passage_blocks(content.DISEASE_HEART)
    blocks += passage_blocks(content.DISEASE_ORAL_HEALTH)
    return blocks


def _test_result(kind: DocumentKind, title: str, bundle: ContentBundle) -> list[Block]:
    instrument = get_instrument(kind)
    answers = bundle.answers or {}
    total = bundle.score
    if total is None:
        if not answers:
            raise ValueError(f"{instrument.name} report needs a score or answers")
        total = score(instrument, answers)
    outcome = classify(instrument, int(total))
    advice  = content.TEST_ADVICE.get(kind, ())

    blocks: list[Block] = [
        Heading(title),
        Heading(f"{content.SCORE_PREFIX}{total}/{instrument.max_score}", size=16, advance=10),
        Heading(outcome.title, size=14, advance=8),
        Paragraph(outcome.description, space_after=10 if advice else 5),
    ]
    blocks += passage_blocks(advice)

    pairs = []
    for q in instrument.questions:
        value = answers.get(q.id, answers.get(str(q.id)))
        pairs.append((f"{q.id}. {q.text}", answer_label(q, value)))
    blocks.append(AnswerEcho(
        tuple(pairs),
        heading=content.ANSWERS_HEADING,
        answer_prefix=content.ANSWER_PREFIX,
    ))
    return blocks


_GUIDANCE_TEMPLATES = {
    DocumentKind.EXERCISE_PLAN:      _exercise,
    DocumentKind.NUTRITION_PLAN:     _nutrition,
    DocumentKind.MENTAL_WELLBEING:   _mental,
    DocumentKind.SUBSTANCE_PLAN:     _substance,
    DocumentKind.DISEASE_MANAGEMENT: _disease,
}


def build_blocks(
    spec: DocumentSpec,
    profile: Optional[UserProfile] = None,
    created: Optional[datetime] = None,
) -> list[Block]:
    """Header plus the kind's template, in reading order."""
    kind = DocumentKind(spec.kind)
    blocks = _header_blocks(spec.title, profile, created or datetime.now())
    if kind.is_test_result:
        return blocks + _test_result(kind, spec.title, spec.content)
    return blocks + _GUIDANCE_TEMPLATES[kind](spec.content)


# ─── Rendering ───────────────────────────────────────────────────────────────

def render_pdf(
    pages: list[Page],
    title: str,
    author: str = "Preop Guide",
    geometry: PageGeometry | None = None,
) -> bytes:
    """Replay the layout's draw operations onto a reportlab canvas."""
    from reportlab.lib.units import mm
    from reportlab.pdfgen import canvas

    geometry = geometry or PageGeometry()
    page_h = geometry.height

    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=(geometry.width * mm, geometry.height * mm))
    c.setTitle(title)
    c.setSubject(f"{content.PDF_SUBJECT_PREFIX}{title}")
    c.setAuthor(author)
    c.setCreator(author)
    c.setKeywords(", ".join(content.PDF_KEYWORDS))

    for page in pages:
        for op in page.ops:
            if isinstance(op, TextOp):
                c.setFont(op.font, op.size)
                c.setFillColorRGB(0, 0, 0)
                if op.align == "right":
                    c.drawRightString(op.x * mm, (page_h - op.y) * mm, op.text)
                else:
                    c.drawString(op.x * mm, (page_h - op.y) * mm, op.text)
            elif isinstance(op, LineOp):
                c.setStrokeColorRGB(*(v / 255 for v in op.colour))
                c.setLineWidth(op.width * mm)
                c.line(op.x1 * mm, (page_h - op.y1) * mm, op.x2 * mm, (page_h - op.y2) * mm)
            elif isinstance(op, RectOp):
                c.setStrokeColorRGB(0, 0, 0)
                c.setLineWidth(op.line_width * mm)
                c.rect(op.x * mm, (page_h - op.y - op.h) * mm, op.w * mm, op.h * mm, stroke=1, fill=0)
        c.showPage()

    c.save()
    return buf.getvalue()


def assemble(
    kind: DocumentKind | str,
    title: Optional[str] = None,
    bundle: Optional[ContentBundle] = None,
    profile: Optional[UserProfile] = None,
    *,
    now: Optional[datetime] = None,
    settings: Settings | None = None,
    engine: LayoutEngine | None = None,
) -> PaginatedDocument:
    """Lay out and render one document. Raises on any failure."""
    kind = DocumentKind(kind)
    settings = settings or get_settings()
    now = now or datetime.now()
    title = title or document_title(kind)
    spec = DocumentSpec(kind, title, bundle or ContentBundle())

    blocks = build_blocks(spec, profile, created=now)
    pages = (engine or LayoutEngine()).layout(blocks)
    pdf = render_pdf(pages, title, author=settings.documents.author)
    return PaginatedDocument(
        kind=kind,
        title=title,
        pages=pages,
        pdf_bytes=pdf,
        filename=document_filename(kind, now),
    )


def download_document(
    kind: DocumentKind | str,
    user_data: Optional[dict[str, Any]] | ContentBundle = None,
    *,
    output_dir: Optional[Path] = None,
    profile: Optional[UserProfile] = None,
    settings: Settings | None = None,
    now: Optional[datetime] = None,
) -> DocumentResult:
    """
    Assemble a document and write it to *output_dir* in a single write.
    Any failure is logged and reported as ``status="fallback"``.
    """
    settings = settings or get_settings()
    try:
        bundle = user_data if isinstance(user_data, ContentBundle) else bundle_from_user_data(user_data)
        doc = assemble(kind, bundle=bundle, profile=profile, now=now, settings=settings)
        target_dir = Path(output_dir or settings.documents.output_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / doc.filename
        path.write_bytes(doc.pdf_bytes)
    except Exception as exc:
        logger.error("Error generating document %r: %s", kind, exc, exc_info=True)
        return DocumentResult(success=False, status="fallback", error=str(exc))

    logger.info("Document written: %s (%d page(s))", path, doc.page_count)
    return DocumentResult(success=True, status="success", path=path, document=doc)
