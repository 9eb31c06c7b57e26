"""
layout.py – Page layout engine
==============================
Turns a flat list of content blocks into pages of positioned draw
operations. Nothing here touches a PDF canvas: ``documents.render_pdf``
replays the operations, and the tests inspect them directly.

Coordinates are millimetres from the top-left corner of an A4 page.
Text ``y`` is the baseline.

Pagination
----------
The engine walks the blocks with a single cursor. Before each unit is
placed (a heading together with the first unit that follows it, one
paragraph line, one list item, one question/answer pair, one table row)
its height is measured; when ``cursor + height`` would pass
``geometry.bottom_limit`` a new page is started and the cursor goes back
to ``geometry.top``. A tracking table that continues on a new page
repeats its header row first. A unit taller than a whole page is placed
anyway at the top of a fresh page.

Text is wrapped with reportlab's own font metrics (``simpleSplit``), so
line counts match what the renderer draws.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit

logger = logging.getLogger(__name__)

FONT_NORMAL = "Helvetica"
FONT_BOLD   = "Helvetica-Bold"
FONT_ITALIC = "Helvetica-Oblique"

BULLET = "•"
TRACKING_DAYS = 14

RULE_GREY = (200, 200, 200)


# ─── Geometry ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PageGeometry:
    """A4 portrait, 15 mm side margins, 180 mm text width."""
    width:        float = 210.0
    height:       float = 297.0
    margin:       float = 15.0
    text_width:   float = 180.0
    top:          float = 20.0
    bottom_limit: float = 280.0

    @property
    def right_edge(self) -> float:
        return self.margin + self.text_width


# ─── Draw operations ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TextOp:
    x:     float
    y:     float
    text:  str
    font:  str = FONT_NORMAL
    size:  float = 12
    align: str = "left"      # "left" | "right"


@dataclass(frozen=True)
class LineOp:
    x1:     float
    y1:     float
    x2:     float
    y2:     float
    colour: tuple[int, int, int] = RULE_GREY
    width:  float = 0.2


@dataclass(frozen=True)
class RectOp:
    x:          float
    y:          float
    w:          float
    h:          float
    line_width: float = 0.5


DrawOp = Union[TextOp, LineOp, RectOp]


@dataclass
class Page:
    number:       int
    ops:          list[DrawOp] = field(default_factory=list)
    break_reason: Optional[str] = None   # which unit forced this page; None for page 1

    def texts(self) -> list[str]:
        return [op.text for op in self.ops if isinstance(op, TextOp)]


# ─── Content blocks ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Title:
    text: str


@dataclass(frozen=True)
class Subtitle:
    text: str


@dataclass(frozen=True)
class Timestamp:
    """Creation date, right-aligned in the top margin of the first page."""
    text: str


@dataclass(frozen=True)
class Rule:
    pass


@dataclass(frozen=True)
class Heading:
    """
    Level 1 is a section heading (bold 14, 8 mm), level 2 a sub-heading
    (bold 12, 6 mm). ``size`` and ``advance`` override the defaults for
    score lines and result titles.
    """
    text:    str
    level:   int = 1
    size:    Optional[float] = None
    advance: Optional[float] = None

    @property
    def font_size(self) -> float:
        return self.size if self.size is not None else (14 if self.level == 1 else 12)

    @property
    def height(self) -> float:
        return self.advance if self.advance is not None else (8 if self.level == 1 else 6)


@dataclass(frozen=True)
class Paragraph:
    text:        str
    size:        float = 12
    line_height: float = 5
    space_after: float = 5


@dataclass(frozen=True)
class BulletList:
    items:       tuple[str, ...]
    size:        float = 12
    line_height: float = 5
    space_after: float = 5
    indent:      float = 5


@dataclass(frozen=True)
class TrackingTable:
    """Two-week log: a 20 mm day column plus equal-width columns."""
    title:         str
    columns:       tuple[str, ...]
    rows:          int = TRACKING_DAYS
    day_width:     float = 20
    row_height:    float = 10
    header_height: float = 12
    space_before:  float = 10
    space_after:   float = 5

    def column_widths(self, text_width: float) -> list[float]:
        rest = len(self.columns) - 1
        if rest <= 0:
            return [text_width]
        return [self.day_width] + [(text_width - self.day_width) / rest] * rest


@dataclass(frozen=True)
class AnswerEcho:
    """Question text paired with the label of the chosen option."""
    pairs:         tuple[tuple[str, str], ...]
    heading:       str = "Vastauksesi:"
    answer_prefix: str = "Vastaus: "
    size:          float = 10
    line_height:   float = 4
    gap:           float = 5
    space_before:  float = 10


Block = Union[Title, Subtitle, Timestamp, Rule, Heading, Paragraph, BulletList, TrackingTable, AnswerEcho]

WrapFn = Callable[[str, str, float, float], list[str]]


def reportlab_wrap(text: str, font: str, size: float, width_mm: float) -> list[str]:
    """Wrap *text* to *width_mm* using reportlab's metrics for *font*."""
    lines = simpleSplit(text, font, size, width_mm * mm)
    return lines or [""]


# ─── Engine ──────────────────────────────────────────────────────────────────

class LayoutEngine:
    """
    Stateless between calls: ``layout(blocks)`` always starts a fresh
    document, so the same blocks always produce the same pages.
    """

    def __init__(self, geometry: PageGeometry | None = None, wrap: WrapFn | None = None):
        self.geometry = geometry or PageGeometry()
        self.wrap     = wrap or reportlab_wrap

    # ── public ───────────────────────────────────────────────────────────────

    def layout(self, blocks: list[Block]) -> list[Page]:
        self._pages:  list[Page] = [Page(number=1)]
        self._cursor: float = self.geometry.top
        for i, block in enumerate(blocks):
            following = blocks[i + 1] if i + 1 < len(blocks) else None
            self._place(block, following)
        pages, self._pages = self._pages, []
        logger.debug("Laid out %d blocks on %d page(s)", len(blocks), len(pages))
        return pages

    # ── cursor & page handling ───────────────────────────────────────────────

    @property
    def _page(self) -> Page:
        return self._pages[-1]

    def _new_page(self, reason: str) -> None:
        self._pages.append(Page(number=len(self._pages) + 1, break_reason=reason))
        self._cursor = self.geometry.top

    def _ensure_room(self, height: float, reason: str) -> bool:
        """Start a new page when *height* does not fit; True if a break happened."""
        at_top = self._cursor <= self.geometry.top
        if self._cursor + height > self.geometry.bottom_limit and not at_top:
            self._new_page(reason)
            return True
        return False

    def _emit(self, op: DrawOp) -> None:
        self._page.ops.append(op)

    # ── measurement ──────────────────────────────────────────────────────────

    def _lines(self, text: str, font: str, size: float, width: float | None = None) -> list[str]:
        return self.wrap(text, font, size, width if width is not None else self.geometry.text_width)

    def _bullet_lines(self, block: BulletList, item: str) -> list[str]:
        return self._lines(f"{BULLET} {item}", FONT_NORMAL, block.size,
                           self.geometry.text_width - block.indent)

    def _pair_lines(self, block: AnswerEcho, question: str, answer: str) -> tuple[list[str], list[str]]:
        return (
            self._lines(question, FONT_BOLD, block.size),
            self._lines(f"{block.answer_prefix}{answer}", FONT_NORMAL, block.size),
        )

    def _first_unit_height(self, block: Optional[Block]) -> float:
        """Height of the first indivisible unit of *block* (keep-with-next)."""
        if isinstance(block, Heading):
            return block.height
        if isinstance(block, Paragraph):
            return block.line_height
        if isinstance(block, BulletList) and block.items:
            return len(self._bullet_lines(block, block.items[0])) * block.line_height
        if isinstance(block, TrackingTable):
            return block.space_before + 8 + block.header_height + block.row_height
        if isinstance(block, AnswerEcho):
            return block.space_before + 8
        return 0.0

    # ── placement ────────────────────────────────────────────────────────────

    def _place(self, block: Block, following: Optional[Block]) -> None:
        g = self.geometry
        if isinstance(block, Title):
            self._emit(TextOp(g.margin, self._cursor, block.text, FONT_BOLD, 20))
            self._cursor += 10
        elif isinstance(block, Subtitle):
            self._emit(TextOp(g.margin, self._cursor, block.text, FONT_ITALIC, 10))
            self._cursor += 5
        elif isinstance(block, Timestamp):
            self._pages[0].ops.append(TextOp(g.right_edge, g.top, block.text, FONT_NORMAL, 10, "right"))
            self._cursor += 5
        elif isinstance(block, Rule):
            self._emit(LineOp(g.margin, self._cursor, g.right_edge, self._cursor))
            self._cursor += 10
        elif isinstance(block, Heading):
            self._place_heading(block, following)
        elif isinstance(block, Paragraph):
            self._place_paragraph(block)
        elif isinstance(block, BulletList):
            self._place_list(block)
        elif isinstance(block, TrackingTable):
            self._place_table(block)
        elif isinstance(block, AnswerEcho):
            self._place_answers(block)
        else:
            raise TypeError(f"Unsupported layout block: {type(block).__name__}")

    def _place_heading(self, block: Heading, following: Optional[Block]) -> None:
        self._ensure_room(block.height + self._first_unit_height(following), "heading")
        self._emit(TextOp(self.geometry.margin, self._cursor, block.text, FONT_BOLD, block.font_size))
        self._cursor += block.height

    def _place_paragraph(self, block: Paragraph) -> None:
        for line in self._lines(block.text, FONT_NORMAL, block.size):
            self._ensure_room(block.line_height, "paragraph")
            if line:
                self._emit(TextOp(self.geometry.margin, self._cursor, line, FONT_NORMAL, block.size))
            self._cursor += block.line_height
        self._cursor += block.space_after

    def _place_list(self, block: BulletList) -> None:
        x = self.geometry.margin + block.indent
        for item in block.items:
            lines = self._bullet_lines(block, item)
            self._ensure_room(len(lines) * block.line_height, "list-item")
            for n, line in enumerate(lines):
                self._emit(TextOp(x, self._cursor + n * block.line_height, line, FONT_NORMAL, block.size))
            self._cursor += len(lines) * block.line_height
        self._cursor += block.space_after

    def _place_answers(self, block: AnswerEcho) -> None:
        g = self.geometry
        self._cursor += block.space_before
        self._ensure_room(8, "answers")
        self._emit(TextOp(g.margin, self._cursor, block.heading, FONT_BOLD, 12))
        self._cursor += 8
        for question, answer in block.pairs:
            q_lines, a_lines = self._pair_lines(block, question, answer)
            height = (len(q_lines) + len(a_lines)) * block.line_height + block.gap
            self._ensure_room(height, "answer")
            for n, line in enumerate(q_lines):
                self._emit(TextOp(g.margin, self._cursor + n * block.line_height, line, FONT_BOLD, block.size))
            self._cursor += len(q_lines) * block.line_height
            for n, line in enumerate(a_lines):
                self._emit(TextOp(g.margin + 5, self._cursor + n * block.line_height,
                                  line, FONT_NORMAL, block.size))
            self._cursor += len(a_lines) * block.line_height + block.gap

    def _table_header(self, block: TrackingTable, widths: list[float]) -> None:
        x = self.geometry.margin
        for title, w in zip(block.columns, widths):
            self._emit(RectOp(x, self._cursor, w, block.header_height))
            self._emit(TextOp(x + 2, self._cursor + 7, title, FONT_BOLD, 10))
            x += w
        self._cursor += block.header_height

    def _place_table(self, block: TrackingTable) -> None:
        g = self.geometry
        widths = block.column_widths(g.text_width)
        self._cursor += block.space_before
        # title, header and the first row stay together
        self._ensure_room(8 + block.header_height + block.row_height, "table")
        self._emit(TextOp(g.margin, self._cursor, block.title, FONT_BOLD, 12))
        self._cursor += 8
        self._table_header(block, widths)

        for day in range(1, block.rows + 1):
            if self._ensure_room(block.row_height, "table-row"):
                self._table_header(block, widths)
            x = g.margin
            self._emit(RectOp(x, self._cursor, widths[0], block.row_height))
            self._emit(TextOp(x + 8, self._cursor + 7, str(day), FONT_NORMAL, 10))
            x += widths[0]
            for w in widths[1:]:
                self._emit(RectOp(x, self._cursor, w, block.row_height))
                x += w
            self._cursor += block.row_height
        self._cursor += block.space_after
