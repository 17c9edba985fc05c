"""
PDF layouts for maintenance requests.

Two documents are produced, both rendered fully into memory:

* the detail report, one request on an A4 portrait page (long field values
  and descriptions overflow onto further pages);
* the table report, many requests on A4 landscape pages with the column
  header repeated on every page.

Layout code works in "top" coordinates (distance from the top edge of the
page, growing downwards) and converts to ReportLab's bottom-up coordinates
only when drawing. Every ``_draw_*`` helper takes the current cursor and
returns the next one.
"""
import logging
import math
import os
from dataclasses import dataclass
from datetime import datetime
from io import BytesIO
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from records import RequestRecord, format_timestamp

logger = logging.getLogger(__name__)

# ---------------------------
# Config
# ---------------------------
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
FONT_PATH = os.environ.get("PDF_FONT_PATH", os.path.join(BASE_DIR, "Amiri-Regular.ttf"))
SCRIPT_FONT_NAME = "Arabic"

NAVY = "#040476"
WHITE = "#FFFFFF"
LABEL_GREY = "#666666"
FOOTER_GREY = "#999999"
BLACK = "#000000"
SECTION_BAND = "#F0F4FF"
STRIPE_EVEN = "#FFFFFF"
STRIPE_ODD = "#F5F7FA"

# Detail report
DETAIL_PAGE = A4
DETAIL_MARGIN = 50
BANNER_HEIGHT = 100
BADGE_WIDTH = 100
BADGE_HEIGHT = 25
BADGE_RADIUS = 5
BADGE_TEXT_WIDTH = BADGE_WIDTH - 15
BADGE_FONT_SIZE = 10
BADGE_MIN_FONT_SIZE = 6
FIELD_STEP = 20
VALUE_OFFSET = 120
TEXT_LEADING = 12
DETAIL_FOOTER_OFFSET = 30

# Table report
TABLE_PAGE = landscape(A4)
TABLE_MARGIN = 40
TABLE_TITLE_TOP = 30
TABLE_SUBTITLE_TOP = 55
TABLE_HEADER_TOP = 85
HEADER_HEIGHT = 25
ROW_HEIGHT = 20
CELL_PADDING = 5
FOOTER_RESERVE = 100
TABLE_FOOTER_OFFSET = 25

TABLE_COLUMNS: Tuple[Tuple[str, int], ...] = (
    ("Request #", 75),
    ("Status", 70),
    ("College", 120),
    ("Dept", 85),
    ("Location", 85),
    ("Description", 176),
    ("Date", 80),
    ("Amount", 70),
)


# ---------------------------
# Fonts
# ---------------------------
@dataclass(frozen=True)
class FontSet:
    regular: str
    bold: str


LATIN_FONTS = FontSet("Helvetica", "Helvetica-Bold")
SCRIPT_FONTS = FontSet(SCRIPT_FONT_NAME, SCRIPT_FONT_NAME)


def register_script_font(path: str = FONT_PATH) -> bool:
    """Register the bundled script font if it is on disk. Returns availability."""
    if not os.path.exists(path):
        logger.warning("Script font not found at %s; using Helvetica for all text", path)
        return False
    try:
        pdfmetrics.registerFont(TTFont(SCRIPT_FONT_NAME, path))
    except Exception:
        logger.exception("Could not load script font %s; using Helvetica for all text", path)
        return False
    logger.info("Script font loaded from %s", path)
    return True


# Resolved once per process; never re-checked per request.
ARABIC_FONT_AVAILABLE = register_script_font()
DEFAULT_FONTS = SCRIPT_FONTS if ARABIC_FONT_AVAILABLE else LATIN_FONTS


# ---------------------------
# Canvas with "Page X of N" footers
# ---------------------------
class NumberedCanvas(canvas.Canvas):
    """
    Canvas that defers page output until save() so a footer callback can be
    told the final page count. Callers must showPage() after the last page.
    """

    def __init__(self, *args, footer: Optional[Callable] = None, **kwargs):
        canvas.Canvas.__init__(self, *args, **kwargs)
        self._saved_page_states = []
        self._footer = footer

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        page_count = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            if self._footer is not None:
                self.saveState()
                self._footer(self, self._pageNumber, page_count)
                self.restoreState()
            canvas.Canvas.showPage(self)
        canvas.Canvas.save(self)

    @property
    def page_count(self) -> int:
        return len(self._saved_page_states)


# ---------------------------
# Drawing helpers
# ---------------------------
def _baseline(page_height: float, top: float, size: float) -> float:
    """ReportLab baseline for text whose box starts ``top`` points from the page top."""
    return page_height - top - size * 0.8


def _fill_rect(c, page_height, x, top, width, height, color):
    c.setFillColor(colors.HexColor(color))
    c.rect(x, page_height - top - height, width, height, stroke=0, fill=1)


def _text(c, page_height, text, x, top, font, size, color):
    c.setFont(font, size)
    c.setFillColor(colors.HexColor(color))
    c.drawString(x, _baseline(page_height, top, size), text)


def _clipped_text(c, page_height, text, x, top, width, box_height, font, size, color):
    """Single-line text, clipped to ``width`` so it never spills into the next column."""
    c.saveState()
    path = c.beginPath()
    path.rect(x, page_height - top - box_height, width, box_height)
    c.clipPath(path, stroke=0, fill=0)
    _text(c, page_height, text, x, top, font, size, color)
    c.restoreState()


# ---------------------------
# Detail report
# ---------------------------
def _detail_footer(generated: str, fonts: FontSet):
    width, height = DETAIL_PAGE

    def draw(c, page_number, page_count):
        c.setFont(fonts.regular, 8)
        c.setFillColor(colors.HexColor(FOOTER_GREY))
        y = _baseline(height, height - DETAIL_FOOTER_OFFSET, 8)
        c.drawCentredString(width / 2, y, f"Page {page_number} of {page_count}")
        c.drawString(DETAIL_MARGIN, y, f"Generated: {generated}")

    return draw


def _draw_banner(c, record: RequestRecord, fonts: FontSet) -> float:
    width, height = DETAIL_PAGE
    _fill_rect(c, height, 0, 0, width, BANNER_HEIGHT, NAVY)
    c.setFillColor(colors.HexColor(WHITE))
    c.setFont(fonts.bold, 22)
    c.drawCentredString(width / 2, _baseline(height, 30, 22), "Request Details")
    c.setFont(fonts.regular, 12)
    c.drawCentredString(width / 2, _baseline(height, 60, 12), f"Request #: {record.request_number}")
    return 130


def badge_font_size(label: str, font: str, width: float = BADGE_TEXT_WIDTH) -> float:
    """Largest size, from 10pt down to 6pt, at which ``label`` fits ``width``."""
    text_width = pdfmetrics.stringWidth(label, font, BADGE_FONT_SIZE)
    if text_width <= width:
        return BADGE_FONT_SIZE
    # stringWidth scales linearly with size; round down so the fit holds.
    size = math.floor(BADGE_FONT_SIZE * width / text_width * 10) / 10
    return max(BADGE_MIN_FONT_SIZE, size)


def _draw_status_badge(c, record: RequestRecord, fonts: FontSet, y: float) -> float:
    height = DETAIL_PAGE[1]
    label = record.status_label
    size = badge_font_size(label, fonts.bold)
    c.setFillColor(colors.HexColor(record.status.color))
    c.roundRect(DETAIL_MARGIN, height - y - BADGE_HEIGHT, BADGE_WIDTH, BADGE_HEIGHT,
                BADGE_RADIUS, stroke=0, fill=1)
    # Labels still too wide at the minimum size are clipped to the badge.
    _clipped_text(c, height, label, DETAIL_MARGIN + 10, y + 8 + (BADGE_FONT_SIZE - size) / 2,
                  BADGE_TEXT_WIDTH, BADGE_HEIGHT - 8, fonts.bold, size, WHITE)
    return y + 40


def _draw_section_header(c, title: str, fonts: FontSet, y: float) -> float:
    width, height = DETAIL_PAGE
    content_width = width - 2 * DETAIL_MARGIN
    _fill_rect(c, height, DETAIL_MARGIN, y, content_width, 20, SECTION_BAND)
    _text(c, height, title, DETAIL_MARGIN + 5, y + 6, fonts.bold, 12, NAVY)
    return y + 30


def _draw_fields(c, fields: Sequence[Tuple[str, str]], fonts: FontSet, y: float) -> float:
    width, height = DETAIL_PAGE
    value_width = width - 2 * DETAIL_MARGIN - VALUE_OFFSET
    bottom_limit = height - DETAIL_MARGIN
    for label, value in fields:
        if y + FIELD_STEP > bottom_limit:
            c.showPage()
            y = DETAIL_MARGIN
        _text(c, height, label, DETAIL_MARGIN, y, fonts.bold, 10, LABEL_GREY)
        line_top = y
        for line in simpleSplit(value, fonts.regular, 10, value_width) or [""]:
            if line_top + TEXT_LEADING > bottom_limit:
                c.showPage()
                line_top = y = DETAIL_MARGIN
            _text(c, height, line, DETAIL_MARGIN + VALUE_OFFSET, line_top,
                  fonts.regular, 10, BLACK)
            line_top += TEXT_LEADING
        y = max(y + FIELD_STEP, line_top + 8)
    return y + 10


def description_lines(text: str, fonts: FontSet, width: float) -> List[str]:
    return simpleSplit(text, fonts.regular, 10, width) or [""]


def _draw_description(c, record: RequestRecord, fonts: FontSet, y: float) -> float:
    width, height = DETAIL_PAGE
    content_width = width - 2 * DETAIL_MARGIN
    bottom_limit = height - DETAIL_MARGIN

    if y + 15 + TEXT_LEADING > bottom_limit:
        c.showPage()
        y = DETAIL_MARGIN
    _text(c, height, "Issue Description:", DETAIL_MARGIN, y, fonts.bold, 10, LABEL_GREY)
    y += 15

    for line in description_lines(record.description, fonts, content_width):
        if y + TEXT_LEADING > bottom_limit:
            c.showPage()
            y = DETAIL_MARGIN
        _text(c, height, line, DETAIL_MARGIN, y, fonts.regular, 10, BLACK)
        y += TEXT_LEADING
    return y + 20


def render_detail_report(data: Mapping, fonts: Optional[FontSet] = None,
                         now: Optional[datetime] = None) -> bytes:
    """Render the single-request detail sheet and return the PDF bytes."""
    fonts = fonts or DEFAULT_FONTS
    generated = format_timestamp(now or datetime.now())
    record = RequestRecord(data)

    buffer = BytesIO()
    c = NumberedCanvas(buffer, pagesize=DETAIL_PAGE, footer=_detail_footer(generated, fonts))
    c.setTitle(f"Request {record.request_number}")

    y = _draw_banner(c, record, fonts)
    y = _draw_status_badge(c, record, fonts, y)
    y = _draw_section_header(c, "Basic Information", fonts, y)
    y = _draw_fields(c, record.detail_fields(), fonts, y)
    _draw_description(c, record, fonts, y)

    c.showPage()
    c.save()
    logger.debug("Detail report for %s: %d page(s)", record.request_number, c.page_count)
    return buffer.getvalue()


# ---------------------------
# Table report: layout plan
# ---------------------------
@dataclass(frozen=True)
class HeaderPlacement:
    page: int
    top: float


@dataclass(frozen=True)
class RowPlacement:
    index: int
    page: int
    top: float


@dataclass(frozen=True)
class TablePlan:
    headers: Tuple[HeaderPlacement, ...]
    rows: Tuple[RowPlacement, ...]

    @property
    def page_count(self) -> int:
        return len(self.headers)


def row_fill(index: int) -> str:
    """Stripe colour for the record at ``index`` in the full input list."""
    return STRIPE_EVEN if index % 2 == 0 else STRIPE_ODD


def plan_table_layout(row_count: int, page_height: float = TABLE_PAGE[1],
                      margin: float = TABLE_MARGIN,
                      header_top: float = TABLE_HEADER_TOP) -> TablePlan:
    """
    Decide where each header and data row goes without drawing anything.

    Before each row the cursor is checked against the reserved footer space;
    past it, a new page starts at the top margin with its own header row.
    """
    page = 0
    headers = [HeaderPlacement(page, header_top)]
    cursor = header_top + HEADER_HEIGHT
    rows = []
    for index in range(row_count):
        if cursor > page_height - FOOTER_RESERVE:
            page += 1
            headers.append(HeaderPlacement(page, margin))
            cursor = margin + HEADER_HEIGHT
        rows.append(RowPlacement(index, page, cursor))
        cursor += ROW_HEIGHT
    return TablePlan(tuple(headers), tuple(rows))


# ---------------------------
# Table report: drawing
# ---------------------------
def _table_footer(fonts: FontSet):
    width, height = TABLE_PAGE

    def draw(c, page_number, page_count):
        c.setFont(fonts.regular, 8)
        c.setFillColor(colors.HexColor(FOOTER_GREY))
        c.drawCentredString(width / 2, _baseline(height, height - TABLE_FOOTER_OFFSET, 8),
                            f"Page {page_number} of {page_count}")

    return draw


def _draw_table_title(c, generated: str, fonts: FontSet):
    height = TABLE_PAGE[1]
    _text(c, height, "Maintenance Requests Report", TABLE_MARGIN, TABLE_TITLE_TOP,
          fonts.bold, 18, NAVY)
    _text(c, height, f"Generated: {generated}", TABLE_MARGIN, TABLE_SUBTITLE_TOP,
          fonts.regular, 10, LABEL_GREY)


def _draw_table_header(c, top: float, fonts: FontSet) -> float:
    width, height = TABLE_PAGE
    _fill_rect(c, height, TABLE_MARGIN, top, width - 2 * TABLE_MARGIN, HEADER_HEIGHT, NAVY)
    x = TABLE_MARGIN + CELL_PADDING
    for label, column_width in TABLE_COLUMNS:
        _clipped_text(c, height, label, x, top + 8, column_width - 2 * CELL_PADDING,
                      HEADER_HEIGHT - 8, fonts.bold, 9, WHITE)
        x += column_width
    return top + HEADER_HEIGHT


def _draw_table_row(c, placement: RowPlacement, record: RequestRecord, fonts: FontSet) -> float:
    width, height = TABLE_PAGE
    _fill_rect(c, height, TABLE_MARGIN, placement.top, width - 2 * TABLE_MARGIN, ROW_HEIGHT,
               row_fill(placement.index))
    x = TABLE_MARGIN + CELL_PADDING
    for text, (_, column_width) in zip(record.table_cells(), TABLE_COLUMNS):
        _clipped_text(c, height, text, x, placement.top + 6, column_width - 2 * CELL_PADDING,
                      ROW_HEIGHT - 6, fonts.regular, 8, BLACK)
        x += column_width
    return placement.top + ROW_HEIGHT


def render_table_report(requests: Sequence[Mapping], fonts: Optional[FontSet] = None,
                        now: Optional[datetime] = None) -> bytes:
    """Render the paginated requests table and return the PDF bytes."""
    if not isinstance(requests, (list, tuple)):
        raise TypeError(f"requests must be a list, got {type(requests).__name__}")

    fonts = fonts or DEFAULT_FONTS
    generated = format_timestamp(now or datetime.now())
    plan = plan_table_layout(len(requests))
    header_tops: Dict[int, float] = {h.page: h.top for h in plan.headers}

    buffer = BytesIO()
    c = NumberedCanvas(buffer, pagesize=TABLE_PAGE, footer=_table_footer(fonts))
    c.setTitle("Maintenance Requests Report")

    _draw_table_title(c, generated, fonts)
    current_page = 0
    _draw_table_header(c, header_tops[current_page], fonts)

    for placement in plan.rows:
        if placement.page != current_page:
            c.showPage()
            current_page = placement.page
            _draw_table_header(c, header_tops[current_page], fonts)
        data = requests[placement.index]
        if not isinstance(data, Mapping):
            raise TypeError(f"request at index {placement.index} is not an object")
        _draw_table_row(c, placement, RequestRecord(data), fonts)

    c.showPage()
    c.save()
    logger.debug("Table report: %d row(s) on %d page(s)", len(plan.rows), plan.page_count)
    return buffer.getvalue()
