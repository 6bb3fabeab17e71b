from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from html.parser import HTMLParser
from xml.sax.saxutils import escape

import markdown2
from reportlab.lib import colors
from reportlab.lib.enums import TA_LEFT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, StyleSheet1, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import (
    Flowable,
    HRFlowable,
    Paragraph,
    Preformatted,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from noteshelf.domain.schemas import ExportOptions

logger = logging.getLogger("noteshelf.export")

DEFAULT_CONTENT_WIDTH = A4[0] - 36 * mm

MARKDOWN_EXTRAS = ["fenced-code-blocks", "tables", "strike", "task_list"]

_HEADINGS = {"h1", "h2", "h3", "h4", "h5", "h6"}
_INLINE_TAGS = {
    "strong": "b",
    "b": "b",
    "em": "i",
    "i": "i",
    "u": "u",
    "del": "strike",
    "s": "strike",
    "strike": "strike",
    "sup": "super",
    "sub": "sub",
}


@dataclass(frozen=True)
class Palette:
    background: colors.Color | None
    text: colors.Color
    muted: colors.Color
    link: colors.Color
    rule: colors.Color
    table_border: colors.Color
    table_header: colors.Color
    code: colors.Color


PALETTES = {
    "light": Palette(
        background=None,
        text=colors.HexColor("#111827"),
        muted=colors.HexColor("#6b7280"),
        link=colors.HexColor("#1d4ed8"),
        rule=colors.HexColor("#d1d5db"),
        table_border=colors.HexColor("#374151"),
        table_header=colors.HexColor("#e5e7eb"),
        code=colors.HexColor("#7c2d12"),
    ),
    "dark": Palette(
        background=colors.HexColor("#111827"),
        text=colors.HexColor("#f3f4f6"),
        muted=colors.HexColor("#9ca3af"),
        link=colors.HexColor("#60a5fa"),
        rule=colors.HexColor("#4b5563"),
        table_border=colors.HexColor("#6b7280"),
        table_header=colors.HexColor("#1f2937"),
        code=colors.HexColor("#fdba74"),
    ),
}


def format_timestamp(dt: datetime) -> str:
    dt = dt.astimezone(timezone.utc)
    return f"{dt:%b} {dt.day}, {dt:%Y %H:%M} UTC"


def build_styles(palette: Palette) -> StyleSheet1:
    base = getSampleStyleSheet()
    sheet = StyleSheet1()
    body = ParagraphStyle(
        "body", parent=base["BodyText"], textColor=palette.text, fontSize=10.5, leading=14, spaceAfter=6
    )
    sheet.add(body)
    for level in range(1, 7):
        sheet.add(
            ParagraphStyle(
                f"h{level}",
                parent=base[f"Heading{level}"],
                textColor=palette.text,
                alignment=TA_LEFT,
            )
        )
    sheet.add(ParagraphStyle("bullet", parent=body, spaceAfter=2, bulletFontName="Helvetica"))
    sheet.add(
        ParagraphStyle(
            "quote",
            parent=body,
            leftIndent=12,
            textColor=palette.muted,
            fontName="Helvetica-Oblique",
        )
    )
    sheet.add(
        ParagraphStyle(
            "code",
            parent=base["Code"],
            textColor=palette.code,
            fontSize=8.5,
            leading=11,
            leftIndent=8,
            spaceBefore=4,
            spaceAfter=8,
        )
    )
    sheet.add(ParagraphStyle("cell", parent=body, fontSize=9.5, leading=12, spaceAfter=0))
    sheet.add(ParagraphStyle("cell_header", parent=sheet["cell"], fontName="Helvetica-Bold"))
    sheet.add(ParagraphStyle("meta", parent=body, textColor=palette.muted, fontSize=9, spaceAfter=10))
    return sheet


@dataclass
class _ListState:
    ordered: bool
    counter: int = 0


@dataclass
class _TableState:
    rows: list[list[str]]
    header_rows: int = 0
    cell: list[str] | None = None
    row_is_header: bool = False


class MarkdownFlowables(HTMLParser):
    """Turns markdown2 HTML output into reportlab flowables.

    Inline markup is translated to the paragraph mini-language reportlab
    understands; block elements become paragraphs, tables, rules and
    preformatted code.
    """

    def __init__(self, styles: StyleSheet1, palette: Palette, content_width: float = DEFAULT_CONTENT_WIDTH) -> None:
        super().__init__(convert_charrefs=True)
        self.styles = styles
        self.palette = palette
        self.content_width = content_width
        self.flowables: list[Flowable] = []
        self._buf: list[str] | None = None
        self._style = "body"
        self._bullet: str | None = None
        self._lists: list[_ListState] = []
        self._quote_depth = 0
        self._pre: list[str] | None = None
        self._table: _TableState | None = None
        # Open inline tags of the current block as (html tag, closing markup).
        self._inline: list[tuple[str, str]] = []

    # block helpers

    def _open(self, style: str, bullet: str | None = None) -> None:
        self._flush()
        self._buf = []
        self._style = style
        self._bullet = bullet

    def _flush(self) -> None:
        if self._buf is None:
            self._inline = []
            return
        self._buf.append(self._close_inline())
        markup = "".join(self._buf).strip()
        style = self.styles[self._style]
        bullet = self._bullet
        self._buf = None
        self._bullet = None
        if not markup:
            return
        if bullet is not None:
            depth = max(len(self._lists), 1)
            style = ParagraphStyle(
                f"bullet{depth}",
                parent=style,
                leftIndent=14 * depth,
                bulletIndent=14 * depth - 10,
            )
        self.flowables.append(Paragraph(markup, style, bulletText=bullet))

    def _text_style(self) -> str:
        return "quote" if self._quote_depth else "body"

    def _emit(self, markup: str) -> None:
        if self._table is not None and self._table.cell is not None:
            self._table.cell.append(markup)
            return
        if self._buf is None:
            if not markup.strip():
                return
            self._open(self._text_style())
        assert self._buf is not None
        self._buf.append(markup)

    def _push_inline(self, tag: str, opener: str, closer: str) -> None:
        self._emit(opener)
        self._inline.append((tag, closer))

    def _pop_inline(self, tag: str) -> None:
        # End tags without an opener in this block are dropped.
        if not any(open_tag == tag for open_tag, _ in self._inline):
            return
        while self._inline:
            open_tag, closer = self._inline.pop()
            self._emit(closer)
            if open_tag == tag:
                break

    def _close_inline(self) -> str:
        closers = "".join(closer for _, closer in reversed(self._inline))
        self._inline = []
        return closers

    # parser callbacks

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        attr = dict(attrs)
        if self._pre is not None:
            return

        if tag in _HEADINGS:
            self._open(tag)
        elif tag == "p":
            if self._table is not None and self._table.cell is not None:
                return
            if self._lists and self._buf is not None:
                return
            self._open(self._text_style())
        elif tag in ("ul", "ol"):
            self._flush()
            start = attr.get("start") or "1"
            counter = int(start) - 1 if start.isdigit() else 0
            self._lists.append(_ListState(ordered=tag == "ol", counter=counter))
        elif tag == "li":
            state = self._lists[-1] if self._lists else _ListState(ordered=False)
            state.counter += 1
            bullet = f"{state.counter}." if state.ordered else "•"
            self._open("bullet", bullet=bullet)
        elif tag == "blockquote":
            self._flush()
            self._quote_depth += 1
        elif tag == "pre":
            self._flush()
            self._pre = []
        elif tag == "hr":
            self._flush()
            self.flowables.append(
                HRFlowable(width="100%", thickness=0.6, color=self.palette.rule, spaceBefore=4, spaceAfter=8)
            )
        elif tag == "table":
            self._flush()
            self._table = _TableState(rows=[])
        elif tag == "tr" and self._table is not None:
            self._table.rows.append([])
            self._table.row_is_header = False
        elif tag in ("th", "td") and self._table is not None:
            self._table.cell = []
            self._inline = []
            if tag == "th":
                self._table.row_is_header = True
        elif tag == "br":
            self._emit("<br/>")
        elif tag == "a":
            href = escape(attr.get("href") or "", {'"': "&quot;"})
            color = self.palette.link.hexval()[2:]
            self._push_inline("a", f'<a href="{href}" color="#{color}"><u>', "</u></a>")
        elif tag == "code":
            self._push_inline("code", '<font face="Courier">', "</font>")
        elif tag == "img":
            alt = attr.get("alt") or attr.get("src") or "image"
            self._emit(escape(f"[{alt}]"))
        elif tag == "input" and (attr.get("type") or "").lower() == "checkbox":
            self._emit("[x] " if "checked" in attr else "[ ] ")
        elif tag in _INLINE_TAGS:
            name = _INLINE_TAGS[tag]
            self._push_inline(tag, f"<{name}>", f"</{name}>")

    def handle_endtag(self, tag: str) -> None:
        if self._pre is not None:
            if tag == "pre":
                text = "".join(self._pre).rstrip("\n")
                self._pre = None
                self.flowables.append(Preformatted(text, self.styles["code"], maxLineLength=96))
            return

        if tag in _HEADINGS or tag == "li":
            self._flush()
        elif tag == "p":
            if self._table is not None and self._table.cell is not None:
                return
            if self._lists:
                self._emit(" ")
                return
            self._flush()
        elif tag in ("ul", "ol"):
            self._flush()
            if self._lists:
                self._lists.pop()
        elif tag == "blockquote":
            self._flush()
            self._quote_depth = max(self._quote_depth - 1, 0)
        elif tag in ("th", "td") and self._table is not None and self._table.cell is not None:
            self._table.cell.append(self._close_inline())
            if self._table.rows:
                self._table.rows[-1].append("".join(self._table.cell).strip())
            self._table.cell = None
        elif tag == "tr" and self._table is not None:
            if self._table.row_is_header and len(self._table.rows) == self._table.header_rows + 1:
                self._table.header_rows += 1
        elif tag == "table" and self._table is not None:
            table = self._table
            self._table = None
            flowable = self._build_table(table)
            if flowable is not None:
                self.flowables.append(flowable)
        elif tag == "a" or tag == "code" or tag in _INLINE_TAGS:
            self._pop_inline(tag)

    def handle_data(self, data: str) -> None:
        if self._pre is not None:
            self._pre.append(data)
            return
        self._emit(escape(data))

    def close(self) -> None:
        super().close()
        self._flush()

    def _build_table(self, table: _TableState) -> Flowable | None:
        rows = [r for r in table.rows if r]
        if not rows:
            return None
        width = max(len(r) for r in rows)
        data = []
        for idx, row in enumerate(rows):
            style = self.styles["cell_header"] if idx < table.header_rows else self.styles["cell"]
            cells = row + [""] * (width - len(row))
            data.append([Paragraph(c, style) for c in cells])
        commands = [
            ("GRID", (0, 0), (-1, -1), 0.6, self.palette.table_border),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("LEFTPADDING", (0, 0), (-1, -1), 6),
            ("RIGHTPADDING", (0, 0), (-1, -1), 6),
        ]
        if table.header_rows:
            commands.append(("BACKGROUND", (0, 0), (-1, table.header_rows - 1), self.palette.table_header))
        col_width = self.content_width / width
        flowable = Table(
            data,
            colWidths=[col_width] * width,
            repeatRows=table.header_rows,
            splitInRow=1,
            hAlign="LEFT",
        )
        flowable.setStyle(TableStyle(commands))
        return flowable


def markdown_to_flowables(
    markdown: str, styles: StyleSheet1, palette: Palette, content_width: float = DEFAULT_CONTENT_WIDTH
) -> list[Flowable]:
    html = markdown2.markdown(markdown, extras=MARKDOWN_EXTRAS)
    parser = MarkdownFlowables(styles, palette, content_width)
    parser.feed(html)
    parser.close()
    return parser.flowables


class ReportLabRenderer:
    """Paginated PDF backend for exported notes."""

    def __init__(self, *, pagesize: tuple[float, float] = A4, margin: float = 18 * mm) -> None:
        self.pagesize = pagesize
        self.margin = margin

    def render(
        self, title: str, body: str, options: ExportOptions, *, timestamp: datetime | None = None
    ) -> bytes:
        palette = PALETTES[options.theme]
        styles = build_styles(palette)

        story: list[Flowable] = []
        if options.include_timestamp and timestamp is not None:
            story.append(Paragraph(escape(f"Updated {format_timestamp(timestamp)}"), styles["meta"]))
        content_width = self.pagesize[0] - 2 * self.margin
        story.extend(markdown_to_flowables(body, styles, palette, content_width))
        if not story:
            story.append(Spacer(1, 1))

        def decorate(canvas, doc) -> None:
            width, height = self.pagesize
            canvas.saveState()
            if palette.background is not None:
                canvas.setFillColor(palette.background)
                canvas.rect(0, 0, width, height, stroke=0, fill=1)
            canvas.setFillColor(palette.muted)
            canvas.setFont("Helvetica", 8)
            canvas.drawString(self.margin, height - self.margin / 2, title[:120])
            canvas.drawRightString(width - self.margin, self.margin / 2, f"Page {doc.page}")
            canvas.restoreState()

        buf = io.BytesIO()
        doc = SimpleDocTemplate(
            buf,
            pagesize=self.pagesize,
            leftMargin=self.margin,
            rightMargin=self.margin,
            topMargin=self.margin,
            bottomMargin=self.margin,
            title=title,
            creator="noteshelf",
        )
        doc.build(story, onFirstPage=decorate, onLaterPages=decorate)
        data = buf.getvalue()
        logger.debug("render_complete", extra={"bytes": len(data), "flowables": len(story)})
        return data
