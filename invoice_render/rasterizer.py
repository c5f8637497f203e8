"""
DocumentRasterizer -- invoice markup -> paginated PDF bytes.

Responsibility:
    Lays out the markup produced by DocumentRenderer with reportlab
    platypus and returns the PDF bytes plus page count.

Architecture position:
    Render layer -- imperative shell.  One RenderingPool per worker
    process; every call leases a RenderingContext and opens a fresh
    RenderingSurface.

Invariants enforced:
    - The surface is closed on every exit path.
    - A context is returned to the pool only after a successful render.
      After an engine error or a timeout it is discarded; the pool
      creates a replacement on a later acquire.
    - Output is deterministic for identical markup (reportlab invariant
      mode: fixed creation date and document id).
    - The footer section is drawn in the bottom margin of every page, so
      it never pushes content onto a page of its own.

Failure modes:
    - RasterizationError: malformed markup or an engine failure.
    - RasterizationTimeoutError: the render did not finish in time.
    - RenderingEngineUnavailableError: no context could be created or
      leased within the acquire timeout.
"""

from __future__ import annotations

import io
import itertools
import queue
import threading
import time
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from xml.sax.saxutils import escape

from lxml import etree
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT, TA_RIGHT
from reportlab.lib.pagesizes import A4, A5, landscape, legal, letter, portrait
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import (
    Image,
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from invoice_kernel.exceptions import (
    InvoiceKernelError,
    RasterizationError,
    RasterizationTimeoutError,
    RenderingEngineUnavailableError,
)
from invoice_kernel.logging_config import get_logger

logger = get_logger("render.rasterizer")

PAGE_SIZES = {
    "A4": A4,
    "A5": A5,
    "Letter": letter,
    "Legal": legal,
}

_BOLD_FONTS = {
    "Helvetica": "Helvetica-Bold",
    "Times-Roman": "Times-Bold",
    "Courier": "Courier-Bold",
}

ImageLoader = Callable[[str], bytes | None]


@dataclass(frozen=True)
class RasterizedDocument:
    content: bytes
    page_count: int


@dataclass(frozen=True)
class PageSetup:
    size: tuple[float, float]
    margins: tuple[float, float, float, float]  # top, right, bottom, left (points)
    font: str
    bold_font: str
    font_size: float
    title_size: float
    primary: colors.Color
    accent: colors.Color

    @property
    def frame_width(self) -> float:
        return self.size[0] - self.margins[1] - self.margins[3]

    @classmethod
    def from_markup(cls, root: etree._Element) -> PageSetup:
        page = root.find("page")
        style = root.find("style")
        if page is None or style is None:
            raise RasterizationError("Markup is missing <page> or <style>")

        size = PAGE_SIZES.get(page.get("size", "A4"))
        if size is None:
            raise RasterizationError(f"Unsupported page size: {page.get('size')}")
        if page.get("orientation") == "landscape":
            size = landscape(size)
        else:
            size = portrait(size)

        margins = tuple(
            float(page.get(f"margin-{side}", "20")) * mm
            for side in ("top", "right", "bottom", "left")
        )
        font = style.get("font-family", "Helvetica")
        return cls(
            size=size,
            margins=margins,
            font=font,
            bold_font=_BOLD_FONTS.get(font, font),
            font_size=float(style.get("font-size", "9")),
            title_size=float(style.get("title-size", "16")),
            primary=colors.HexColor(style.get("primary-color", "#333333")),
            accent=colors.HexColor(style.get("accent-color", "#f5f5f5")),
        )


class RenderingContext:
    """
    Long-lived engine state reused across renders.

    Holds the base stylesheet and caches derived paragraph styles per
    page setup, which is the expensive part of preparing a render.
    """

    def __init__(self, context_id: int):
        self.context_id = context_id
        self.created_at = time.monotonic()
        self.renders = 0
        self._base = getSampleStyleSheet()
        self._styles: dict[tuple, ParagraphStyle] = {}

    def style(self, setup: PageSetup, role: str) -> ParagraphStyle:
        key = (setup.font, setup.font_size, setup.title_size, setup.primary.hexval(), role)
        cached = self._styles.get(key)
        if cached is not None:
            return cached

        size = setup.font_size
        options = {"fontName": setup.font, "fontSize": size, "leading": size * 1.25}
        if role == "title":
            options.update(
                fontName=setup.bold_font,
                fontSize=setup.title_size,
                leading=setup.title_size * 1.25,
                alignment=TA_CENTER,
                textColor=setup.primary,
                spaceAfter=2 * mm,
            )
        elif role in ("heading", "subheading"):
            bump = 2 if role == "heading" else 0.5
            options.update(
                fontName=setup.bold_font,
                fontSize=size + bump,
                leading=(size + bump) * 1.25,
                textColor=setup.primary,
            )
        elif role in ("copy-label", "signatory"):
            options.update(alignment=TA_RIGHT)
        elif role == "amount-in-words":
            options.update(fontName=setup.bold_font, spaceBefore=1 * mm)
        elif role == "cell":
            options.update(fontSize=size - 1, leading=(size - 1) * 1.2, alignment=TA_LEFT)
        elif role == "cell-bold":
            options.update(
                fontName=setup.bold_font, fontSize=size - 1, leading=(size - 1) * 1.2,
            )

        style = ParagraphStyle(f"{role}-{len(self._styles)}", parent=self._base["Normal"], **options)
        self._styles[key] = style
        return style


class RenderingSurface:
    """One in-memory PDF target, opened and closed per render."""

    def __init__(self, setup: PageSetup, title: str):
        self._buffer = io.BytesIO()
        self._setup = setup
        top, right, bottom, left = setup.margins
        self._doc = SimpleDocTemplate(
            self._buffer,
            pagesize=setup.size,
            topMargin=top,
            rightMargin=right,
            bottomMargin=bottom,
            leftMargin=left,
            title=title,
            author="",
            creator="invoice_render",
            invariant=True,
        )
        self.closed = False

    def __enter__(self) -> RenderingSurface:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def draw(self, story: list, footer: str = "") -> None:
        setup = self._setup

        def page_footer(canvas, doc) -> None:
            if not footer:
                return
            canvas.saveState()
            canvas.setFont(setup.font, setup.font_size - 1)
            canvas.setFillColor(colors.grey)
            canvas.drawCentredString(setup.size[0] / 2, setup.margins[2] / 2, footer)
            canvas.restoreState()

        self._doc.build(story, onFirstPage=page_footer, onLaterPages=page_footer)

    @property
    def page_count(self) -> int:
        return self._doc.page

    def getvalue(self) -> bytes:
        return self._buffer.getvalue()

    def close(self) -> None:
        if not self.closed:
            self._buffer.close()
            self.closed = True


class RenderingPool:
    """
    Bounded pool of RenderingContexts.

    Contract:
        ``acquire()`` returns an idle context, creates one while fewer
        than ``size`` exist, or waits up to ``acquire_timeout`` seconds.
        Callers hand it back with ``release()`` or drop it with
        ``discard()``; ``lease()`` does either automatically.

    Guarantees:
        - Never more than ``size`` live contexts.
        - A discarded context frees its slot for a fresh replacement.
    """

    def __init__(
        self,
        size: int = 2,
        acquire_timeout: float = 10.0,
        context_factory: Callable[[int], RenderingContext] = RenderingContext,
    ):
        if size < 1:
            raise ValueError("Pool size must be at least 1")
        self._size = size
        self._acquire_timeout = acquire_timeout
        self._factory = context_factory
        self._idle: queue.Queue[RenderingContext] = queue.Queue()
        self._lock = threading.Lock()
        self._live = 0
        self._ids = itertools.count(1)

    @property
    def size(self) -> int:
        return self._size

    @property
    def live_contexts(self) -> int:
        with self._lock:
            return self._live

    @property
    def idle_contexts(self) -> int:
        return self._idle.qsize()

    def acquire(self) -> RenderingContext:
        try:
            return self._idle.get_nowait()
        except queue.Empty:
            pass

        with self._lock:
            create = self._live < self._size
            if create:
                self._live += 1
                context_id = next(self._ids)

        if create:
            try:
                context = self._factory(context_id)
            except Exception as exc:
                with self._lock:
                    self._live -= 1
                logger.error(
                    "rasterizer_context_create_failed",
                    extra={"context_id": context_id, "error": str(exc)},
                )
                raise RenderingEngineUnavailableError(
                    f"Could not create rendering context: {exc}"
                ) from exc
            logger.info("rasterizer_context_created", extra={"context_id": context_id})
            return context

        try:
            return self._idle.get(timeout=self._acquire_timeout)
        except queue.Empty as exc:
            raise RenderingEngineUnavailableError(
                f"No rendering context available within {self._acquire_timeout}s"
            ) from exc

    def release(self, context: RenderingContext) -> None:
        self._idle.put(context)

    def discard(self, context: RenderingContext, reason: str = "") -> None:
        with self._lock:
            self._live -= 1
        logger.warning(
            "rasterizer_context_discarded",
            extra={"context_id": context.context_id, "reason": reason},
        )

    @contextmanager
    def lease(self) -> Iterator[RenderingContext]:
        context = self.acquire()
        try:
            yield context
        except BaseException as exc:
            self.discard(context, reason=type(exc).__name__)
            raise
        self.release(context)


class DocumentRasterizer:
    """
    Markup -> PDF bytes using pooled reportlab contexts.

    Contract:
        ``rasterize(markup, timeout=None)`` returns a RasterizedDocument or
        raises one of the errors listed in the module docstring.

    Non-goals:
        - Fetching images; ``image_loader`` resolves ``<image ref>``
          elements and unresolved refs are left out of the page.
    """

    def __init__(
        self,
        pool: RenderingPool | None = None,
        timeout_seconds: float = 30.0,
        image_loader: ImageLoader | None = None,
    ):
        self._pool = pool or RenderingPool()
        self._timeout = timeout_seconds
        self._image_loader = image_loader
        # a timed-out render keeps its thread until reportlab returns
        self._executor = ThreadPoolExecutor(
            max_workers=self._pool.size * 2,
            thread_name_prefix="rasterizer",
        )

    @property
    def pool(self) -> RenderingPool:
        return self._pool

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def rasterize(self, markup: str, timeout: float | None = None) -> RasterizedDocument:
        timeout = timeout or self._timeout
        try:
            root = etree.fromstring(markup.encode("utf-8"))
        except etree.XMLSyntaxError as exc:
            raise RasterizationError(f"Malformed markup: {exc}") from exc
        if root.tag != "invoice":
            raise RasterizationError(f"Unexpected root element <{root.tag}>")

        start = time.monotonic()
        context = self._pool.acquire()
        future = self._executor.submit(self._draw, context, root)
        try:
            result = future.result(timeout=timeout)
        except TimeoutError as exc:
            self._pool.discard(context, reason="timeout")
            logger.error(
                "rasterization_timed_out",
                extra={"timeout_seconds": timeout, "invoice_number": root.get("number")},
            )
            raise RasterizationTimeoutError(timeout) from exc
        except InvoiceKernelError as exc:
            self._pool.discard(context, reason=exc.code)
            raise
        except Exception as exc:
            self._pool.discard(context, reason=type(exc).__name__)
            logger.error(
                "rasterization_failed",
                extra={"invoice_number": root.get("number"), "error": str(exc)},
            )
            raise RasterizationError(str(exc)) from exc

        context.renders += 1
        self._pool.release(context)
        logger.info(
            "invoice_rasterized",
            extra={
                "invoice_number": root.get("number"),
                "page_count": result.page_count,
                "size": len(result.content),
                "duration_ms": round((time.monotonic() - start) * 1000, 2),
            },
        )
        return result

    # -------------------------------------------------------------------------
    # Layout
    # -------------------------------------------------------------------------

    def _draw(self, context: RenderingContext, root: etree._Element) -> RasterizedDocument:
        setup = PageSetup.from_markup(root)
        story: list = []
        footer = ""
        for index, copy in enumerate(root.iterfind("copy")):
            if index:
                story.append(PageBreak())
            for section in copy.iterfind("section"):
                # drawn in the bottom margin of every page, not in the story
                if section.get("name") == "footer":
                    footer = " ".join(t.text or "" for t in section.iterfind("text"))
                    continue
                story.extend(self._section(context, setup, section))
                story.append(Spacer(1, 2 * mm))
        if not story:
            raise RasterizationError("Markup contains no copies")

        with RenderingSurface(setup, title=root.get("number", "")) as surface:
            surface.draw(story, footer=footer)
            return RasterizedDocument(content=surface.getvalue(), page_count=surface.page_count)

    def _section(self, context: RenderingContext, setup: PageSetup, section: etree._Element) -> list:
        groups = section.findall("group")
        if groups:
            width = setup.frame_width / len(groups)
            cells = [
                [Paragraph(escape(group.get("title", "")), context.style(setup, "subheading"))]
                + self._flowables(context, setup, group)
                for group in groups
            ]
            table = Table([cells], colWidths=[width] * len(groups))
            table.setStyle(TableStyle([
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("BOX", (0, 0), (-1, -1), 0.5, setup.primary),
                ("INNERGRID", (0, 0), (-1, -1), 0.5, setup.primary),
            ]))
            return [table]
        return self._flowables(context, setup, section)

    def _flowables(self, context: RenderingContext, setup: PageSetup, parent: etree._Element) -> list:
        flowables: list = []
        amounts: list[list] = []

        def flush_amounts() -> None:
            if not amounts:
                return
            table = Table(
                list(amounts),
                colWidths=[setup.frame_width * 0.3, setup.frame_width * 0.2],
                hAlign="RIGHT",
            )
            table.setStyle(TableStyle([
                ("ALIGN", (1, 0), (1, -1), "RIGHT"),
                ("LINEABOVE", (0, -1), (-1, -1), 0.75, setup.primary),
                ("FONTNAME", (0, -1), (-1, -1), setup.bold_font),
                ("FONTSIZE", (0, 0), (-1, -1), setup.font_size),
                ("TOPPADDING", (0, 0), (-1, -1), 1),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 1),
            ]))
            flowables.append(table)
            amounts.clear()

        for element in parent:
            tag = element.tag
            text = element.text or ""
            if tag == "field" and element.get("kind") == "amount":
                amounts.append([element.get("label", ""), _money(text)])
                continue
            flush_amounts()

            if tag == "heading":
                role = {"1": "title", "2": "heading"}.get(element.get("level"), "subheading")
                flowables.append(Paragraph(escape(text), context.style(setup, role)))
            elif tag == "text":
                role = element.get("role", "body")
                body = escape(text)
                if role == "term":
                    body = "&bull; " + body
                elif role == "amount-in-words":
                    body = "Amount in words: " + body
                flowables.append(Paragraph(body, context.style(setup, role)))
            elif tag == "field":
                body = f"<b>{escape(element.get('label', ''))}:</b> {escape(text)}"
                flowables.append(Paragraph(body, context.style(setup, "body")))
            elif tag == "table":
                flowables.append(self._table(context, setup, element))
            elif tag == "image":
                image = self._image(element.get("ref", ""), setup)
                if image is not None:
                    flowables.append(image)
        flush_amounts()
        return flowables

    def _table(self, context: RenderingContext, setup: PageSetup, element: etree._Element) -> Table:
        keys = [column.get("key") for column in element.iterfind("column")]
        header_style = context.style(setup, "cell-bold")
        cell_style = context.style(setup, "cell")

        data = [[Paragraph(escape(column.text or ""), header_style) for column in element.iterfind("column")]]
        for row in element.iterfind("row"):
            style = header_style if row.get("kind") == "total" else cell_style
            values = {cell.get("key"): cell.text or "" for cell in row.iterfind("cell")}
            data.append([Paragraph(escape(values.get(key, "")), style) for key in keys])

        width = setup.frame_width
        if "item" in keys and len(keys) > 1:
            other = width * 0.65 / (len(keys) - 1)
            col_widths = [width * 0.35 if key == "item" else other for key in keys]
        else:
            col_widths = [width / len(keys)] * len(keys)

        table = Table(data, colWidths=col_widths, repeatRows=1)
        commands = [
            ("BACKGROUND", (0, 0), (-1, 0), setup.accent),
            ("GRID", (0, 0), (-1, -1), 0.5, setup.primary),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("TOPPADDING", (0, 0), (-1, -1), 1.5),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 1.5),
        ]
        if element.find("row[@kind='total']") is not None:
            commands.append(("BACKGROUND", (0, -1), (-1, -1), setup.accent))
        table.setStyle(TableStyle(commands))
        return table

    def _image(self, ref: str, setup: PageSetup) -> Image | None:
        if self._image_loader is None or not ref:
            return None
        data = self._image_loader(ref)
        if data is None:
            logger.debug("invoice_image_unresolved", extra={"ref": ref})
            return None
        image = Image(io.BytesIO(data), width=setup.frame_width * 0.2, height=20 * mm, kind="proportional")
        image.hAlign = "LEFT"
        return image


def _money(value: str) -> str:
    try:
        return f"Rs. {Decimal(value):,.2f}"
    except InvalidOperation:
        return value
