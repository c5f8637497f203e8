"""
Named invoice layouts.

A LayoutSpec is pure data: which sections appear, in what order, and how
they are styled.  The renderer never branches on a layout's name, only on
the flags it carries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from invoice_kernel.logging_config import get_logger

logger = get_logger("render.layouts")

DEFAULT_LAYOUT = "classic"


class PageSize(str, Enum):
    A4 = "A4"
    A5 = "A5"
    LETTER = "Letter"
    LEGAL = "Legal"


class Orientation(str, Enum):
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


class Section(str, Enum):
    HEADER = "header"
    META = "meta"
    PARTIES = "parties"
    LINES = "lines"
    HSN_SUMMARY = "hsn_summary"
    TOTALS = "totals"
    BANK = "bank"
    TERMS = "terms"
    SIGNATURE = "signature"
    FOOTER = "footer"


@dataclass(frozen=True)
class Margins:
    """Page margins in millimetres."""

    top: int = 15
    right: int = 20
    bottom: int = 15
    left: int = 20

    def __post_init__(self):
        if min(self.top, self.right, self.bottom, self.left) < 0:
            raise ValueError("Margins cannot be negative")


@dataclass(frozen=True)
class LayoutSpec:
    name: str
    title: str = "TAX INVOICE"
    page_size: PageSize = PageSize.A4
    orientation: Orientation = Orientation.PORTRAIT
    margins: Margins = field(default_factory=Margins)
    primary_color: str = "#333333"
    accent_color: str = "#f5f5f5"
    font_family: str = "Helvetica"
    base_font_size: int = 9
    title_font_size: int = 16
    sections: tuple[Section, ...] = (
        Section.HEADER,
        Section.META,
        Section.PARTIES,
        Section.LINES,
        Section.HSN_SUMMARY,
        Section.TOTALS,
        Section.BANK,
        Section.TERMS,
        Section.SIGNATURE,
        Section.FOOTER,
    )
    show_hsn_column: bool = True
    show_logo: bool = True

    def shows(self, section: Section) -> bool:
        return section in self.sections


CLASSIC = LayoutSpec(name="classic")

GST_PRO = LayoutSpec(
    name="gst_pro",
    primary_color="#1a3c6e",
    accent_color="#e8eef7",
    base_font_size=8,
    title_font_size=18,
    margins=Margins(top=15, right=15, bottom=15, left=15),
)

MINIMAL = LayoutSpec(
    name="minimal",
    title="INVOICE",
    page_size=PageSize.A5,
    primary_color="#000000",
    accent_color="#ffffff",
    base_font_size=8,
    title_font_size=14,
    margins=Margins(top=12, right=12, bottom=12, left=12),
    sections=(
        Section.HEADER,
        Section.META,
        Section.PARTIES,
        Section.LINES,
        Section.TOTALS,
        Section.FOOTER,
    ),
    show_hsn_column=False,
    show_logo=False,
)


class LayoutRegistry:
    """
    Name -> LayoutSpec lookup with a classic fallback.

    Contract:
        ``get(name)`` always returns a layout.  Unknown or blank names
        resolve to the default layout and are logged as
        ``layout_fallback``.
    """

    def __init__(
        self,
        layouts: tuple[LayoutSpec, ...] = (CLASSIC, GST_PRO, MINIMAL),
        default: str = DEFAULT_LAYOUT,
    ):
        self._layouts = {layout.name: layout for layout in layouts}
        if default not in self._layouts:
            raise ValueError(f"Default layout {default!r} is not registered")
        self._default = default

    def register(self, layout: LayoutSpec) -> None:
        self._layouts[layout.name] = layout

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._layouts))

    def get(self, name: str | None) -> LayoutSpec:
        layout = self._layouts.get((name or "").strip())
        if layout is None:
            logger.warning(
                "layout_fallback",
                extra={"requested_layout": name, "layout": self._default},
            )
            return self._layouts[self._default]
        return layout
