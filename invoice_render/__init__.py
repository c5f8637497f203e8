"""
invoice_render -- invoice document model, layouts, markup and PDF output.

DocumentRenderer is pure (request -> markup); DocumentRasterizer owns the
pooled PDF engine.  Neither touches the database.
"""

from invoice_render.document import InvoiceDocument
from invoice_render.layouts import (
    DEFAULT_LAYOUT,
    LayoutRegistry,
    LayoutSpec,
    Margins,
    Orientation,
    PageSize,
    Section,
)
from invoice_render.rasterizer import (
    DocumentRasterizer,
    RasterizedDocument,
    RenderingContext,
    RenderingPool,
)
from invoice_render.renderer import DocumentRenderer, RenderRequest

__all__ = [
    "DEFAULT_LAYOUT",
    "DocumentRasterizer",
    "DocumentRenderer",
    "InvoiceDocument",
    "LayoutRegistry",
    "LayoutSpec",
    "Margins",
    "Orientation",
    "PageSize",
    "RasterizedDocument",
    "RenderRequest",
    "RenderingContext",
    "RenderingPool",
    "Section",
]
