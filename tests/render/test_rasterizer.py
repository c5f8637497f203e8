"""
Tests for DocumentRasterizer and RenderingPool.

PDF output is inspected with pypdf; page count and determinism matter,
pixel layout does not.
"""

import io
import threading

import pytest
from pypdf import PdfReader

from invoice_kernel.exceptions import (
    RasterizationError,
    RasterizationTimeoutError,
    RenderingEngineUnavailableError,
)
from invoice_render.rasterizer import DocumentRasterizer, RenderingContext, RenderingPool
from invoice_render.renderer import DocumentRenderer

from tests.factories import make_business, make_order, make_render_request


@pytest.fixture
def rasterizer():
    rasterizer = DocumentRasterizer(RenderingPool(size=1, acquire_timeout=0.1), timeout_seconds=30)
    yield rasterizer
    rasterizer.close()


@pytest.fixture
def markup():
    return DocumentRenderer().render(make_render_request())


class _StuckRasterizer(DocumentRasterizer):
    """Blocks inside the engine until released."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.release = threading.Event()

    def _draw(self, context, root):
        self.release.wait(timeout=5)
        return super()._draw(context, root)


class TestRasterize:
    def test_produces_readable_pdf(self, rasterizer, markup):
        result = rasterizer.rasterize(markup)

        assert result.content.startswith(b"%PDF")
        reader = PdfReader(io.BytesIO(result.content))
        assert len(reader.pages) == result.page_count == 1
        text = reader.pages[0].extract_text()
        assert "INV-1001" in text
        assert "Kora Threads Pvt Ltd" in text

    def test_output_is_deterministic(self, rasterizer, markup):
        assert rasterizer.rasterize(markup).content == rasterizer.rasterize(markup).content

    def test_each_copy_starts_a_page(self, rasterizer):
        request = make_render_request(copy_labels=("ORIGINAL", "DUPLICATE"))
        result = rasterizer.rasterize(DocumentRenderer().render(request))

        reader = PdfReader(io.BytesIO(result.content))
        assert result.page_count == len(reader.pages) == 2
        assert "DUPLICATE" in reader.pages[1].extract_text()

    def test_footer_on_every_page(self, rasterizer):
        request = make_render_request(copy_labels=("ORIGINAL", "DUPLICATE"))
        result = rasterizer.rasterize(DocumentRenderer().render(request))

        reader = PdfReader(io.BytesIO(result.content))
        for page in reader.pages:
            assert "computer generated invoice" in page.extract_text()

    @pytest.mark.parametrize("layout", ["classic", "gst_pro", "minimal"])
    def test_one_line_invoice_fits_one_page(self, rasterizer, layout):
        order = make_order(shipping_amount="118", discount="100", subtotal="700", line_items=[
            {"name": "Cotton Crew Tee", "quantity": 1, "unit_price": "800"},
        ])
        request = make_render_request(order, layout=layout)

        assert rasterizer.rasterize(DocumentRenderer().render(request)).page_count == 1

    def test_long_invoice_paginates(self, rasterizer):
        items = [{"name": f"Tee {n}", "quantity": 1, "unit_price": "10"} for n in range(80)]
        request = make_render_request(make_order(subtotal="800", line_items=items))
        result = rasterizer.rasterize(DocumentRenderer().render(request))

        reader = PdfReader(io.BytesIO(result.content))
        assert result.page_count == len(reader.pages) > 1
        assert "computer generated invoice" in reader.pages[-1].extract_text()

    def test_image_loader_misses_are_skipped(self, markup):
        requested = []

        def loader(ref):
            requested.append(ref)
            return None

        rasterizer = DocumentRasterizer(image_loader=loader)
        try:
            request = make_render_request(business=make_business(logo_ref="logos/kora.png"))
            result = rasterizer.rasterize(DocumentRenderer().render(request))
        finally:
            rasterizer.close()

        assert requested == ["logos/kora.png"]
        assert result.page_count == 1

    def test_context_is_reused(self, rasterizer, markup):
        rasterizer.rasterize(markup)
        rasterizer.rasterize(markup)

        assert rasterizer.pool.live_contexts == 1
        assert rasterizer.pool.idle_contexts == 1


class TestFailures:
    def test_malformed_markup(self, rasterizer):
        with pytest.raises(RasterizationError, match="Malformed markup"):
            rasterizer.rasterize("<invoice><page></invoice>")

    def test_wrong_root_element(self, rasterizer):
        with pytest.raises(RasterizationError, match="Unexpected root element"):
            rasterizer.rasterize("<receipt/>")

    def test_markup_without_copies_discards_context(self, rasterizer):
        markup = '<invoice number="X"><page size="A4"/><style/></invoice>'

        with pytest.raises(RasterizationError, match="no copies"):
            rasterizer.rasterize(markup)

        assert rasterizer.pool.live_contexts == 0

    def test_timeout_discards_context(self, markup, captured_logs):
        rasterizer = _StuckRasterizer(RenderingPool(size=1), timeout_seconds=30)
        try:
            with pytest.raises(RasterizationTimeoutError) as exc_info:
                rasterizer.rasterize(markup, timeout=0.05)

            assert exc_info.value.retryable
            assert rasterizer.pool.live_contexts == 0
            messages = [r["message"] for r in captured_logs()]
            assert "rasterization_timed_out" in messages
            assert "rasterizer_context_discarded" in messages
        finally:
            rasterizer.release.set()
            rasterizer.close()

    def test_context_creation_failure(self, markup):
        def broken_factory(context_id):
            raise RuntimeError("font cache corrupt")

        rasterizer = DocumentRasterizer(RenderingPool(context_factory=broken_factory))
        try:
            with pytest.raises(RenderingEngineUnavailableError, match="font cache corrupt"):
                rasterizer.rasterize(markup)
            assert rasterizer.pool.live_contexts == 0
        finally:
            rasterizer.close()


class TestRenderingPool:
    def test_size_must_be_positive(self):
        with pytest.raises(ValueError):
            RenderingPool(size=0)

    def test_exhausted_pool_times_out(self):
        pool = RenderingPool(size=1, acquire_timeout=0.01)
        pool.acquire()

        with pytest.raises(RenderingEngineUnavailableError, match="No rendering context"):
            pool.acquire()

    def test_lease_releases_on_success(self):
        pool = RenderingPool(size=1)

        with pool.lease() as context:
            assert isinstance(context, RenderingContext)

        assert pool.idle_contexts == 1
        with pool.lease() as again:
            assert again is context

    def test_lease_discards_on_error(self):
        pool = RenderingPool(size=1)

        with pytest.raises(KeyError):
            with pool.lease():
                raise KeyError("boom")

        assert pool.live_contexts == 0
        assert pool.idle_contexts == 0

    def test_discarded_slot_is_refilled(self):
        pool = RenderingPool(size=1, acquire_timeout=0.01)
        first = pool.acquire()
        pool.discard(first, reason="test")

        second = pool.acquire()

        assert second.context_id == 2
        assert pool.live_contexts == 1
