"""
Tests for DocumentRenderer -- document model and XML markup.
"""

from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from lxml import etree

from invoice_render.layouts import LayoutRegistry
from invoice_render.renderer import DocumentRenderer

from tests.factories import make_business, make_order, make_render_request


def _parse(markup: str) -> etree._Element:
    return etree.fromstring(markup.encode("utf-8"))


def _columns(root: etree._Element, table: str = "lines") -> list[str]:
    return [c.get("key") for c in root.find(f"copy//table[@name='{table}']").iterfind("column")]


def _amount(root: etree._Element, label: str) -> str:
    return root.find(f"copy/section[@name='totals']/field[@label='{label}']").text


class TestDocumentModel:
    def test_intrastate_document(self):
        document = DocumentRenderer().build(make_render_request())

        assert document.is_intrastate
        assert document.meta.invoice_date == "15/03/2024"
        assert document.meta.place_of_supply == "Maharashtra"
        assert document.meta.gst_state_code == "27"
        assert document.totals.grand_total == Decimal("840.00")
        assert document.totals.amount_in_words == "Eight Hundred Forty Rupees Only"
        assert document.lines[0].cgst == Decimal("20.00")
        assert document.lines[0].hsn_code == "6109.10"

    def test_line_split_puts_odd_paisa_on_first_line(self):
        order = make_order(
            subtotal="666.66",
            line_items=[
                {"name": "Tee", "quantity": 1, "unit_price": "333.33"},
                {"name": "Polo", "quantity": 1, "unit_price": "333.33"},
            ],
        )
        document = DocumentRenderer().build(make_render_request(order))

        # 33.33 tax: CGST 16.67, SGST 16.66
        assert [(line.cgst, line.sgst) for line in document.lines] == [
            (Decimal("8.34"), Decimal("8.33")),
            (Decimal("8.33"), Decimal("8.33")),
        ]
        assert [line.total for line in document.lines] == [
            Decimal("350.00"), Decimal("349.99"),
        ]

    def test_line_tax_rate_follows_order_slab(self, captured_logs):
        order = make_order(line_items=[
            {"name": "Saree", "quantity": 2, "unit_price": "400", "tax_rate": "0.12"},
        ])
        document = DocumentRenderer().build(make_render_request(order))
        line = document.lines[0]

        assert line.gst_rate == Decimal("0.05")
        assert line.taxable_value == Decimal("800.00")
        assert line.cgst + line.sgst == document.totals.total_tax == Decimal("40.00")
        ignored = [r for r in captured_logs() if r["message"] == "line_rate_ignored"]
        assert ignored[0]["items"] == ["Saree"]

    def test_hsn_summary_groups_by_code(self):
        order = make_order(
            subtotal="900",
            line_items=[
                {"name": "Tee", "quantity": 1, "unit_price": "300", "hsn_code": "6109.10"},
                {"name": "Tee 2", "quantity": 1, "unit_price": "300", "hsn_code": "6109.10"},
                {"name": "Cap", "quantity": 1, "unit_price": "300", "hsn_code": "6505.00"},
            ],
        )
        summary = DocumentRenderer().build(make_render_request(order)).hsn_summary

        assert [(row.hsn_code, row.taxable_value) for row in summary] == [
            ("6109.10", Decimal("600.00")),
            ("6505.00", Decimal("300.00")),
        ]


class TestMarkup:
    def test_identical_requests_give_identical_markup(self):
        renderer = DocumentRenderer()
        request = make_render_request()

        assert renderer.render(request) == renderer.render(request)

    def test_intrastate_columns_and_totals(self):
        root = _parse(DocumentRenderer().render(make_render_request()))

        assert root.get("layout") == "classic"
        assert root.get("number") == "INV-1001"
        assert _columns(root) == [
            "index", "item", "hsn", "qty", "rate", "taxable", "gst_rate", "cgst", "sgst", "total",
        ]
        assert _amount(root, "CGST @ 2.5%") == "20.00"
        assert _amount(root, "SGST @ 2.5%") == "20.00"
        assert _amount(root, "Grand Total") == "840.00"

    def test_interstate_has_igst_column(self):
        order = make_order(subtotal="1500", customer_state="KA")
        root = _parse(DocumentRenderer().render(make_render_request(order)))

        columns = _columns(root)
        assert "igst" in columns
        assert "cgst" not in columns
        assert _amount(root, "IGST @ 12%") == "180.00"
        assert _columns(root, "hsn_summary") == ["hsn", "taxable", "igst", "tax"]

    def test_minimal_layout_drops_hsn_sections(self):
        root = _parse(DocumentRenderer().render(make_render_request(layout="minimal")))

        assert root.find("page").get("size") == "A5"
        assert "hsn" not in _columns(root)
        sections = [s.get("name") for s in root.find("copy").iterfind("section")]
        assert sections == ["header", "meta", "parties", "lines", "totals", "footer"]

    def test_unknown_layout_falls_back_to_classic(self, captured_logs):
        root = _parse(DocumentRenderer().render(make_render_request(layout="glitter")))

        assert root.get("layout") == "classic"
        fallback = [r for r in captured_logs() if r["message"] == "layout_fallback"]
        assert fallback[0]["requested_layout"] == "glitter"

    def test_registry_default_is_configurable(self):
        renderer = DocumentRenderer(LayoutRegistry(default="gst_pro"))
        root = _parse(renderer.render(make_render_request(layout="")))

        assert root.get("layout") == "gst_pro"

    def test_one_copy_per_label(self):
        request = make_render_request(copy_labels=("ORIGINAL", "DUPLICATE", "TRIPLICATE"))
        root = _parse(DocumentRenderer().render(request))

        assert [c.get("label") for c in root.iterfind("copy")] == [
            "ORIGINAL", "DUPLICATE", "TRIPLICATE",
        ]

    def test_logo_only_when_layout_shows_it(self):
        business = make_business(logo_ref="logos/kora.png")
        classic = _parse(DocumentRenderer().render(make_render_request(business=business)))
        minimal = _parse(
            DocumentRenderer().render(make_render_request(business=business, layout="minimal"))
        )

        assert classic.find("copy//image[@role='logo']").get("ref") == "logos/kora.png"
        assert minimal.find("copy//image[@role='logo']") is None

    def test_bank_section_omitted_without_bank(self):
        business = make_business(bank=None)
        root = _parse(DocumentRenderer().render(make_render_request(business=business)))

        assert root.find("copy/section[@name='bank']") is None

    def test_markup_escapes_customer_text(self):
        order = make_order(line_items=[
            {"name": "Tee <b>&</b>", "quantity": 1, "unit_price": "800"},
        ])
        root = _parse(DocumentRenderer().render(make_render_request(order)))

        cell = root.find("copy//table[@name='lines']/row[@kind='item']/cell[@key='item']")
        assert cell.text == "Tee <b>&</b>"


_BUTTONS = [{"name": f"Button {n}", "quantity": 1, "unit_price": "1.10"} for n in range(3)]

def _tax_columns(rows) -> tuple[Decimal, Decimal, Decimal]:
    return (
        sum((row.cgst for row in rows), Decimal("0")),
        sum((row.sgst for row in rows), Decimal("0")),
        sum((row.igst for row in rows), Decimal("0")),
    )


class TestReconciliation:
    """Line table, HSN summary and totals agree to the paisa."""

    def test_small_lines_round_once(self):
        order = make_order(
            subtotal="3.30",
            line_items=_BUTTONS,
        )
        document = DocumentRenderer().build(make_render_request(order))
        totals = document.totals

        assert totals.total_tax == Decimal("0.17")
        assert _tax_columns(document.lines) == (totals.cgst, totals.sgst, totals.igst)
        assert _tax_columns(document.hsn_summary) == (totals.cgst, totals.sgst, totals.igst)

    def test_hsn_table_total_row_matches_totals(self):
        order = make_order(
            subtotal="3.30",
            line_items=_BUTTONS,
        )
        root = _parse(DocumentRenderer().render(make_render_request(order)))
        total_row = root.find("copy//table[@name='hsn_summary']/row[@kind='total']")

        assert total_row.find("cell[@key='tax']").text == _amount(root, "Total Tax") == "0.17"

    @settings(max_examples=60, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(
        prices=st.lists(
            st.decimals(min_value=Decimal("0.01"), max_value=Decimal("2500"), places=2),
            min_size=1,
            max_size=6,
        ),
        quantities=st.lists(st.integers(min_value=1, max_value=5), min_size=6, max_size=6),
        customer_state=st.sampled_from(["MH", "KA"]),
    )
    def test_components_always_reconcile(self, prices, quantities, customer_state):
        items = [
            {"name": f"Item {n}", "quantity": qty, "unit_price": str(price), "hsn_code": f"61{n % 2}9"}
            for n, (price, qty) in enumerate(zip(prices, quantities))
        ]
        subtotal = sum((Decimal(i["unit_price"]) * i["quantity"] for i in items), Decimal("0"))
        order = make_order(subtotal=str(subtotal), customer_state=customer_state, line_items=items)
        document = DocumentRenderer().build(make_render_request(order))
        totals = document.totals
        expected = (totals.cgst, totals.sgst, totals.igst)

        assert _tax_columns(document.lines) == expected
        assert _tax_columns(document.hsn_summary) == expected
        assert sum(line.taxable_value for line in document.lines) == totals.taxable_amount
        assert sum(line.total for line in document.lines) == totals.grand_total

    def test_line_subtotal_mismatch_is_logged(self, captured_logs):
        order = make_order(subtotal="900", line_items=[
            {"name": "Tee", "quantity": 1, "unit_price": "800"},
        ])
        DocumentRenderer().build(make_render_request(order))

        mismatch = [r for r in captured_logs() if r["message"] == "line_subtotal_mismatch"]
        assert mismatch[0]["line_total"] == "800.00"
        assert mismatch[0]["subtotal"] == "900.00"


class TestShippingAndDiscount:
    def test_intrastate_shipping(self):
        order = make_order(shipping_amount="118")
        request = make_render_request(order)
        document = DocumentRenderer().build(request)
        root = _parse(DocumentRenderer().render(request))

        assert _amount(root, "Shipping Charges") == "100.00"
        assert _amount(root, "Shipping CGST @ 9%") == "9.00"
        assert _amount(root, "Shipping SGST @ 9%") == "9.00"
        assert _amount(root, "Total Tax") == "58.00"
        assert _amount(root, "Grand Total") == "958.00"
        assert document.totals.amount_in_words == "Nine Hundred Fifty Eight Rupees Only"
        shipping_row = document.hsn_summary[-1]
        assert (shipping_row.hsn_code, shipping_row.taxable_value, shipping_row.total_tax) == (
            "996812", Decimal("100.00"), Decimal("18.00"),
        )
        assert sum(row.total_tax for row in document.hsn_summary) == document.totals.invoice_tax

    def test_interstate_shipping_is_igst(self):
        order = make_order(subtotal="1500", customer_state="KA", shipping_amount="59")
        root = _parse(DocumentRenderer().render(make_render_request(order)))

        assert _amount(root, "Shipping Charges") == "50.00"
        assert _amount(root, "Shipping IGST @ 18%") == "9.00"
        assert _amount(root, "Grand Total") == "1739.00"

    def test_no_shipping_rows_without_shipping(self):
        document = DocumentRenderer().build(make_render_request())
        root = _parse(DocumentRenderer().render(make_render_request()))

        assert root.find("copy/section[@name='totals']/field[@label='Shipping Charges']") is None
        assert [row.hsn_code for row in document.hsn_summary] == ["6109.10"]

    def test_discount_spread_before_tax(self, captured_logs):
        order = make_order(
            subtotal="900",
            discount="100",
            line_items=[
                {"name": "Kurta", "quantity": 1, "unit_price": "600"},
                {"name": "Dupatta", "quantity": 1, "unit_price": "400"},
            ],
        )
        request = make_render_request(order)
        document = DocumentRenderer().build(request)
        root = _parse(DocumentRenderer().render(request))

        assert [(line.discount, line.taxable_value) for line in document.lines] == [
            (Decimal("60.00"), Decimal("540.00")),
            (Decimal("40.00"), Decimal("360.00")),
        ]
        assert [line.cgst for line in document.lines] == [Decimal("13.50"), Decimal("9.00")]
        assert "discount" in _columns(root)
        assert _amount(root, "Discount") == "100.00"
        assert _amount(root, "Taxable Amount") == "900.00"
        assert _amount(root, "Grand Total") == "945.00"
        assert not [r for r in captured_logs() if r["message"] == "line_subtotal_mismatch"]
