"""
DocumentRenderer -- order + tax breakdown + profile -> invoice markup.

Responsibility:
    Builds the InvoiceDocument model for a generation request and
    serializes it to XML markup (lxml) that the DocumentRasterizer turns
    into PDF bytes.

Architecture position:
    Render layer, pure.  No clock, no I/O, no randomness: the invoice
    date arrives in the request.

Invariants enforced:
    - Identical requests produce byte-identical markup.
    - Every amount in the markup is rounded to the paisa with
      ROUND_HALF_UP.
    - Line CGST/SGST/IGST are the TaxBreakdown components spread over the
      lines by taxable value (largest remainder at the paisa), so the line
      table, the HSN summary and the totals agree exactly.
    - Shipping is GST-inclusive; its taxable value and tax appear in the
      totals and as their own SAC row of the HSN summary.
    - Unknown layout names fall back to ``classic``.

Markup vocabulary (consumed by the rasterizer):
    ``invoice`` root with ``page`` and ``style`` children, then one
    ``copy`` per copy label.  Each copy holds ``section`` elements made of
    ``group``, ``heading``, ``text``, ``field``, ``table`` and ``image``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from lxml import etree

from invoice_kernel.domain.money import ZERO, allocate_prorata, format_rate, round_money
from invoice_kernel.domain.order import Address, OrderSnapshot
from invoice_kernel.domain.profile import BusinessProfile
from invoice_kernel.domain.states import INDIAN_STATES, get_state
from invoice_kernel.domain.tax import (
    SHIPPING_GST_RATE,
    SHIPPING_SAC_CODE,
    TaxBreakdown,
    shipping_tax,
)
from invoice_kernel.domain.words import amount_to_words
from invoice_kernel.logging_config import get_logger
from invoice_render.document import (
    DocumentLine,
    HSNSummaryRow,
    InvoiceDocument,
    InvoiceMeta,
    Party,
    Seller,
    Totals,
)
from invoice_render.layouts import LayoutRegistry, Section

logger = get_logger("render.renderer")

MARKUP_VERSION = "1"


@dataclass(frozen=True)
class RenderRequest:
    order: OrderSnapshot
    breakdown: TaxBreakdown
    business: BusinessProfile
    invoice_number: str
    invoice_date: datetime
    layout: str = "classic"
    copy_labels: tuple[str, ...] = ("ORIGINAL",)
    date_format: str = "%d/%m/%Y"


def _amount(value: Decimal) -> str:
    return str(round_money(value))


def _state_label(code: str | None) -> str:
    if code and code in INDIAN_STATES:
        state = INDIAN_STATES[code]
        return f"{state.name} ({state.gst_code})"
    return code or ""


class DocumentRenderer:
    """
    Builds and serializes invoice documents.

    Contract:
        ``build(request, copy_label)`` returns the document model for one
        copy; ``render(request)`` returns the markup for every copy label
        in the request.

    Non-goals:
        - Producing PDF bytes (DocumentRasterizer).
        - Validating the order; OrderSnapshot and TaxEngine already did.
    """

    def __init__(self, layouts: LayoutRegistry | None = None):
        self._layouts = layouts or LayoutRegistry()

    @property
    def layouts(self) -> LayoutRegistry:
        return self._layouts

    # -------------------------------------------------------------------------
    # Model
    # -------------------------------------------------------------------------

    def build(self, request: RenderRequest, copy_label: str | None = None) -> InvoiceDocument:
        layout = self._layouts.get(request.layout)
        breakdown = request.breakdown
        order = request.order

        customer_state = get_state(breakdown.customer_state)
        meta = InvoiceMeta(
            invoice_number=request.invoice_number,
            invoice_date=request.invoice_date.strftime(request.date_format),
            order_number=order.order_number,
            place_of_supply=customer_state.name,
            state_code=customer_state.code,
            gst_state_code=customer_state.gst_code,
            copy_label=copy_label or request.copy_labels[0],
        )

        lines = self._lines(order, breakdown)
        shipping_taxable, shipping = shipping_tax(order.shipping_amount, breakdown.gst_type)
        taxable = breakdown.taxable_amount
        grand_total = round_money(
            taxable + breakdown.total_tax + shipping_taxable + shipping.total
        )
        totals = Totals(
            taxable_amount=round_money(taxable),
            cgst=round_money(breakdown.cgst_amount),
            sgst=round_money(breakdown.sgst_amount),
            igst=round_money(breakdown.igst_amount),
            total_tax=round_money(breakdown.total_tax),
            grand_total=grand_total,
            amount_in_words=amount_to_words(grand_total),
            discount=round_money(order.discount),
            shipping_taxable=shipping_taxable,
            shipping_cgst=shipping.cgst,
            shipping_sgst=shipping.sgst,
            shipping_igst=shipping.igst,
        )

        return InvoiceDocument(
            layout=layout,
            seller=self._seller(request.business),
            meta=meta,
            billed_to=self._party("Billed To", order.billing_address, order),
            ship_to=self._party("Ship To", order.shipping_address, order),
            gst_type=breakdown.gst_type,
            gst_rate=breakdown.rate,
            lines=lines,
            hsn_summary=self._hsn_summary(lines, totals),
            totals=totals,
        )

    @staticmethod
    def _seller(business: BusinessProfile) -> Seller:
        address = business.address
        lines = list(address.lines())
        if address.state_code:
            lines.append(f"State: {_state_label(address.state_code)}")
        return Seller(
            company_name=business.company_name,
            address_lines=tuple(lines),
            gstin=business.gstin,
            pan=business.pan,
            email=business.email,
            phone=business.phone,
            website=business.website,
            bank=business.bank,
            logo_ref=business.logo_ref,
            signature_ref=business.signature_ref,
        )

    @staticmethod
    def _party(title: str, address: Address, order: OrderSnapshot) -> Party:
        return Party(
            title=title,
            name=address.name or order.customer_name,
            address_lines=address.lines(),
            state=_state_label(address.state_code) or address.state,
            phone=address.phone,
            email=order.customer_email or "",
        )

    @staticmethod
    def _lines(order: OrderSnapshot, breakdown: TaxBreakdown) -> tuple[DocumentLine, ...]:
        """
        Lines carry the breakdown's components, spread by taxable value.

        The discount is spread the same way before tax, so the line columns
        add up to the totals to the paisa.
        """
        items = order.line_items
        gross = [round_money(item.taxable_value) for item in items]
        discounts = allocate_prorata(order.discount, gross)
        taxable = [value - share for value, share in zip(gross, discounts)]

        if sum(taxable, ZERO) != breakdown.taxable_amount:
            logger.warning(
                "line_subtotal_mismatch",
                extra={
                    "order_id": order.order_id,
                    "line_total": sum(taxable, ZERO),
                    "subtotal": breakdown.taxable_amount,
                },
            )
        overridden = [i.name for i in items if i.tax_rate not in (None, breakdown.rate)]
        if overridden:
            logger.warning(
                "line_rate_ignored",
                extra={
                    "order_id": order.order_id,
                    "items": overridden,
                    "rate": breakdown.rate,
                },
            )

        splits = breakdown.allocate(taxable)
        return tuple(
            DocumentLine(
                index=index,
                name=item.name,
                hsn_code=item.hsn_code or breakdown.hsn_code,
                quantity=item.quantity,
                unit_price=round_money(item.unit_price),
                discount=discount,
                taxable_value=value,
                gst_rate=breakdown.rate,
                cgst=split.cgst,
                sgst=split.sgst,
                igst=split.igst,
                total=value + split.total,
            )
            for index, (item, discount, value, split) in enumerate(
                zip(items, discounts, taxable, splits), start=1,
            )
        )

    @staticmethod
    def _hsn_summary(
        lines: tuple[DocumentLine, ...], totals: Totals,
    ) -> tuple[HSNSummaryRow, ...]:
        grouped: dict[str, list[Decimal]] = {}
        for line in lines:
            sums = grouped.setdefault(line.hsn_code, [ZERO, ZERO, ZERO, ZERO])
            sums[0] += line.taxable_value
            sums[1] += line.cgst
            sums[2] += line.sgst
            sums[3] += line.igst
        rows = [
            HSNSummaryRow(code, taxable, cgst, sgst, igst)
            for code, (taxable, cgst, sgst, igst) in grouped.items()
        ]
        if totals.shipping_taxable or totals.shipping_tax:
            rows.append(
                HSNSummaryRow(
                    SHIPPING_SAC_CODE,
                    totals.shipping_taxable,
                    totals.shipping_cgst,
                    totals.shipping_sgst,
                    totals.shipping_igst,
                )
            )
        return tuple(rows)

    # -------------------------------------------------------------------------
    # Markup
    # -------------------------------------------------------------------------

    def render(self, request: RenderRequest) -> str:
        documents = [self.build(request, label) for label in request.copy_labels]
        layout = documents[0].layout
        root = etree.Element(
            "invoice",
            version=MARKUP_VERSION,
            layout=layout.name,
            title=layout.title,
            number=request.invoice_number,
        )
        etree.SubElement(
            root,
            "page",
            size=layout.page_size.value,
            orientation=layout.orientation.value,
            **{
                "margin-top": str(layout.margins.top),
                "margin-right": str(layout.margins.right),
                "margin-bottom": str(layout.margins.bottom),
                "margin-left": str(layout.margins.left),
            },
        )
        etree.SubElement(
            root,
            "style",
            **{
                "font-family": layout.font_family,
                "font-size": str(layout.base_font_size),
                "title-size": str(layout.title_font_size),
                "primary-color": layout.primary_color,
                "accent-color": layout.accent_color,
            },
        )
        for document in documents:
            self._copy(root, document)

        markup = etree.tostring(root, encoding="unicode", pretty_print=True)
        logger.debug(
            "invoice_markup_rendered",
            extra={
                "invoice_number": request.invoice_number,
                "layout": layout.name,
                "copies": len(documents),
                "line_count": len(documents[0].lines),
            },
        )
        return markup

    def _copy(self, root: etree._Element, document: InvoiceDocument) -> None:
        copy = etree.SubElement(root, "copy", label=document.meta.copy_label)
        writers = {
            Section.HEADER: self._header,
            Section.META: self._meta,
            Section.PARTIES: self._parties,
            Section.LINES: self._line_table,
            Section.HSN_SUMMARY: self._hsn_table,
            Section.TOTALS: self._totals,
            Section.BANK: self._bank,
            Section.TERMS: self._terms,
            Section.SIGNATURE: self._signature,
            Section.FOOTER: self._footer,
        }
        for section in document.layout.sections:
            element = etree.Element("section", name=section.value)
            writers[section](element, document)
            # sections with nothing to show are omitted
            if len(element):
                copy.append(element)

    @staticmethod
    def _text(parent: etree._Element, tag: str, value: str, **attrs: str) -> etree._Element:
        element = etree.SubElement(parent, tag, **attrs)
        element.text = value
        return element

    def _header(self, section: etree._Element, document: InvoiceDocument) -> None:
        seller = document.seller
        if document.layout.show_logo and seller.logo_ref:
            etree.SubElement(section, "image", ref=seller.logo_ref, role="logo")
        self._text(section, "heading", document.layout.title, level="1")
        self._text(section, "text", document.meta.copy_label, role="copy-label")
        self._text(section, "heading", seller.company_name, level="2")
        for line in seller.address_lines:
            self._text(section, "text", line)
        for label, value in (
            ("GSTIN", seller.gstin),
            ("PAN", seller.pan),
            ("Phone", seller.phone),
            ("Email", seller.email),
            ("Website", seller.website),
        ):
            if value:
                self._text(section, "field", value, label=label)

    def _meta(self, section: etree._Element, document: InvoiceDocument) -> None:
        meta = document.meta
        for label, value in (
            ("Invoice No.", meta.invoice_number),
            ("Invoice Date", meta.invoice_date),
            ("Order No.", meta.order_number),
            ("Place of Supply", meta.place_of_supply),
            ("State Code", f"{meta.state_code} ({meta.gst_state_code})"),
        ):
            self._text(section, "field", value, label=label)

    def _parties(self, section: etree._Element, document: InvoiceDocument) -> None:
        for party in (document.billed_to, document.ship_to):
            group = etree.SubElement(section, "group", title=party.title)
            self._text(group, "heading", party.name, level="3")
            for line in party.address_lines:
                self._text(group, "text", line)
            for label, value in (
                ("State", party.state),
                ("Phone", party.phone),
                ("Email", party.email),
            ):
                if value:
                    self._text(group, "field", value, label=label)

    @staticmethod
    def _table(
        parent: etree._Element,
        name: str,
        columns: list[tuple[str, str]],
        rows: Iterable[dict[str, str]],
        total: dict[str, str] | None = None,
    ) -> None:
        table = etree.SubElement(parent, "table", name=name)
        for key, label in columns:
            column = etree.SubElement(table, "column", key=key)
            column.text = label
        for kind, values in [("item", row) for row in rows] + (
            [("total", total)] if total else []
        ):
            row_element = etree.SubElement(table, "row", kind=kind)
            for key, _ in columns:
                cell = etree.SubElement(row_element, "cell", key=key)
                cell.text = values.get(key, "")

    def _line_table(self, section: etree._Element, document: InvoiceDocument) -> None:
        columns = [("index", "#"), ("item", "Item")]
        if document.layout.show_hsn_column:
            columns.append(("hsn", "HSN"))
        columns += [("qty", "Qty"), ("rate", "Rate")]
        if document.totals.discount:
            columns.append(("discount", "Discount"))
        columns += [
            ("taxable", "Taxable Value"),
            ("gst_rate", "GST %"),
        ]
        if document.is_intrastate:
            columns += [("cgst", "CGST"), ("sgst", "SGST")]
        else:
            columns.append(("igst", "IGST"))
        columns.append(("total", "Total"))

        rows = [
            {
                "index": str(line.index),
                "item": line.name,
                "hsn": line.hsn_code,
                "qty": str(line.quantity),
                "rate": _amount(line.unit_price),
                "discount": _amount(line.discount),
                "taxable": _amount(line.taxable_value),
                "gst_rate": format_rate(line.gst_rate),
                "cgst": _amount(line.cgst),
                "sgst": _amount(line.sgst),
                "igst": _amount(line.igst),
                "total": _amount(line.total),
            }
            for line in document.lines
        ]
        lines = document.lines
        total = {
            "item": "Total",
            "qty": str(sum(line.quantity for line in lines)),
            "discount": _amount(sum((line.discount for line in lines), ZERO)),
            "taxable": _amount(sum((line.taxable_value for line in lines), ZERO)),
            "cgst": _amount(sum((line.cgst for line in lines), ZERO)),
            "sgst": _amount(sum((line.sgst for line in lines), ZERO)),
            "igst": _amount(sum((line.igst for line in lines), ZERO)),
            "total": _amount(sum((line.total for line in lines), ZERO)),
        }
        self._table(section, "lines", columns, rows, total)

    def _hsn_table(self, section: etree._Element, document: InvoiceDocument) -> None:
        columns = [("hsn", "HSN/SAC"), ("taxable", "Taxable Value")]
        if document.is_intrastate:
            columns += [("cgst", "CGST"), ("sgst", "SGST")]
        else:
            columns.append(("igst", "IGST"))
        columns.append(("tax", "Total Tax"))
        rows = [
            {
                "hsn": row.hsn_code,
                "taxable": _amount(row.taxable_value),
                "cgst": _amount(row.cgst),
                "sgst": _amount(row.sgst),
                "igst": _amount(row.igst),
                "tax": _amount(row.total_tax),
            }
            for row in document.hsn_summary
        ]
        summary = document.hsn_summary
        total = {
            "hsn": "Total",
            "taxable": _amount(sum((row.taxable_value for row in summary), ZERO)),
            "cgst": _amount(sum((row.cgst for row in summary), ZERO)),
            "sgst": _amount(sum((row.sgst for row in summary), ZERO)),
            "igst": _amount(sum((row.igst for row in summary), ZERO)),
            "tax": _amount(sum((row.total_tax for row in summary), ZERO)),
        }
        self._table(section, "hsn_summary", columns, rows, total)

    @staticmethod
    def _tax_fields(
        prefix: str, rate: Decimal, intrastate: bool, amounts: tuple[Decimal, ...],
    ) -> list[tuple[str, Decimal]]:
        cgst, sgst, igst = amounts
        if intrastate:
            half = format_rate(rate / 2)
            return [(f"{prefix}CGST @ {half}", cgst), (f"{prefix}SGST @ {half}", sgst)]
        return [(f"{prefix}IGST @ {format_rate(rate)}", igst)]

    def _totals(self, section: etree._Element, document: InvoiceDocument) -> None:
        totals = document.totals
        amounts: list[tuple[str, Decimal]] = []
        if totals.discount:
            amounts.append(("Discount", totals.discount))
        amounts.append(("Taxable Amount", totals.taxable_amount))
        amounts += self._tax_fields(
            "", document.gst_rate, document.is_intrastate,
            (totals.cgst, totals.sgst, totals.igst),
        )
        if totals.shipping_taxable or totals.shipping_tax:
            amounts.append(("Shipping Charges", totals.shipping_taxable))
            amounts += self._tax_fields(
                "Shipping ", SHIPPING_GST_RATE, document.is_intrastate,
                (totals.shipping_cgst, totals.shipping_sgst, totals.shipping_igst),
            )
        amounts += [
            ("Total Tax", totals.invoice_tax),
            ("Grand Total", totals.grand_total),
        ]
        for label, value in amounts:
            self._text(section, "field", _amount(value), label=label, kind="amount")
        self._text(section, "text", totals.amount_in_words, role="amount-in-words")

    def _bank(self, section: etree._Element, document: InvoiceDocument) -> None:
        bank = document.seller.bank
        if bank is None:
            return
        self._text(section, "heading", "Bank Details", level="3")
        for label, value in (
            ("Account Name", bank.account_name),
            ("Account No.", bank.account_number),
            ("IFSC", bank.ifsc_code),
            ("Bank", bank.bank_name),
            ("Branch", bank.branch),
        ):
            if value:
                self._text(section, "field", value, label=label)

    def _terms(self, section: etree._Element, document: InvoiceDocument) -> None:
        self._text(section, "heading", "Terms & Conditions", level="3")
        for term in document.terms:
            self._text(section, "text", term, role="term")

    def _signature(self, section: etree._Element, document: InvoiceDocument) -> None:
        seller = document.seller
        if seller.signature_ref:
            etree.SubElement(section, "image", ref=seller.signature_ref, role="signature")
        self._text(section, "text", f"For {seller.company_name}", role="signatory")
        self._text(section, "text", "Authorised Signatory", role="signatory")

    def _footer(self, section: etree._Element, document: InvoiceDocument) -> None:
        self._text(section, "text", document.footer, role="footer")
