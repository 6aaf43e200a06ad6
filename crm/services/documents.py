"""
Invoice documents

Renders an invoice as a self-contained printable HTML page. Rendering is a
pure function of the invoice, its customer and the company profile; every
interpolated value is escaped.
"""

import logging
from decimal import Decimal
from html import escape
from typing import Optional

from pydantic import BaseModel

from crm.models.domain import Customer, Invoice, LineItem
from crm.utils.config import settings

logger = logging.getLogger(__name__)


class CompanyProfile(BaseModel):
    """Letterhead details printed on documents."""

    name: str
    address: str = ""
    email: str = ""

    @classmethod
    def from_settings(cls) -> "CompanyProfile":
        return cls(
            name=settings.COMPANY_NAME,
            address=settings.COMPANY_ADDRESS,
            email=settings.SUPPORT_EMAIL,
        )


def format_money(amount: Decimal) -> str:
    return f"${Decimal(amount):,.2f}"


def _row(item: LineItem) -> str:
    return (
        "<tr>"
        f"<td>{escape(item.product_name)}</td>"
        f"<td class=\"num\">{item.quantity}</td>"
        f"<td class=\"num\">{format_money(item.unit_price)}</td>"
        f"<td class=\"num\">{format_money(item.total)}</td>"
        "</tr>"
    )


def render_invoice_document(
    invoice: Invoice,
    customer: Optional[Customer],
    company: Optional[CompanyProfile] = None,
) -> str:
    """
    Build the printable HTML for an invoice.

    Args:
        invoice: Invoice to render
        customer: Billed customer; "Unknown Customer" is printed when absent
        company: Letterhead (defaults to the configured company)

    Returns:
        A complete HTML document as a string
    """
    company = company or CompanyProfile.from_settings()
    customer_name = customer.name if customer else "Unknown Customer"
    customer_lines = ""
    if customer:
        customer_lines = "".join(
            f"<div>{escape(value)}</div>"
            for value in (customer.address, customer.email, customer.phone)
            if value
        )
    rows = "\n".join(_row(item) for item in invoice.items)
    rate = (invoice.tax / invoice.subtotal * 100).quantize(Decimal("1")) if invoice.subtotal else Decimal("0")

    document = f"""<!DOCTYPE html>
<html><head>
<meta charset="utf-8">
<title>Invoice {escape(invoice.id)}</title>
<style>
body {{ font-family: Helvetica, Arial, sans-serif; color: #1e293b; margin: 40px; }}
.header {{ display: flex; justify-content: space-between; border-bottom: 2px solid #FFB600; padding-bottom: 16px; }}
.company {{ font-size: 22px; font-weight: bold; }}
.meta {{ text-align: right; }}
.bill-to {{ margin: 24px 0; }}
table {{ width: 100%; border-collapse: collapse; }}
th, td {{ padding: 8px; border-bottom: 1px solid #e2e8f0; text-align: left; }}
.num {{ text-align: right; }}
.totals {{ margin-top: 16px; width: 40%; margin-left: auto; }}
.grand {{ font-weight: bold; font-size: 16px; }}
@media print {{ body {{ margin: 0; }} }}
</style>
</head><body>
<div class="header">
  <div>
    <div class="company">{escape(company.name)}</div>
    <div>{escape(company.address)}</div>
    <div>{escape(company.email)}</div>
  </div>
  <div class="meta">
    <div><strong>INVOICE</strong> {escape(invoice.id)}</div>
    <div>Date: {invoice.issued_on.isoformat()}</div>
    <div>Due: {invoice.due_date.isoformat()}</div>
    <div>Status: {escape(invoice.status.value)}</div>
  </div>
</div>
<div class="bill-to">
  <div><strong>Bill To</strong></div>
  <div>{escape(customer_name)}</div>
  {customer_lines}
</div>
<table>
  <thead><tr><th>Description</th><th class="num">Qty</th><th class="num">Unit Price</th><th class="num">Total</th></tr></thead>
  <tbody>
{rows}
  </tbody>
</table>
<table class="totals">
  <tr><td>Subtotal</td><td class="num">{format_money(invoice.subtotal)}</td></tr>
  <tr><td>Tax ({rate}%)</td><td class="num">{format_money(invoice.tax)}</td></tr>
  <tr class="grand"><td>Total</td><td class="num">{format_money(invoice.total_amount)}</td></tr>
</table>
<p>Thank you for your business.</p>
</body></html>
"""
    logger.debug(f"Rendered invoice document {invoice.id} ({len(document)} chars)")
    return document
