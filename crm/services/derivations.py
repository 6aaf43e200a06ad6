"""
Derivation Service

Read-only aggregates computed from the entity collections: line-item
totals, dashboard figures, customer financial positions and stock levels.
Nothing here is stored; every value is recomputed from its source data.
"""

import calendar
import logging
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence

from crm.models.domain import (
    Invoice,
    InvoiceStatus,
    LeadStatus,
    LineItem,
    PaymentStatus,
    Product,
    StockChangeType,
    StockHistoryEntry,
    SubscriptionStatus,
    TicketPriority,
    TicketStatus,
)
from crm.models.workflow import (
    CustomerFinancialSummary,
    DashboardSummary,
    InventoryValuation,
    Totals,
)
from crm.utils.config import settings
from crm.utils.exceptions import ValidationError
from crm.utils.store import EntityStore

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

OPEN_INVOICE_STATUSES = (InvoiceStatus.SENT, InvoiceStatus.OVERDUE)


def to_money(value) -> Decimal:
    """Quantize a number to cents"""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def add_months(base: date, months: int) -> date:
    """Shift a date by whole months, clamping to the last day of the month"""
    month_index = base.month - 1 + months
    year = base.year + month_index // 12
    month = month_index % 12 + 1
    day = min(base.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


# ============================================================================
# Line items
# ============================================================================

def line_total(item: LineItem) -> Decimal:
    return to_money(Decimal(item.quantity) * Decimal(item.unit_price))


def price_items(items: Iterable[LineItem]) -> List[LineItem]:
    """Return copies of the items with each line total recomputed"""
    return [item.model_copy(update={"total": line_total(item)}, deep=True) for item in items]


def compute_totals(items: Sequence[LineItem], tax_rate: Optional[Decimal] = None) -> Totals:
    """
    Derive subtotal, tax and total from line items.

    Args:
        items: Quote or invoice lines
        tax_rate: Overrides settings.TAX_RATE

    Returns:
        Totals quantized to cents; all zero for an empty list
    """
    rate = Decimal(str(settings.TAX_RATE if tax_rate is None else tax_rate))
    subtotal = sum((line_total(item) for item in items), Decimal("0"))
    tax = to_money(subtotal * rate)
    return Totals(subtotal=to_money(subtotal), tax=tax, total=to_money(subtotal + tax))


def totals_patch(items: Sequence[LineItem], tax_rate: Optional[Decimal] = None) -> Dict:
    """Field patch that stores priced items together with their totals"""
    priced = price_items(items)
    totals = compute_totals(priced, tax_rate)
    return {
        "items": priced,
        "subtotal": totals.subtotal,
        "tax": totals.tax,
        "total_amount": totals.total,
    }


# ============================================================================
# Dashboard aggregates
# ============================================================================

def percentage(part, whole) -> float:
    """Share of ``whole`` as a percentage; 0 when the whole is 0"""
    if not whole:
        return 0.0
    return round(float(part) / float(whole) * 100, 1)


def distribution(values: Sequence[str], categories: Iterable[str]) -> Dict[str, float]:
    """Percentage of values falling in each category"""
    total = len(values)
    return {category: percentage(sum(1 for v in values if v == category), total) for category in categories}


def dashboard_summary(store: EntityStore, today: date) -> DashboardSummary:
    """Compute the operations dashboard from the full collections"""
    customers = store.customers.list()
    tickets = store.tickets.list()
    invoices = store.invoices.list()
    subscriptions = store.subscriptions.list()
    leads = store.leads.list()

    active_subs = [s for s in subscriptions if s.status == SubscriptionStatus.ACTIVE]

    outstanding = sum((i.total_amount for i in invoices if i.status in OPEN_INVOICE_STATUSES), Decimal("0"))
    collected = sum((i.total_amount for i in invoices if i.status == InvoiceStatus.PAID), Decimal("0"))

    summary = DashboardSummary(
        monthly_recurring_revenue=sum((c.contract_value for c in customers), Decimal("0")),
        active_subscriptions=len(active_subs),
        active_systems=sum(len(c.systems) for c in customers),
        open_tickets=sum(1 for t in tickets if t.status != TicketStatus.RESOLVED),
        critical_tickets=sum(
            1 for t in tickets if t.priority in (TicketPriority.CRITICAL, TicketPriority.HIGH)
        ),
        overdue_invoices=sum(1 for i in invoices if is_overdue(i, today)),
        outstanding_revenue=to_money(outstanding),
        collected_revenue=to_money(collected),
        subscription_revenue=to_money(sum((s.amount for s in active_subs), Decimal("0"))),
        failed_payments=sum(1 for s in subscriptions if s.last_payment_status == PaymentStatus.FAILED),
        ticket_status_distribution=distribution(
            [t.status.value for t in tickets], [s.value for s in TicketStatus]
        ),
        lead_pipeline_distribution=distribution(
            [l.status.value for l in leads], [s.value for s in LeadStatus]
        ),
    )
    logger.debug(f"Dashboard: {summary.open_tickets} open tickets, {summary.overdue_invoices} overdue invoices")
    return summary


def is_overdue(invoice: Invoice, today: date) -> bool:
    """Overdue by status, or sent and past its due date"""
    if invoice.status == InvoiceStatus.OVERDUE:
        return True
    return invoice.status == InvoiceStatus.SENT and invoice.due_date < today


def customer_financial_summary(store: EntityStore, customer_id: str, today: date) -> CustomerFinancialSummary:
    """Get the invoice position for one customer"""
    store.customers.get(customer_id)
    invoices = store.invoices.find(lambda i: i.customer_id == customer_id)

    open_invoices = [i for i in invoices if i.status in OPEN_INVOICE_STATUSES]
    overdue_invoices = [i for i in open_invoices if is_overdue(i, today)]
    paid_invoices = [i for i in invoices if i.status == InvoiceStatus.PAID]
    billed = [i for i in invoices if i.status != InvoiceStatus.DRAFT]

    return CustomerFinancialSummary(
        customer_id=customer_id,
        total_invoiced=to_money(sum((i.total_amount for i in billed), Decimal("0"))),
        total_paid=to_money(sum((i.total_amount for i in paid_invoices), Decimal("0"))),
        total_open=to_money(sum((i.total_amount for i in open_invoices), Decimal("0"))),
        total_overdue=to_money(sum((i.total_amount for i in overdue_invoices), Decimal("0"))),
        invoice_count=len(billed),
        open_invoice_count=len(open_invoices),
        overdue_invoice_count=len(overdue_invoices),
    )


# ============================================================================
# Stock
# ============================================================================

def running_stock_levels(changes: Sequence[int], start: int = 0) -> List[int]:
    """Prefix sums of signed stock changes"""
    levels = []
    level = start
    for change in changes:
        level += change
        levels.append(level)
    return levels


def current_stock(product: Product) -> int:
    """Stock on hand as the sum of all recorded changes"""
    return sum(entry.change for entry in product.stock_history)


def verify_stock_history(product: Product):
    """
    Check that every recorded level equals the running sum to that point
    and that the product's stock field matches the final level.

    Raises:
        ValidationError: On the first mismatch found
    """
    levels = running_stock_levels([entry.change for entry in product.stock_history])
    for index, (entry, expected) in enumerate(zip(product.stock_history, levels)):
        if entry.stock_level != expected:
            raise ValidationError(
                f"Product {product.id} history entry {index} records level "
                f"{entry.stock_level}, running sum is {expected}",
                field="stock_history",
            )
    expected_stock = levels[-1] if levels else 0
    if product.stock != expected_stock:
        raise ValidationError(
            f"Product {product.id} stock {product.stock} does not match history total {expected_stock}",
            field="stock",
        )


def build_stock_entry(
    product: Product,
    change: int,
    change_type: StockChangeType,
    note: Optional[str],
    when: datetime,
) -> StockHistoryEntry:
    """
    Build the next stock history entry with an engine-computed level.

    Raises:
        ValidationError: For a zero change or one that would take stock below zero
    """
    if change == 0:
        raise ValidationError("Stock adjustment must be non-zero", field="change")
    new_level = current_stock(product) + change
    if new_level < 0:
        raise ValidationError(
            f"Adjustment of {change} would leave {product.sku} at {new_level} units",
            field="change",
        )
    if product.stock_history and when < product.stock_history[-1].date:
        when = product.stock_history[-1].date
    return StockHistoryEntry(
        date=when,
        stock_level=new_level,
        change=change,
        type=change_type,
        note=note or "Manual adjustment",
    )


def inventory_valuation(products: Sequence[Product], low_threshold: Optional[int] = None) -> InventoryValuation:
    """Retail and cost value of the stock on hand"""
    threshold = settings.LOW_STOCK_THRESHOLD if low_threshold is None else low_threshold
    return InventoryValuation(
        units=sum(p.stock for p in products),
        retail_value=to_money(sum((p.price * p.stock for p in products), Decimal("0"))),
        cost_value=to_money(sum((p.cost * p.stock for p in products), Decimal("0"))),
        low_stock=sum(1 for p in products if 0 < p.stock < threshold),
        out_of_stock=sum(1 for p in products if p.stock == 0),
    )
