"""
Query Service

Search, filter and grouping predicates behind the list views and the job
calendar. Everything here is a pure function over lists, recomputed on
each call; names on quotes, invoices and subscriptions are resolved from
the customer list at read time.
"""

import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from crm.models.domain import (
    Customer,
    Invoice,
    Lead,
    LeadStatus,
    Product,
    Quote,
    Role,
    Staff,
    Subscription,
    Ticket,
    TicketStatus,
)
from crm.models.workflow import CustomerActivity
from crm.services.derivations import add_months
from crm.utils.config import settings
from crm.utils.exceptions import ValidationError
from crm.utils.store import EntityStore

logger = logging.getLogger(__name__)

ALL = "All"
STOCK_LOW = "Low"
STOCK_OUT = "Out"

CALENDAR_VIEWS = ("day", "week", "month", "year")


def _matches(term: Optional[str], *fields: Optional[str]) -> bool:
    """Case-insensitive substring match of ``term`` against any field"""
    if not term or not term.strip():
        return True
    needle = term.strip().lower()
    return any(needle in (field or "").lower() for field in fields)


def customer_names(customers: Iterable[Customer]) -> Dict[str, str]:
    return {c.id: c.name for c in customers}


# ============================================================================
# Customers and staff
# ============================================================================

def search_customers(customers: Sequence[Customer], term: Optional[str]) -> List[Customer]:
    """Match on name, address or any installed system id"""
    return [
        c for c in customers
        if _matches(term, c.name, c.address, *[s.id for s in c.systems])
    ]


def filter_staff(staff: Sequence[Staff], term: Optional[str] = None, role: Optional[str] = ALL) -> List[Staff]:
    """Match on name or email, optionally limited to one role"""
    return [
        member for member in staff
        if _matches(term, member.name, member.email)
        and (not role or role == ALL or member.role == Role(role))
    ]


def technical_staff(staff: Sequence[Staff]) -> List[Staff]:
    """Staff who can be assigned to tickets and jobs"""
    return [s for s in staff if s.role in (Role.TECH, Role.ENGINEER)]


# ============================================================================
# Inventory
# ============================================================================

def filter_products(
    products: Sequence[Product],
    term: Optional[str] = None,
    category: Optional[str] = ALL,
    tag: Optional[str] = ALL,
    stock: Optional[str] = ALL,
    low_threshold: Optional[int] = None,
) -> List[Product]:
    """
    Filter the catalogue.

    Args:
        products: Products to filter
        term: Substring of the name or SKU
        category: Exact category, or "All"
        tag: Tag the product must carry, or "All"
        stock: "All", "Low" (0 < stock < threshold) or "Out" (stock == 0)
        low_threshold: Overrides settings.LOW_STOCK_THRESHOLD
    """
    threshold = settings.LOW_STOCK_THRESHOLD if low_threshold is None else low_threshold
    stock = stock or ALL
    if stock not in (ALL, STOCK_LOW, STOCK_OUT):
        raise ValidationError(f"Unknown stock filter '{stock}'", field="stock")

    def in_bucket(product: Product) -> bool:
        if stock == STOCK_LOW:
            return 0 < product.stock < threshold
        if stock == STOCK_OUT:
            return product.stock == 0
        return True

    return [
        p for p in products
        if _matches(term, p.name, p.sku)
        and (not category or category == ALL or p.category == category)
        and (not tag or tag == ALL or tag in p.tags)
        and in_bucket(p)
    ]


def product_categories(products: Sequence[Product]) -> List[str]:
    """Distinct categories in first-seen order, preceded by "All" """
    return [ALL] + list(dict.fromkeys(p.category for p in products))


def product_tags(products: Sequence[Product]) -> List[str]:
    return [ALL] + list(dict.fromkeys(tag for p in products for tag in p.tags))


# ============================================================================
# Billing
# ============================================================================

def search_quotes(quotes: Sequence[Quote], customers: Sequence[Customer], term: Optional[str]) -> List[Quote]:
    """Match on quote id or the resolved customer name"""
    names = customer_names(customers)
    return [q for q in quotes if _matches(term, q.id, names.get(q.customer_id))]


def search_invoices(invoices: Sequence[Invoice], customers: Sequence[Customer], term: Optional[str]) -> List[Invoice]:
    """Match on invoice id or the resolved customer name"""
    names = customer_names(customers)
    return [i for i in invoices if _matches(term, i.id, names.get(i.customer_id))]


def search_subscriptions(
    subscriptions: Sequence[Subscription],
    customers: Sequence[Customer],
    term: Optional[str],
) -> List[Subscription]:
    """Match on the resolved customer name or the plan name"""
    names = customer_names(customers)
    return [s for s in subscriptions if _matches(term, names.get(s.customer_id), s.plan_name)]


# ============================================================================
# Pipelines
# ============================================================================

def leads_by_status(leads: Sequence[Lead]) -> Dict[str, List[Lead]]:
    """Pipeline columns keyed by status, every status present"""
    columns: Dict[str, List[Lead]] = {status.value: [] for status in LeadStatus}
    for lead in leads:
        columns[lead.status.value].append(lead)
    return columns


def engineer_review_queue(leads: Sequence[Lead]) -> List[Lead]:
    return [l for l in leads if l.status == LeadStatus.ENGINEER_REVIEW]


def open_service_requests(tickets: Sequence[Ticket]) -> List[Ticket]:
    """Unresolved free after-sales service tickets"""
    return [t for t in tickets if t.is_free_service and t.status != TicketStatus.RESOLVED]


def tickets_by_status(tickets: Sequence[Ticket]) -> Dict[str, List[Ticket]]:
    columns: Dict[str, List[Ticket]] = {status.value: [] for status in TicketStatus}
    for ticket in tickets:
        columns[ticket.status.value].append(ticket)
    return columns


def customer_activity(store: EntityStore, customer_id: str) -> CustomerActivity:
    """The customer's tickets, invoices and quotes"""
    return CustomerActivity(
        customer=store.customers.get(customer_id),
        tickets=store.tickets.find(lambda t: t.customer_id == customer_id),
        invoices=store.invoices.find(lambda i: i.customer_id == customer_id),
        quotes=store.quotes.find(lambda q: q.customer_id == customer_id),
    )


# ============================================================================
# Job calendar
# ============================================================================

def _check_view(view: str):
    if view not in CALENDAR_VIEWS:
        raise ValidationError(f"Unknown calendar view '{view}'", field="view")


def period_range(view: str, anchor: date) -> Tuple[date, date]:
    """
    Inclusive first and last day of the period containing ``anchor``.

    Weeks run Sunday to Saturday.
    """
    _check_view(view)
    if view == "day":
        return anchor, anchor
    if view == "week":
        start = anchor - timedelta(days=(anchor.weekday() + 1) % 7)
        return start, start + timedelta(days=6)
    if view == "month":
        start = anchor.replace(day=1)
        return start, add_months(start, 1) - timedelta(days=1)
    return date(anchor.year, 1, 1), date(anchor.year, 12, 31)


def shift_anchor(view: str, anchor: date, direction: int) -> date:
    """Move the calendar anchor one period forward (+1) or back (-1)"""
    _check_view(view)
    if direction not in (1, -1):
        raise ValidationError("direction must be 1 or -1", field="direction")
    if view == "day":
        return anchor + timedelta(days=direction)
    if view == "week":
        return anchor + timedelta(days=7 * direction)
    if view == "month":
        return add_months(anchor, direction)
    return add_months(anchor, 12 * direction)


def scheduled_jobs(
    tickets: Sequence[Ticket],
    start: date,
    end: date,
    technician_id: Optional[str] = None,
) -> List[Ticket]:
    """Tickets scheduled within [start, end], optionally for one technician, by date"""
    jobs = [
        t for t in tickets
        if t.scheduled_date is not None
        and start <= t.scheduled_date.date() <= end
        and (not technician_id or t.assigned_tech == technician_id)
    ]
    return sorted(jobs, key=lambda t: t.scheduled_date)
