"""
Workflow Models - Pydantic models for engine inputs and outputs.

These models describe what the engine hands back to a presentation layer:
change notifications, computed totals and aggregates, batch run reports
and AI analysis results.
"""

from datetime import date
from decimal import Decimal
from typing import Dict, List

from pydantic import BaseModel, Field

from .domain import Customer, EntityKind, Invoice, Quote, Ticket, TicketPriority, TicketStatus


# ============================================================================
# Store notifications
# ============================================================================

class ChangeEvent(BaseModel):
    """Published by the store after every create or update."""

    kind: EntityKind
    entity_id: str
    action: str = Field(..., description="'created' or 'updated'")


# ============================================================================
# Derived values
# ============================================================================

class Totals(BaseModel):
    """Money totals derived from line items."""

    subtotal: Decimal = Decimal("0.00")
    tax: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")


class DashboardSummary(BaseModel):
    """Headline numbers for the operations dashboard."""

    monthly_recurring_revenue: Decimal = Decimal("0")
    active_subscriptions: int = 0
    active_systems: int = 0
    open_tickets: int = 0
    critical_tickets: int = 0
    overdue_invoices: int = 0
    outstanding_revenue: Decimal = Decimal("0.00")
    collected_revenue: Decimal = Decimal("0.00")
    subscription_revenue: Decimal = Decimal("0.00")
    failed_payments: int = 0
    ticket_status_distribution: Dict[str, float] = Field(default_factory=dict)
    lead_pipeline_distribution: Dict[str, float] = Field(default_factory=dict)


class CustomerFinancialSummary(BaseModel):
    """Invoice and payment position of a single customer."""

    customer_id: str
    total_invoiced: Decimal = Decimal("0.00")
    total_paid: Decimal = Decimal("0.00")
    total_open: Decimal = Decimal("0.00")
    total_overdue: Decimal = Decimal("0.00")
    invoice_count: int = 0
    open_invoice_count: int = 0
    overdue_invoice_count: int = 0


class InventoryValuation(BaseModel):
    """Value of stock on hand."""

    units: int = 0
    retail_value: Decimal = Decimal("0.00")
    cost_value: Decimal = Decimal("0.00")
    low_stock: int = 0
    out_of_stock: int = 0


# ============================================================================
# Batch operations
# ============================================================================

class BillingFailure(BaseModel):
    """A subscription the billing run could not process."""

    subscription_id: str
    error: str


class BillingRunResult(BaseModel):
    """Report of one auto-billing run."""

    run_date: date
    created_invoice_ids: List[str] = Field(default_factory=list)
    failures: List[BillingFailure] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.created_invoice_ids)


# ============================================================================
# AI analysis
# ============================================================================

class AnalysisResult(BaseModel):
    """Classification returned for a free-text ticket description."""

    priority: TicketPriority
    category: str
    suggested_action: str
    estimated_time: str
    required_parts: List[str] = Field(default_factory=list)


# ============================================================================
# Query results
# ============================================================================

class CustomerActivity(BaseModel):
    """Everything recorded against one customer, for the detail view."""

    customer: Customer
    tickets: List[Ticket] = Field(default_factory=list)
    invoices: List[Invoice] = Field(default_factory=list)
    quotes: List[Quote] = Field(default_factory=list)

    @property
    def open_ticket_count(self) -> int:
        return sum(1 for t in self.tickets if t.status != TicketStatus.RESOLVED)
