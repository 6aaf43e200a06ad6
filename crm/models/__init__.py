"""
Models package for the CRM engine.
"""

# Domain models
from .domain import (
    AlarmSystem,
    Customer,
    Staff,
    Lead,
    Quote,
    Invoice,
    LineItem,
    Ticket,
    TicketAnalysis,
    Subscription,
    Product,
    StockHistoryEntry,
    HistoryEntry,
    EntityKind,
    SystemStatus,
    Role,
    LeadStatus,
    QuoteStatus,
    InvoiceStatus,
    TicketStatus,
    TicketPriority,
    JobType,
    SubscriptionStatus,
    BillingCycle,
    PaymentStatus,
    StockChangeType,
)

# Workflow models
from .workflow import (
    ChangeEvent,
    Totals,
    DashboardSummary,
    CustomerFinancialSummary,
    InventoryValuation,
    BillingFailure,
    BillingRunResult,
    AnalysisResult,
    CustomerActivity,
)

__all__ = [
    # Domain
    "AlarmSystem",
    "Customer",
    "Staff",
    "Lead",
    "Quote",
    "Invoice",
    "LineItem",
    "Ticket",
    "TicketAnalysis",
    "Subscription",
    "Product",
    "StockHistoryEntry",
    "HistoryEntry",
    "EntityKind",
    "SystemStatus",
    "Role",
    "LeadStatus",
    "QuoteStatus",
    "InvoiceStatus",
    "TicketStatus",
    "TicketPriority",
    "JobType",
    "SubscriptionStatus",
    "BillingCycle",
    "PaymentStatus",
    "StockChangeType",
    # Workflow
    "ChangeEvent",
    "Totals",
    "DashboardSummary",
    "CustomerFinancialSummary",
    "InventoryValuation",
    "BillingFailure",
    "BillingRunResult",
    "AnalysisResult",
    "CustomerActivity",
]
