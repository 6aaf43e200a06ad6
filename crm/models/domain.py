"""
Domain Models - Pydantic models for CRM domain entities.

These models represent the core business entities of the alarm service
company (customers, leads, quotes, invoices, tickets, subscriptions,
products, staff) and are used for validation whenever an entity is
created, edited or moved through the transition engine.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict


# ============================================================================
# Enums
# ============================================================================

class EntityKind(str, Enum):
    """Collections held by the entity store."""
    CUSTOMER = "customer"
    STAFF = "staff"
    LEAD = "lead"
    QUOTE = "quote"
    INVOICE = "invoice"
    TICKET = "ticket"
    SUBSCRIPTION = "subscription"
    PRODUCT = "product"


class SystemStatus(str, Enum):
    """Live status reported by an installed alarm panel."""
    ARMED_AWAY = "Armed Away"
    ARMED_STAY = "Armed Stay"
    DISARMED = "Disarmed"
    ALARM_TRIGGERED = "ALARM TRIGGERED"
    TROUBLE = "Trouble"
    OFFLINE = "Offline"


class Role(str, Enum):
    """Staff roles."""
    SALES = "Sales"
    ENGINEER = "Engineer"
    ADMIN = "Admin"
    TECH = "Technician"


class LeadStatus(str, Enum):
    """Status values for sales leads."""
    NEW = "New"
    CONTACTED = "Contacted"
    SITE_SURVEY = "Site Survey"
    ENGINEER_REVIEW = "Engineer Review"
    QUOTE_SENT = "Quote Sent"
    CLOSED_WON = "Closed Won"
    CLOSED_LOST = "Closed Lost"


class QuoteStatus(str, Enum):
    """Status values for quotes."""
    DRAFT = "Draft"
    SENT = "Sent"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"


class InvoiceStatus(str, Enum):
    """Status values for invoices."""
    DRAFT = "Draft"
    SENT = "Sent"
    PAID = "Paid"
    OVERDUE = "Overdue"


class TicketStatus(str, Enum):
    """Status values for service tickets and scheduled jobs."""
    OPEN = "Open"
    ASSIGNED = "Assigned"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"


class TicketPriority(str, Enum):
    """Ticket urgency."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class JobType(str, Enum):
    """Kind of field visit."""
    SERVICE = "Service"
    INSTALL = "Install"
    MAINTENANCE = "Maintenance"


class SubscriptionStatus(str, Enum):
    """Status values for monitoring subscriptions."""
    ACTIVE = "Active"
    PAST_DUE = "Past Due"
    CANCELLED = "Cancelled"


class BillingCycle(str, Enum):
    """Subscription billing period."""
    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    ANNUALLY = "Annually"


class PaymentStatus(str, Enum):
    """Outcome of the most recent subscription charge."""
    SUCCESS = "Success"
    FAILED = "Failed"
    PENDING = "Pending"


class StockChangeType(str, Enum):
    """Reason for a stock movement."""
    RESTOCK = "Restock"
    SALE = "Sale"
    ADJUSTMENT = "Adjustment"
    RETURN = "Return"


# ============================================================================
# Shared value objects
# ============================================================================

class HistoryEntry(BaseModel):
    """One audit record appended by a transition or creation."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    date: datetime
    action: str
    actor: str
    details: str = ""


class LineItem(BaseModel):
    """A priced line on a quote or invoice."""

    model_config = ConfigDict(from_attributes=True)

    id: str = ""
    product_id: str = ""
    product_name: str = ""
    quantity: int = Field(default=1, ge=0)
    unit_price: Decimal = Decimal("0")
    total: Decimal = Decimal("0")


class TicketAnalysis(BaseModel):
    """Guidance attached to a ticket by the AI analyzer."""

    suggested_action: str
    estimated_time: str
    required_parts: List[str] = Field(default_factory=list)


class StockHistoryEntry(BaseModel):
    """Signed stock movement with the running level after it."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    date: datetime
    stock_level: int
    change: int
    type: StockChangeType
    note: Optional[str] = None


# ============================================================================
# Domain Models
# ============================================================================

class AlarmSystem(BaseModel):
    """Alarm panel installed at a customer site."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    install_date: date
    last_service_date: Optional[date] = None
    status: SystemStatus = SystemStatus.DISARMED
    zones: int = 0


class Customer(BaseModel):
    """Customer account."""

    model_config = ConfigDict(from_attributes=True)

    id: str = ""
    name: str
    email: str
    phone: str = ""
    address: str = ""
    contract_value: Decimal = Decimal("0")
    systems: List[AlarmSystem] = Field(default_factory=list)
    notes: str = ""
    free_service_claimed: bool = False
    free_service_ticket_id: Optional[str] = None


class Staff(BaseModel):
    """Employee record."""

    model_config = ConfigDict(from_attributes=True)

    id: str = ""
    name: str
    role: Role
    email: str
    phone: str = ""
    active_leads: int = 0


class Lead(BaseModel):
    """Sales lead moving through the pipeline."""

    model_config = ConfigDict(from_attributes=True)

    id: str = ""
    customer_name: str
    contact_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    status: LeadStatus = LeadStatus.NEW
    assigned_sales_id: Optional[str] = None
    assigned_engineer_id: Optional[str] = None
    notes: str = ""
    estimated_value: Decimal = Decimal("0")
    requirements: str = ""
    created_at: datetime
    customer_id: Optional[str] = None
    history: List[HistoryEntry] = Field(default_factory=list)


class Quote(BaseModel):
    """Priced proposal sent to a customer."""

    model_config = ConfigDict(from_attributes=True)

    id: str = ""
    customer_id: str
    issued_on: date
    expiry_date: Optional[date] = None
    items: List[LineItem] = Field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    status: QuoteStatus = QuoteStatus.DRAFT
    notes: str = ""
    converted_invoice_id: Optional[str] = None
    history: List[HistoryEntry] = Field(default_factory=list)


class Invoice(BaseModel):
    """Bill issued to a customer."""

    model_config = ConfigDict(from_attributes=True)

    id: str = ""
    customer_id: str
    issued_on: date
    due_date: date
    items: List[LineItem] = Field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    status: InvoiceStatus = InvoiceStatus.DRAFT
    source_quote_id: Optional[str] = None
    subscription_id: Optional[str] = None
    history: List[HistoryEntry] = Field(default_factory=list)


class Ticket(BaseModel):
    """Service ticket; scheduled jobs are tickets with a scheduled date."""

    model_config = ConfigDict(from_attributes=True)

    id: str = ""
    customer_id: str
    system_id: str = "UNKNOWN"
    title: str
    description: str = ""
    status: TicketStatus = TicketStatus.OPEN
    priority: TicketPriority = TicketPriority.LOW
    assigned_tech: Optional[str] = None
    created_at: datetime
    ai_analysis: Optional[TicketAnalysis] = None
    job_type: JobType = JobType.SERVICE
    scheduled_date: Optional[datetime] = None
    estimated_duration: Optional[str] = None
    location: Optional[str] = None
    required_tools: List[str] = Field(default_factory=list)
    is_free_service: bool = False
    history: List[HistoryEntry] = Field(default_factory=list)


class Subscription(BaseModel):
    """Recurring monitoring plan."""

    model_config = ConfigDict(from_attributes=True)

    id: str = ""
    customer_id: str
    plan_name: str
    amount: Decimal
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    start_date: date
    next_billing_date: date
    last_payment_status: PaymentStatus = PaymentStatus.PENDING
    history: List[HistoryEntry] = Field(default_factory=list)


class Product(BaseModel):
    """Inventory item; stock is the running sum of its stock history."""

    model_config = ConfigDict(from_attributes=True)

    id: str = ""
    name: str
    category: str = "General"
    description: str = ""
    price: Decimal = Decimal("0")
    cost: Decimal = Decimal("0")
    warranty: str = ""
    stock: int = 0
    sku: str
    image: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    stock_history: List[StockHistoryEntry] = Field(default_factory=list)
