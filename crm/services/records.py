"""
Record Service

Create and edit operations behind the application's forms. Each method
validates its inputs, assigns an id from the store, stamps the creation
history entry and, where a status must change, hands off to the
transition engine. Totals and stock levels are always derived here,
never taken from the caller.
"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence

from crm.models.domain import (
    AlarmSystem,
    BillingCycle,
    Customer,
    EntityKind,
    Invoice,
    InvoiceStatus,
    JobType,
    Lead,
    LineItem,
    Product,
    Quote,
    QuoteStatus,
    Role,
    Staff,
    StockChangeType,
    Subscription,
    Ticket,
    TicketPriority,
    TicketStatus,
)
from crm.services.auth import find_staff_by_email, update_staff
from crm.services.derivations import build_stock_entry, totals_patch
from crm.services.dispatcher import next_billing_date
from crm.services.ticket_analyzer import TicketAnalyzer, to_ticket_analysis
from crm.services.transitions import TransitionEngine
from crm.utils.config import settings
from crm.utils.exceptions import ValidationError

logger = logging.getLogger(__name__)

QUOTE_VALIDITY_DAYS = 30

TICKET_EDITABLE_FIELDS = {
    "title",
    "description",
    "priority",
    "job_type",
    "scheduled_date",
    "estimated_duration",
    "location",
    "required_tools",
    "system_id",
}

PRODUCT_EDITABLE_FIELDS = {
    "name",
    "category",
    "description",
    "price",
    "cost",
    "warranty",
    "sku",
    "image",
    "tags",
}

CUSTOMER_EDITABLE_FIELDS = {"name", "email", "phone", "address", "contract_value", "notes"}


def _require(**fields):
    """Raise ValidationError for the first blank required field"""
    for name, value in fields.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"'{name}' is required", field=name)


def _money(value, field: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"'{field}' must be a number", field=field) from e
    if amount < 0:
        raise ValidationError(f"'{field}' cannot be negative", field=field)
    return amount


def _check_fields(patch: Dict[str, Any], allowed, kind: str):
    unknown = sorted(set(patch) - set(allowed))
    if unknown:
        raise ValidationError(f"Cannot edit {kind} field(s): {', '.join(unknown)}", field=unknown[0])


class RecordService:
    """Form-boundary create/edit operations for every entity kind"""

    def __init__(self, engine: TransitionEngine, analyzer: Optional[TicketAnalyzer] = None):
        self.engine = engine
        self.store = engine.store
        self.clock = engine.clock
        self.analyzer = analyzer

    def _with_creation_entry(self, entity, action: str, actor: str, details: str):
        return entity.model_copy(update={
            "history": [self.engine.history_entry(entity, action, actor, details)],
        })

    # ========================================================================
    # Customers and staff
    # ========================================================================

    def create_customer(
        self,
        name: str,
        email: str,
        phone: str = "",
        address: str = "",
        contract_value=0,
        notes: str = "",
        systems: Optional[List[AlarmSystem]] = None,
    ) -> Customer:
        _require(name=name, email=email)
        customer = self.store.customers.create(Customer(
            name=name.strip(),
            email=email.strip(),
            phone=phone,
            address=address,
            contract_value=_money(contract_value or 0, "contract_value"),
            notes=notes,
            systems=list(systems or []),
        ))
        logger.info(f"Created customer {customer.id} ({customer.name})")
        return customer

    def update_customer(self, customer_id: str, patch: Dict[str, Any]) -> Customer:
        _check_fields(patch, CUSTOMER_EDITABLE_FIELDS, "customer")
        if "name" in patch or "email" in patch:
            _require(**{k: patch[k] for k in ("name", "email") if k in patch})
        if "contract_value" in patch:
            patch = {**patch, "contract_value": _money(patch["contract_value"], "contract_value")}
        return self.store.customers.update(customer_id, patch)

    def add_system(self, customer_id: str, system: AlarmSystem) -> Customer:
        """Register an installed alarm panel on a customer account"""
        customer = self.store.customers.get(customer_id)
        if any(s.id == system.id for s in customer.systems):
            raise ValidationError(f"System {system.id} already registered for {customer_id}", field="systems")
        return self.store.customers.update(customer_id, {"systems": [*customer.systems, system]})

    def create_staff(self, name: str, email: str, role: Role, phone: str = "") -> Staff:
        _require(name=name, email=email, role=role)
        if find_staff_by_email(self.store, email) is not None:
            raise ValidationError(f"Email {email} is already registered", field="email")
        prefix = {Role.ENGINEER: "ENG", Role.TECH: "TECH"}.get(Role(role))
        staff = Staff(name=name.strip(), email=email.strip(), role=Role(role), phone=phone)
        if prefix:
            staff = staff.model_copy(update={"id": self.store.staff.next_id(prefix)})
        staff = self.store.staff.create(staff)
        logger.info(f"Created staff {staff.id} ({staff.role.value})")
        return staff

    def update_staff(self, staff_id: str, patch: Dict[str, Any]) -> Staff:
        """Edit a staff member's name, email or phone"""
        return update_staff(self.store, staff_id, patch)

    # ========================================================================
    # Leads
    # ========================================================================

    def create_lead(
        self,
        customer_name: str,
        actor: str,
        contact_name: str = "",
        email: str = "",
        phone: str = "",
        address: str = "",
        assigned_sales_id: Optional[str] = None,
        estimated_value=0,
        requirements: str = "",
        notes: str = "",
    ) -> Lead:
        _require(customer_name=customer_name)
        if assigned_sales_id:
            self.store.staff.get(assigned_sales_id)
        lead = Lead(
            id=self.store.leads.next_id(),
            customer_name=customer_name.strip(),
            contact_name=contact_name,
            email=email,
            phone=phone,
            address=address,
            assigned_sales_id=assigned_sales_id,
            estimated_value=_money(estimated_value or 0, "estimated_value"),
            requirements=requirements,
            notes=notes,
            created_at=self.clock.now(),
        )
        lead = self._with_creation_entry(lead, "Lead Created", actor, "Initial lead creation.")
        return self.store.leads.create(lead)

    # ========================================================================
    # Quotes and invoices
    # ========================================================================

    def create_quote(
        self,
        customer_id: str,
        items: Sequence[LineItem],
        actor: str,
        notes: str = "",
        expiry_date: Optional[date] = None,
    ) -> Quote:
        """
        Create a Draft quote with derived totals.

        Raises:
            ValidationError: If the customer is missing or no items are given
            NotFoundError: If the customer does not exist
        """
        _require(customer_id=customer_id)
        self.store.customers.get(customer_id)
        self._validate_items(items)
        today = self.clock.today()
        quote = Quote(
            id=self.store.quotes.next_id(),
            customer_id=customer_id,
            issued_on=today,
            expiry_date=expiry_date or today + timedelta(days=QUOTE_VALIDITY_DAYS),
            status=QuoteStatus.DRAFT,
            notes=notes,
            **totals_patch(self._numbered(items)),
        )
        quote = self._with_creation_entry(quote, "Quote Created", actor, f"Total {quote.total_amount}")
        quote = self.store.quotes.create(quote)
        logger.info(f"Created quote {quote.id} for {customer_id}: {quote.total_amount}")
        return quote

    def revise_quote(
        self,
        quote_id: str,
        items: Sequence[LineItem],
        actor: str,
        notes: Optional[str] = None,
    ) -> Quote:
        """
        Replace a quote's line items and recompute its totals.

        Only Draft quotes can be edited; a Rejected quote is moved back to
        Draft by the edit itself.
        """
        quote = self.store.quotes.get(quote_id)
        if quote.status not in (QuoteStatus.DRAFT, QuoteStatus.REJECTED):
            raise ValidationError(
                f"Quote {quote_id} is {quote.status.value}; only draft or rejected quotes can be edited",
                field="status",
            )
        self._validate_items(items)
        if quote.status == QuoteStatus.REJECTED:
            self.engine.apply_transition(EntityKind.QUOTE, quote_id, QuoteStatus.DRAFT, actor)

        patch = totals_patch(self._numbered(items))
        if notes is not None:
            patch["notes"] = notes
        return self.engine.record(
            EntityKind.QUOTE, quote_id, "Quote Edited", actor,
            details=f"Total {patch['total_amount']}",
            patch=patch,
        )

    def create_invoice(
        self,
        customer_id: str,
        items: Sequence[LineItem],
        actor: str,
        due_date: Optional[date] = None,
    ) -> Invoice:
        _require(customer_id=customer_id)
        self.store.customers.get(customer_id)
        self._validate_items(items)
        today = self.clock.today()
        invoice = Invoice(
            id=self.store.invoices.next_id(),
            customer_id=customer_id,
            issued_on=today,
            due_date=due_date or today + timedelta(days=settings.INVOICE_DUE_DAYS),
            status=InvoiceStatus.DRAFT,
            **totals_patch(self._numbered(items)),
        )
        if invoice.due_date < today:
            raise ValidationError("Due date cannot precede the invoice date", field="due_date")
        invoice = self._with_creation_entry(invoice, "Invoice Created", actor, f"Total {invoice.total_amount}")
        return self.store.invoices.create(invoice)

    def revise_invoice(self, invoice_id: str, items: Sequence[LineItem], actor: str) -> Invoice:
        """Replace a Draft invoice's line items"""
        invoice = self.store.invoices.get(invoice_id)
        if invoice.status != InvoiceStatus.DRAFT:
            raise ValidationError(
                f"Invoice {invoice_id} is {invoice.status.value}; only drafts can be edited",
                field="status",
            )
        self._validate_items(items)
        patch = totals_patch(self._numbered(items))
        return self.engine.record(
            EntityKind.INVOICE, invoice_id, "Invoice Edited", actor,
            details=f"Total {patch['total_amount']}",
            patch=patch,
        )

    def line_item_for_product(self, product_id: str, quantity: int = 1) -> LineItem:
        """Build a line item priced from the inventory record"""
        product = self.store.products.get(product_id)
        return LineItem(
            product_id=product.id,
            product_name=product.name,
            quantity=quantity,
            unit_price=product.price,
        )

    def _validate_items(self, items: Sequence[LineItem]):
        if not items:
            raise ValidationError("At least one line item is required", field="items")
        for item in items:
            if not item.product_name.strip():
                raise ValidationError("Line items need a description", field="items")
            if item.quantity <= 0:
                raise ValidationError(f"Quantity for '{item.product_name}' must be positive", field="items")
            if item.unit_price < 0:
                raise ValidationError(f"Price for '{item.product_name}' cannot be negative", field="items")

    @staticmethod
    def _numbered(items: Sequence[LineItem]) -> List[LineItem]:
        return [
            item.model_copy(update={"id": item.id or str(index)}, deep=True)
            for index, item in enumerate(items, start=1)
        ]

    # ========================================================================
    # Tickets and jobs
    # ========================================================================

    def create_ticket(
        self,
        customer_id: str,
        title: str,
        actor: str,
        description: str = "",
        system_id: Optional[str] = None,
        priority: Optional[TicketPriority] = None,
        job_type: JobType = JobType.SERVICE,
        assigned_tech: Optional[str] = None,
        analyze: bool = True,
    ) -> Ticket:
        """
        Open a service ticket, enriched by the AI analyzer when available.

        The analyzer's priority is used unless one is given explicitly. When a
        technician is named the ticket is assigned through the engine.
        """
        _require(customer_id=customer_id, title=title)
        customer = self.store.customers.get(customer_id)

        ai_analysis = None
        if analyze and self.analyzer is not None and description.strip():
            system = next((s for s in customer.systems if s.id == system_id), None)
            result = self.analyzer.analyze(description, system.type if system else None)
            ai_analysis = to_ticket_analysis(result)
            if priority is None:
                priority = result.priority

        ticket = Ticket(
            id=self.store.tickets.next_id(),
            customer_id=customer_id,
            system_id=system_id or "UNKNOWN",
            title=title.strip(),
            description=description,
            status=TicketStatus.OPEN,
            priority=priority or TicketPriority.LOW,
            job_type=job_type,
            created_at=self.clock.now(),
            ai_analysis=ai_analysis,
            location=customer.address or None,
            required_tools=list(ai_analysis.required_parts) if ai_analysis else [],
        )
        ticket = self._with_creation_entry(ticket, "Ticket Created", actor, ticket.title)
        ticket = self.store.tickets.create(ticket)
        logger.info(f"Created ticket {ticket.id} ({ticket.priority.value}) for {customer_id}")

        if assigned_tech:
            ticket = self.engine.apply_transition(
                EntityKind.TICKET, ticket.id, TicketStatus.ASSIGNED, actor,
                {"assigned_tech": assigned_tech},
            )
        return ticket

    def create_job(
        self,
        customer_id: str,
        title: str,
        actor: str,
        scheduled_date: datetime,
        job_type: JobType = JobType.SERVICE,
        assigned_tech: Optional[str] = None,
        priority: TicketPriority = TicketPriority.MEDIUM,
        estimated_duration: Optional[str] = None,
        location: Optional[str] = None,
        description: str = "",
    ) -> Ticket:
        """Schedule a field job on the calendar"""
        _require(customer_id=customer_id, title=title, scheduled_date=scheduled_date)
        customer = self.store.customers.get(customer_id)
        job = Ticket(
            id=self.store.tickets.next_id("JOB"),
            customer_id=customer_id,
            system_id="N/A",
            title=title.strip(),
            description=description,
            status=TicketStatus.OPEN,
            priority=priority,
            job_type=job_type,
            scheduled_date=scheduled_date,
            estimated_duration=estimated_duration,
            location=location or customer.address or None,
            created_at=self.clock.now(),
        )
        job = self._with_creation_entry(
            job, "Job Scheduled", actor, f"{job_type.value} on {scheduled_date.date().isoformat()}"
        )
        job = self.store.tickets.create(job)
        if assigned_tech:
            job = self.engine.apply_transition(
                EntityKind.TICKET, job.id, TicketStatus.ASSIGNED, actor,
                {"assigned_tech": assigned_tech},
            )
        return job

    def update_ticket(self, ticket_id: str, patch: Dict[str, Any], actor: str) -> Ticket:
        """Edit ticket fields other than status and assignment"""
        _check_fields(patch, TICKET_EDITABLE_FIELDS, "ticket")
        if "title" in patch:
            _require(title=patch["title"])
        return self.engine.record(
            EntityKind.TICKET, ticket_id, "Ticket Updated", actor,
            details=f"Updated {', '.join(sorted(patch))}",
            patch=patch,
        )

    # ========================================================================
    # Products
    # ========================================================================

    def create_product(
        self,
        name: str,
        sku: str,
        category: str = "General",
        price=0,
        cost=0,
        stock: int = 0,
        description: str = "",
        warranty: str = "",
        image: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Product:
        """
        Add a product; opening stock is recorded as an initial Restock entry.

        Raises:
            ValidationError: On a missing name/SKU, a duplicate SKU or negative stock
        """
        _require(name=name, sku=sku)
        if self.store.products.find(lambda p: p.sku.lower() == sku.strip().lower()):
            raise ValidationError(f"SKU {sku} already exists", field="sku")
        if stock < 0:
            raise ValidationError("Opening stock cannot be negative", field="stock")

        product = Product(
            id=self.store.products.next_id(),
            name=name.strip(),
            sku=sku.strip(),
            category=category or "General",
            price=_money(price or 0, "price"),
            cost=_money(cost or 0, "cost"),
            description=description,
            warranty=warranty,
            image=image,
            tags=list(tags or []),
        )
        if stock:
            entry = build_stock_entry(product, stock, StockChangeType.RESTOCK, "Initial stock", self.clock.now())
            product = product.model_copy(update={"stock": entry.stock_level, "stock_history": [entry]})
        return self.store.products.create(product)

    def update_product(self, product_id: str, patch: Dict[str, Any]) -> Product:
        """Edit catalogue fields; stock only moves through adjust_stock"""
        _check_fields(patch, PRODUCT_EDITABLE_FIELDS, "product")
        patch = dict(patch)
        for field in ("price", "cost"):
            if field in patch:
                patch[field] = _money(patch[field], field)
        if "sku" in patch:
            _require(sku=patch["sku"])
            sku = patch["sku"].strip().lower()
            if self.store.products.find(lambda p: p.id != product_id and p.sku.lower() == sku):
                raise ValidationError(f"SKU {patch['sku']} already exists", field="sku")
        return self.store.products.update(product_id, patch)

    def adjust_stock(
        self,
        product_id: str,
        change: int,
        change_type: StockChangeType = StockChangeType.ADJUSTMENT,
        note: Optional[str] = None,
    ) -> Product:
        """
        Record a signed stock movement.

        Raises:
            ValidationError: For a zero change or one that would make stock negative
        """
        product = self.store.products.get(product_id)
        entry = build_stock_entry(product, change, StockChangeType(change_type), note, self.clock.now())
        updated = self.store.products.update(product_id, {
            "stock": entry.stock_level,
            "stock_history": [*product.stock_history, entry],
        })
        logger.info(f"Stock {product.sku}: {change:+d} -> {entry.stock_level} ({entry.type.value})")
        return updated

    # ========================================================================
    # Subscriptions
    # ========================================================================

    def create_subscription(
        self,
        customer_id: str,
        plan_name: str,
        amount,
        actor: str,
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
        start_date: Optional[date] = None,
    ) -> Subscription:
        """Start an Active monitoring plan; the first bill falls one cycle after the start"""
        _require(customer_id=customer_id, plan_name=plan_name)
        self.store.customers.get(customer_id)
        amount = _money(amount, "amount")
        if amount == 0:
            raise ValidationError("'amount' must be positive", field="amount")
        start = start_date or self.clock.today()
        subscription = Subscription(
            id=self.store.subscriptions.next_id(),
            customer_id=customer_id,
            plan_name=plan_name.strip(),
            amount=amount,
            billing_cycle=BillingCycle(billing_cycle),
            start_date=start,
            next_billing_date=next_billing_date(start, billing_cycle),
        )
        subscription = self._with_creation_entry(
            subscription, "Subscription Started", actor,
            f"{subscription.plan_name} at {amount} {subscription.billing_cycle.value}",
        )
        return self.store.subscriptions.create(subscription)
