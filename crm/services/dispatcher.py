"""
Side-Effect Dispatcher

Business actions that touch more than one entity:
- Quote -> Invoice conversion
- Engineer review of a lead design
- Auto-billing of active subscriptions
- One-time free service claims

It also registers the post-commit handlers the transition engine runs
after specific edges (quote rejected, lead won, subscription past due).
"""

import logging
from datetime import date, timedelta
from typing import Any, Dict, Optional

from crm.models.domain import (
    BillingCycle,
    Customer,
    EntityKind,
    Invoice,
    InvoiceStatus,
    Lead,
    LeadStatus,
    LineItem,
    PaymentStatus,
    Quote,
    QuoteStatus,
    Subscription,
    SubscriptionStatus,
    Ticket,
    TicketAnalysis,
    TicketPriority,
    TicketStatus,
)
from crm.models.workflow import BillingFailure, BillingRunResult
from crm.services.derivations import add_months, totals_patch
from crm.services.transitions import TransitionEngine
from crm.utils.config import settings
from crm.utils.exceptions import (
    BenefitAlreadyClaimedError,
    InvalidTransitionError,
    ValidationError,
)

logger = logging.getLogger(__name__)

CYCLE_MONTHS = {
    BillingCycle.MONTHLY: 1,
    BillingCycle.QUARTERLY: 3,
    BillingCycle.ANNUALLY: 12,
}

FREE_SERVICE_TITLE = "Free After-Sales Service Call"
FREE_SERVICE_DESCRIPTION = (
    "Customer has claimed their one-time free after-sales service benefit. "
    "Please schedule a technician visit."
)
FREE_SERVICE_GUIDANCE = TicketAnalysis(
    suggested_action="Schedule standard maintenance check and customer training.",
    estimated_time="1 hour",
    required_parts=[],
)


def next_billing_date(current: date, cycle: BillingCycle) -> date:
    return add_months(current, CYCLE_MONTHS[BillingCycle(cycle)])


class WorkflowDispatcher:
    """Cross-entity actions layered over the transition engine"""

    def __init__(self, engine: TransitionEngine):
        self.engine = engine
        self.store = engine.store
        self.clock = engine.clock
        self.register_handlers()

    def register_handlers(self):
        """Attach this dispatcher's post-commit handlers to the engine"""
        self.engine.register_side_effect("quote_rejected", self._on_quote_rejected)
        self.engine.register_side_effect("lead_won", self._on_lead_won)
        self.engine.register_side_effect("subscription_payment_failed", self._on_payment_failed)
        self.engine.register_side_effect("subscription_payment_recovered", self._on_payment_recovered)

    # ========================================================================
    # Quotes
    # ========================================================================

    def convert_quote_to_invoice(self, quote_id: str, actor: str) -> Invoice:
        """
        Create a Draft invoice from a Sent or Accepted quote.

        The quote is accepted first if needed and keeps a reference to the
        invoice, so converting it again is rejected instead of producing a
        second invoice.

        Args:
            quote_id: Quote to convert
            actor: Acting user, recorded in both histories

        Returns:
            The new invoice

        Raises:
            NotFoundError: If the quote does not exist
            InvalidTransitionError: If the quote is not Sent/Accepted or was already converted
        """
        quote = self.store.quotes.get(quote_id)
        if quote.converted_invoice_id:
            raise InvalidTransitionError(
                EntityKind.QUOTE.value, quote_id, quote.status.value, "Invoice",
                reason=f"already converted to {quote.converted_invoice_id}",
            )
        if quote.status not in (QuoteStatus.SENT, QuoteStatus.ACCEPTED):
            raise InvalidTransitionError(
                EntityKind.QUOTE.value, quote_id, quote.status.value, "Invoice",
                reason="only sent or accepted quotes can be converted",
            )
        if quote.status == QuoteStatus.SENT:
            quote = self.engine.apply_transition(
                EntityKind.QUOTE, quote_id, QuoteStatus.ACCEPTED, actor
            )

        today = self.clock.today()
        items = [item.model_copy(deep=True) for item in quote.items]
        invoice = Invoice(
            customer_id=quote.customer_id,
            issued_on=today,
            due_date=today + timedelta(days=settings.INVOICE_DUE_DAYS),
            status=InvoiceStatus.DRAFT,
            source_quote_id=quote.id,
            **totals_patch(items),
        )
        invoice = invoice.model_copy(update={"id": self.store.invoices.next_id()})
        invoice = invoice.model_copy(update={
            "history": [self.engine.history_entry(
                invoice, "Invoice Created", actor, f"Converted from quote {quote.id}"
            )],
        })
        invoice = self.store.invoices.create(invoice)

        self.engine.record(
            EntityKind.QUOTE, quote.id, "Converted to Invoice", actor,
            details=f"Invoice {invoice.id} created",
            patch={"converted_invoice_id": invoice.id},
        )
        logger.info(f"Converted quote {quote.id} to invoice {invoice.id} ({invoice.total_amount})")
        return invoice

    def _on_quote_rejected(self, quote: Quote, metadata: Dict[str, Any], actor: str):
        feedback = str(metadata.get("reason", "")).strip()
        line = f"[Changes Requested {self.clock.today().isoformat()}]: {feedback}"
        notes = f"{quote.notes}\n{line}" if quote.notes else line
        self.store.quotes.update(quote.id, {"notes": notes})

    # ========================================================================
    # Leads
    # ========================================================================

    def review_lead(
        self,
        lead_id: str,
        approve: bool,
        actor: str,
        feedback: Optional[str] = None,
    ) -> Lead:
        """
        Record an engineer's decision on a lead in Engineer Review.

        Approval moves the lead to Quote Sent. Rejection returns it to Site
        Survey and requires feedback, which lands in the history details.

        Raises:
            ValidationError: If rejecting without feedback
            InvalidTransitionError: If the lead is not in Engineer Review
        """
        if approve:
            return self.engine.apply_transition(
                EntityKind.LEAD, lead_id, LeadStatus.QUOTE_SENT, actor
            )
        if not feedback or not feedback.strip():
            raise ValidationError("Feedback is required when requesting changes", field="reason")
        return self.engine.apply_transition(
            EntityKind.LEAD, lead_id, LeadStatus.SITE_SURVEY, actor,
            {"reason": feedback.strip()},
        )

    def _on_lead_won(self, lead: Lead, metadata: Dict[str, Any], actor: str):
        if lead.customer_id:
            return
        customer = self.store.customers.create(Customer(
            name=lead.customer_name,
            email=lead.email,
            phone=lead.phone,
            address=lead.address,
            notes=lead.requirements,
        ))
        self.engine.record(
            EntityKind.LEAD, lead.id, "Customer Created", actor,
            details=f"Customer account {customer.id} opened",
            patch={"customer_id": customer.id},
        )
        logger.info(f"Lead {lead.id} won; created customer {customer.id}")

    # ========================================================================
    # Subscriptions
    # ========================================================================

    def run_auto_billing(self, actor: str = "System") -> BillingRunResult:
        """
        Invoice every Active subscription for its current cycle.

        Each subscription is processed on its own; a failure is logged and
        reported without stopping the run.

        Returns:
            BillingRunResult with created invoice ids and per-subscription failures
        """
        today = self.clock.today()
        result = BillingRunResult(run_date=today)

        for subscription in self.store.subscriptions.find(
            lambda s: s.status == SubscriptionStatus.ACTIVE
        ):
            try:
                invoice = self._bill_subscription(subscription, today, actor)
            except Exception as e:
                logger.error(f"Auto-billing failed for {subscription.id}: {e}")
                result.failures.append(BillingFailure(subscription_id=subscription.id, error=str(e)))
                continue
            result.created_invoice_ids.append(invoice.id)

        logger.info(
            f"Auto-billing run {today.isoformat()}: {result.succeeded} invoices, "
            f"{len(result.failures)} failures"
        )
        return result

    def _bill_subscription(self, subscription: Subscription, today: date, actor: str) -> Invoice:
        self.store.customers.get(subscription.customer_id)
        advanced = next_billing_date(subscription.next_billing_date, subscription.billing_cycle)
        item = LineItem(
            id="1",
            product_id="PLAN",
            product_name=f"{subscription.plan_name} ({subscription.billing_cycle.value})",
            quantity=1,
            unit_price=subscription.amount,
        )
        invoice = Invoice(
            id=self.store.invoices.next_id(),
            customer_id=subscription.customer_id,
            issued_on=today,
            due_date=today,
            status=InvoiceStatus.SENT,
            subscription_id=subscription.id,
            **totals_patch([item]),
        )
        invoice = invoice.model_copy(update={
            "history": [self.engine.history_entry(
                invoice, "Invoice Created", actor, f"Auto-billed from subscription {subscription.id}"
            )],
        })
        invoice = self.store.invoices.create(invoice)
        self.engine.record(
            EntityKind.SUBSCRIPTION, subscription.id, "Invoice Generated", actor,
            details=f"Invoice {invoice.id} for {invoice.total_amount}. Next billing {advanced.isoformat()}",
            patch={
                "next_billing_date": advanced,
                "last_payment_status": PaymentStatus.SUCCESS,
            },
        )
        return invoice

    def _on_payment_failed(self, subscription: Subscription, metadata: Dict[str, Any], actor: str):
        self.store.subscriptions.update(subscription.id, {"last_payment_status": PaymentStatus.FAILED})

    def _on_payment_recovered(self, subscription: Subscription, metadata: Dict[str, Any], actor: str):
        self.store.subscriptions.update(subscription.id, {"last_payment_status": PaymentStatus.SUCCESS})

    # ========================================================================
    # Customers
    # ========================================================================

    def claim_free_service(self, customer_id: str, actor: str) -> Ticket:
        """
        Open the one-time free after-sales service ticket for a customer.

        Raises:
            NotFoundError: If the customer does not exist
            BenefitAlreadyClaimedError: If the benefit was already used
        """
        customer = self.store.customers.get(customer_id)
        if customer.free_service_claimed:
            raise BenefitAlreadyClaimedError(customer_id)

        system_id = customer.systems[0].id if customer.systems else "GENERIC"
        ticket = Ticket(
            id=self.store.tickets.next_id(),
            customer_id=customer_id,
            system_id=system_id,
            title=FREE_SERVICE_TITLE,
            description=FREE_SERVICE_DESCRIPTION,
            status=TicketStatus.OPEN,
            priority=TicketPriority.HIGH,
            created_at=self.clock.now(),
            ai_analysis=FREE_SERVICE_GUIDANCE.model_copy(deep=True),
            location=customer.address or None,
            is_free_service=True,
        )
        ticket = ticket.model_copy(update={
            "history": [self.engine.history_entry(
                ticket, "Ticket Created", actor, "Free after-sales service claimed"
            )],
        })
        ticket = self.store.tickets.create(ticket)
        self.store.customers.update(customer_id, {
            "free_service_claimed": True,
            "free_service_ticket_id": ticket.id,
        })
        logger.info(f"Customer {customer_id} claimed free service ticket {ticket.id}")
        return ticket
