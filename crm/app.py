"""
CRM application wiring

Builds the store, clock, transition engine, dispatcher, record service,
ticket analyzer and session, and exposes the operations a presentation
layer calls. Views subscribe for change notifications and re-read the
collections they show.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

from crm.models.domain import EntityKind, Invoice
from crm.models.workflow import (
    BillingRunResult,
    ChangeEvent,
    CustomerActivity,
    CustomerFinancialSummary,
    DashboardSummary,
    InventoryValuation,
)
from crm.seed import load_mock_data
from crm.services.auth import SessionService
from crm.services.deferred import DeferredAction, QueuedScheduler, Scheduler
from crm.services.derivations import customer_financial_summary, dashboard_summary, inventory_valuation
from crm.services.dispatcher import WorkflowDispatcher
from crm.services.documents import CompanyProfile, render_invoice_document
from crm.services.queries import customer_activity
from crm.services.records import RecordService
from crm.services.ticket_analyzer import TicketAnalyzer, get_ticket_analyzer
from crm.services.transitions import TransitionEngine
from crm.utils.clock import Clock, SystemClock
from crm.utils.config import settings
from crm.utils.store import EntityStore

logger = logging.getLogger(__name__)


class CRMApplication:
    """Single entry point for the CRM engine"""

    def __init__(
        self,
        clock: Optional[Clock] = None,
        analyzer: Optional[TicketAnalyzer] = None,
        scheduler: Optional[Scheduler] = None,
        seed: bool = False,
    ):
        """
        Args:
            clock: Time source (defaults to SystemClock)
            analyzer: Ticket analyzer (defaults to the global instance)
            scheduler: Scheduler for deferred actions (defaults to a QueuedScheduler
                pumped by run_pending)
            seed: Load the mock data set
        """
        self.clock = clock or SystemClock()
        self.store = EntityStore()
        self.engine = TransitionEngine(self.store, self.clock)
        self.dispatcher = WorkflowDispatcher(self.engine)
        self.analyzer = analyzer or get_ticket_analyzer()
        self.records = RecordService(self.engine, self.analyzer)
        self.scheduler = scheduler if scheduler is not None else QueuedScheduler()
        self.session = SessionService(self.store, scheduler=self.scheduler)
        self.last_billing_run: Optional[BillingRunResult] = None
        self._billing = DeferredAction(
            "auto-billing",
            self.dispatcher.run_auto_billing,
            delay=settings.BILLING_DELAY_SECONDS,
            scheduler=self.scheduler,
            on_complete=self._billing_finished,
        )
        if seed:
            load_mock_data(self.store)
        logger.info("CRM application ready")

    def subscribe(self, listener: Callable[[ChangeEvent], None]) -> Callable[[], None]:
        return self.store.subscribe(listener)

    def run_pending(self) -> int:
        """Pump the default scheduler; deferred work runs on the calling thread"""
        return self.scheduler.run_pending()

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    def transition(
        self,
        kind: EntityKind,
        entity_id: str,
        target_status: str,
        actor: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> BaseModel:
        return self.engine.apply_transition(kind, entity_id, target_status, actor, metadata)

    def toggle(self, kind: EntityKind, entity_id: str, toggle_name: str, actor: str) -> BaseModel:
        return self.engine.toggle(kind, entity_id, toggle_name, actor)

    def allowed_actions(self, kind: EntityKind, entity_id: str) -> List[str]:
        """Target statuses offered for an entity in its current status"""
        entity = self.store.collection(kind).get(entity_id)
        return [status.value for status in self.engine.allowed_targets(EntityKind(kind), entity.status, entity)]

    # ------------------------------------------------------------------
    # Billing
    # ------------------------------------------------------------------

    @property
    def billing_in_progress(self) -> bool:
        return self._billing.in_progress

    def start_billing_run(self, actor: str = "System"):
        """Run auto-billing after the configured delay; refused while one is pending"""
        self._billing.trigger(actor)

    def _billing_finished(self, result: BillingRunResult):
        self.last_billing_run = result

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def dashboard(self) -> DashboardSummary:
        return dashboard_summary(self.store, self.clock.today())

    def customer_financials(self, customer_id: str) -> CustomerFinancialSummary:
        return customer_financial_summary(self.store, customer_id, self.clock.today())

    def customer_activity(self, customer_id: str) -> CustomerActivity:
        return customer_activity(self.store, customer_id)

    def inventory_valuation(self) -> InventoryValuation:
        return inventory_valuation(self.store.products.list())

    def invoice_document(self, invoice_id: str, company: Optional[CompanyProfile] = None) -> str:
        """Printable HTML for an invoice"""
        invoice: Invoice = self.store.invoices.get(invoice_id)
        customer = None
        if invoice.customer_id in self.store.customers:
            customer = self.store.customers.get(invoice.customer_id)
        return render_invoice_document(invoice, customer, company)
