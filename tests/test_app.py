"""
Application wiring tests

End-to-end flows through CRMApplication with a fixed clock, a manual
scheduler and a mocked analyzer.
"""

import threading
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from crm.app import CRMApplication
from crm.services.deferred import QueuedScheduler
from crm.models import EntityKind, InvoiceStatus, TicketStatus
from crm.services.ticket_analyzer import DEFAULT_ANALYSIS
from crm.utils.exceptions import InvalidTransitionError, OperationInProgressError


@pytest.fixture
def app(clock, scheduler):
    analyzer = MagicMock()
    analyzer.analyze.return_value = DEFAULT_ANALYSIS.model_copy(deep=True)
    return CRMApplication(clock=clock, analyzer=analyzer, scheduler=scheduler, seed=True)


class TestApplication:
    """Test the assembled engine"""

    def test_seeded(self, app):
        assert len(app.store.customers) == 3
        assert app.dashboard().open_tickets == 3

    def test_allowed_actions(self, app):
        assert app.allowed_actions(EntityKind.INVOICE, "INV-2024-002") == ["Paid", "Overdue"]
        assert app.allowed_actions("ticket", "TKT-101") == ["Assigned"]

    def test_views_notified(self, app):
        events = []
        app.subscribe(events.append)

        app.toggle(EntityKind.INVOICE, "INV-2024-002", "mark_paid", "Admin")

        assert [(e.kind, e.entity_id, e.action) for e in events] == [
            (EntityKind.INVOICE, "INV-2024-002", "updated"),
        ]
        assert app.customer_financials("CUST-001").total_paid == Decimal("408.24")

    def test_ticket_lifecycle(self, app):
        ticket = app.records.create_ticket("CUST-003", "Zone 3 false alarms", "Admin",
                                           description="Rear door zone trips at night", system_id="SYS-C3")
        assert ticket.ai_analysis is not None

        app.transition(EntityKind.TICKET, ticket.id, TicketStatus.ASSIGNED, "Admin", {"assigned_tech": "TECH-001"})
        app.transition(EntityKind.TICKET, ticket.id, TicketStatus.IN_PROGRESS, "Mike Repairman")
        resolved = app.toggle(EntityKind.TICKET, ticket.id, "resolve", "Mike Repairman")

        assert resolved.status == TicketStatus.RESOLVED
        with pytest.raises(InvalidTransitionError):
            app.transition(EntityKind.TICKET, ticket.id, TicketStatus.OPEN, "Admin")

        activity = app.customer_activity("CUST-003")
        assert ticket.id in [t.id for t in activity.tickets]

    def test_billing_run(self, app, scheduler):
        app.start_billing_run("Admin")

        assert app.billing_in_progress
        with pytest.raises(OperationInProgressError):
            app.start_billing_run("Admin")

        scheduler.run_all()

        assert not app.billing_in_progress
        assert app.last_billing_run.succeeded == 2
        for invoice_id in app.last_billing_run.created_invoice_ids:
            assert app.store.invoices.get(invoice_id).status == InvoiceStatus.SENT

    def test_invoice_document(self, app):
        html = app.invoice_document("INV-2024-001")

        assert "Dr. Sarah Bennett" in html
        assert "$183.59" in html

    def test_inventory_valuation(self, app):
        assert app.inventory_valuation().units == 1069

    def test_paid_past_due_invoice_offers_overdue_only(self, app):
        assert app.allowed_actions(EntityKind.INVOICE, "INV-2024-001") == ["Overdue"]

    def test_profile_update_from_session(self, app, scheduler):
        app.session.begin_login("admin@securelogic.com")
        scheduler.run_all()

        updated = app.session.update_profile({"phone": "555-222-3333"})

        assert updated.phone == "555-222-3333"
        assert app.store.staff.get(updated.id).phone == "555-222-3333"


class TestDefaultScheduler:
    """Test deferred work without an injected scheduler"""

    def test_billing_mutates_store_on_calling_thread(self, clock):
        analyzer = MagicMock()
        app = CRMApplication(clock=clock, analyzer=analyzer, seed=True)
        threads = []
        app.subscribe(lambda event: threads.append(threading.current_thread()))

        app.start_billing_run("Admin")

        assert isinstance(app.scheduler, QueuedScheduler)
        assert app.billing_in_progress
        assert threads == []

        assert app.scheduler.run_all() == 1

        assert not app.billing_in_progress
        assert app.last_billing_run.succeeded == 2
        assert threads
        assert set(threads) == {threading.current_thread()}

    def test_run_pending_waits_for_delay(self, clock):
        now = [0.0]
        scheduler = QueuedScheduler(time_source=lambda: now[0])
        app = CRMApplication(clock=clock, analyzer=MagicMock(), scheduler=scheduler, seed=True)

        app.start_billing_run("Admin")
        assert app.run_pending() == 0
        assert app.billing_in_progress

        now[0] = 60.0
        assert app.run_pending() == 1
        assert not app.billing_in_progress
