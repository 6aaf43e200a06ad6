"""
Record service tests

Create and edit operations for customers, staff, leads, quotes, invoices,
tickets, jobs, products and subscriptions.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from crm.models import (
    AlarmSystem,
    AnalysisResult,
    EntityKind,
    JobType,
    LeadStatus,
    LineItem,
    QuoteStatus,
    Role,
    StockChangeType,
    TicketPriority,
    TicketStatus,
)
from crm.services.derivations import verify_stock_history
from crm.services.records import RecordService
from crm.utils.exceptions import NotFoundError, ValidationError


class TestCustomers:
    """Test customer records"""

    def test_create_customer(self, records):
        customer = records.create_customer(name="  Acme  ", email="ops@acme.com", contract_value="99.50")

        assert customer.id == "CUST-1001"
        assert customer.name == "Acme"
        assert customer.contract_value == Decimal("99.50")
        assert not customer.free_service_claimed

    @pytest.mark.parametrize("name,email", [("", "a@example.com"), ("Acme", "  ")])
    def test_name_and_email_required(self, records, name, email):
        with pytest.raises(ValidationError):
            records.create_customer(name=name, email=email)

    def test_update_customer(self, records, customer):
        updated = records.update_customer(customer.id, {"phone": "555-0100", "contract_value": 120})

        assert updated.phone == "555-0100"
        assert updated.contract_value == Decimal("120")

    def test_update_rejects_protected_fields(self, records, customer):
        with pytest.raises(ValidationError):
            records.update_customer(customer.id, {"free_service_claimed": True})

    def test_add_system(self, records, customer):
        system = AlarmSystem(id="SYS-Z9", type="DSC Neo", install_date=date(2024, 5, 1), zones=16)

        updated = records.add_system(customer.id, system)

        assert [s.id for s in updated.systems] == ["SYS-Z9"]
        with pytest.raises(ValidationError):
            records.add_system(customer.id, system)


class TestStaff:
    """Test staff records"""

    def test_role_prefixes(self, seeded_records):
        engineer = seeded_records.create_staff("Nina Fields", "nina@securelogic.com", Role.ENGINEER)
        tech = seeded_records.create_staff("Omar Wires", "omar@securelogic.com", Role.TECH)
        sales = seeded_records.create_staff("Paula Deals", "paula@securelogic.com", Role.SALES)

        assert engineer.id.startswith("ENG-")
        assert tech.id.startswith("TECH-")
        assert sales.id.startswith("ST-")

    def test_duplicate_email_rejected(self, seeded_records):
        with pytest.raises(ValidationError):
            seeded_records.create_staff("John Again", "JOHN@securelogic.com", Role.SALES)

    def test_update_staff(self, seeded_records, seeded_store):
        staff = seeded_records.update_staff("ST-002", {"email": "jane.closer@securelogic.com"})

        assert staff.email == "jane.closer@securelogic.com"
        assert seeded_store.staff.get("ST-002").active_leads == 8

    def test_update_staff_rejects_taken_email(self, seeded_records):
        with pytest.raises(ValidationError):
            seeded_records.update_staff("ST-002", {"email": "john@securelogic.com"})


class TestLeads:
    """Test lead creation"""

    def test_create_lead(self, seeded_records):
        lead = seeded_records.create_lead("Corner Bakery", "John Salesman", assigned_sales_id="ST-001",
                                          estimated_value="1200")

        assert lead.status == LeadStatus.NEW
        assert lead.history[0].action == "Lead Created"
        assert lead.history[0].details == "Initial lead creation."
        assert lead.estimated_value == Decimal("1200")

    def test_unknown_sales_rep(self, seeded_records):
        with pytest.raises(NotFoundError):
            seeded_records.create_lead("Corner Bakery", "Admin", assigned_sales_id="ST-404")


class TestQuotes:
    """Test quote creation and revision"""

    def test_create_quote(self, records, customer, upgrade_items):
        quote = records.create_quote(customer.id, upgrade_items, "John Salesman")

        assert quote.status == QuoteStatus.DRAFT
        assert quote.issued_on == date(2024, 6, 1)
        assert quote.expiry_date == date(2024, 7, 1)
        assert quote.total_amount == Decimal("1296.00")
        assert quote.items[0].id == "1"
        assert quote.items[0].total == Decimal("1200.00")
        assert quote.history[0].action == "Quote Created"

    def test_caller_totals_ignored(self, records, customer):
        item = LineItem(product_name="Keypad", quantity=2, unit_price=Decimal("50"), total=Decimal("999"))

        quote = records.create_quote(customer.id, [item], "Admin")

        assert quote.items[0].total == Decimal("100.00")
        assert quote.total_amount == Decimal("108.00")

    def test_requires_items(self, records, customer):
        with pytest.raises(ValidationError):
            records.create_quote(customer.id, [], "Admin")

    @pytest.mark.parametrize("item", [
        LineItem(product_name="", quantity=1, unit_price=Decimal("1")),
        LineItem(product_name="Keypad", quantity=0, unit_price=Decimal("1")),
        LineItem(product_name="Keypad", quantity=1, unit_price=Decimal("-1")),
    ])
    def test_invalid_items(self, records, customer, item):
        with pytest.raises(ValidationError):
            records.create_quote(customer.id, [item], "Admin")

    def test_unknown_customer(self, records, upgrade_items):
        with pytest.raises(NotFoundError):
            records.create_quote("CUST-404", upgrade_items, "Admin")

    def test_sent_quote_not_editable(self, seeded_records, upgrade_items):
        with pytest.raises(ValidationError):
            seeded_records.revise_quote("Q-1001", upgrade_items, "Admin")

    def test_revising_rejected_quote_returns_it_to_draft(self, seeded_engine, seeded_records, seeded_dispatcher):
        seeded_engine.apply_transition(EntityKind.QUOTE, "Q-1001", QuoteStatus.REJECTED, "Customer",
                                       {"reason": "Too expensive"})
        cheaper = [LineItem(product_name="System Upgrade Package", quantity=1, unit_price=Decimal("1000.00"))]

        quote = seeded_records.revise_quote("Q-1001", cheaper, "John Salesman")

        assert quote.status == QuoteStatus.DRAFT
        assert quote.total_amount == Decimal("1080.00")
        assert [h.action for h in quote.history[-2:]] == ["Quote Revised", "Quote Edited"]


class TestInvoices:
    """Test invoice creation and revision"""

    def test_create_invoice_default_terms(self, records, customer, upgrade_items):
        invoice = records.create_invoice(customer.id, upgrade_items, "Admin")

        assert invoice.due_date == date(2024, 6, 15)
        assert invoice.total_amount == Decimal("1296.00")

    def test_due_date_before_issue_rejected(self, records, customer, upgrade_items):
        with pytest.raises(ValidationError):
            records.create_invoice(customer.id, upgrade_items, "Admin", due_date=date(2024, 5, 31))

    def test_only_drafts_editable(self, seeded_records, upgrade_items):
        with pytest.raises(ValidationError):
            seeded_records.revise_invoice("INV-2024-002", upgrade_items, "Admin")

    def test_line_item_for_product(self, seeded_records):
        item = seeded_records.line_item_for_product("PRD-001", quantity=2)

        assert item.product_name == "12V 7Ah Sealed Lead Acid Battery"
        assert item.unit_price == Decimal("24.99")
        assert item.quantity == 2


class TestTickets:
    """Test ticket and job creation"""

    def test_analyzer_enriches_ticket(self, seeded_engine, seeded_dispatcher):
        analyzer = MagicMock()
        analyzer.analyze.return_value = AnalysisResult(
            priority=TicketPriority.CRITICAL,
            category="Power",
            suggested_action="Replace the panel transformer.",
            estimated_time="1 hour",
            required_parts=["16.5V Transformer"],
        )
        service = RecordService(seeded_engine, analyzer)

        ticket = service.create_ticket("CUST-003", "Panel dead", "Admin",
                                       description="Panel display is blank", system_id="SYS-C3")

        analyzer.analyze.assert_called_once_with("Panel display is blank", "Qolsys IQ Panel 4")
        assert ticket.priority == TicketPriority.CRITICAL
        assert ticket.ai_analysis.suggested_action == "Replace the panel transformer."
        assert ticket.required_tools == ["16.5V Transformer"]
        assert ticket.location == "101 Innovation Blvd, Downtown"

    def test_explicit_priority_wins(self, seeded_engine):
        analyzer = MagicMock()
        analyzer.analyze.return_value = AnalysisResult(
            priority=TicketPriority.CRITICAL, category="Power",
            suggested_action="Check", estimated_time="1 hour",
        )
        service = RecordService(seeded_engine, analyzer)

        ticket = service.create_ticket("CUST-003", "Panel dead", "Admin",
                                       description="Panel display is blank", priority=TicketPriority.LOW)

        assert ticket.priority == TicketPriority.LOW

    def test_without_analyzer(self, seeded_records):
        ticket = seeded_records.create_ticket("CUST-001", "Door chime broken", "Admin", description="No chime")

        assert ticket.ai_analysis is None
        assert ticket.priority == TicketPriority.LOW
        assert ticket.status == TicketStatus.OPEN

    def test_create_with_technician_assigns(self, seeded_records):
        ticket = seeded_records.create_ticket("CUST-001", "Door chime broken", "Admin", assigned_tech="TECH-002")

        assert ticket.status == TicketStatus.ASSIGNED
        assert ticket.assigned_tech == "TECH-002"
        assert [h.action for h in ticket.history] == ["Ticket Created", "Technician Assigned"]

    def test_create_job(self, seeded_records):
        job = seeded_records.create_job(
            "CUST-001", "Install LTE communicator", "Admin",
            scheduled_date=datetime(2024, 6, 10, 9, tzinfo=timezone.utc),
            job_type=JobType.INSTALL,
            assigned_tech="TECH-001",
        )

        assert job.id.startswith("JOB-")
        assert job.system_id == "N/A"
        assert job.status == TicketStatus.ASSIGNED
        assert job.location == "88 Industrial Way, Springfield"
        assert job.history[0].action == "Job Scheduled"

    def test_update_ticket(self, seeded_records):
        ticket = seeded_records.update_ticket("TKT-101", {"priority": TicketPriority.HIGH}, "Admin")

        assert ticket.priority == TicketPriority.HIGH
        assert ticket.history[-1].action == "Ticket Updated"

    @pytest.mark.parametrize("field,value", [("status", "Resolved"), ("assigned_tech", "TECH-001")])
    def test_update_ticket_rejects_workflow_fields(self, seeded_records, field, value):
        with pytest.raises(ValidationError):
            seeded_records.update_ticket("TKT-101", {field: value}, "Admin")


class TestProducts:
    """Test product and stock records"""

    def test_opening_stock_recorded(self, records):
        product = records.create_product("Glass Break Sensor", "SEN-GB", category="Sensors",
                                         price="39.00", stock=12)

        assert product.stock == 12
        assert product.stock_history[0].type == StockChangeType.RESTOCK
        assert product.stock_history[0].note == "Initial stock"
        verify_stock_history(product)

    def test_duplicate_sku(self, seeded_records):
        with pytest.raises(ValidationError):
            seeded_records.create_product("Another Battery", "bat-1270")

    def test_stock_not_editable(self, seeded_records):
        with pytest.raises(ValidationError):
            seeded_records.update_product("PRD-001", {"stock": 100})

    def test_update_price(self, seeded_records):
        product = seeded_records.update_product("PRD-001", {"price": "26.50"})
        assert product.price == Decimal("26.50")

    def test_adjust_stock(self, seeded_records):
        product = seeded_records.adjust_stock("PRD-004", -2, StockChangeType.SALE, "Invoice INV-2024-002")

        assert product.stock == 3
        assert product.stock_history[-1].stock_level == 3
        verify_stock_history(product)

    def test_stock_levels_track_running_sum(self, records):
        product = records.create_product("Door Contact", "SEN-DC", stock=10)
        changes = [5, -2, 10, -3]

        for change in changes:
            change_type = StockChangeType.RESTOCK if change > 0 else StockChangeType.SALE
            product = records.adjust_stock(product.id, change, change_type)

        assert [entry.stock_level for entry in product.stock_history] == [10, 15, 13, 23, 20]
        assert [entry.change for entry in product.stock_history] == [10, *changes]
        assert product.stock == 10 + sum(changes) == 20
        verify_stock_history(product)

    def test_adjust_below_zero_rejected(self, seeded_records, seeded_store):
        with pytest.raises(ValidationError):
            seeded_records.adjust_stock("PRD-004", -6, StockChangeType.SALE)

        assert seeded_store.products.get("PRD-004").stock == 5


class TestSubscriptions:
    """Test subscription creation"""

    def test_quarterly_first_bill(self, records, customer):
        subscription = records.create_subscription(customer.id, "Business Video", "450", "Admin",
                                                   billing_cycle="Quarterly", start_date=date(2024, 5, 31))

        assert subscription.next_billing_date == date(2024, 8, 31)
        assert subscription.history[0].action == "Subscription Started"

    @pytest.mark.parametrize("amount", ["0", "-5", "abc"])
    def test_amount_must_be_positive(self, records, customer, amount):
        with pytest.raises(ValidationError):
            records.create_subscription(customer.id, "Residential Basic", amount, "Admin")
