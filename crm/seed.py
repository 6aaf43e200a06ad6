"""
Mock data set used for demos and as a realistic fixture in tests.

Stock histories are written as signed changes; the recorded levels are
computed as running sums so every product passes verify_stock_history.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from crm.models.domain import (
    AlarmSystem,
    BillingCycle,
    Customer,
    HistoryEntry,
    Invoice,
    InvoiceStatus,
    JobType,
    Lead,
    LeadStatus,
    LineItem,
    PaymentStatus,
    Product,
    Quote,
    QuoteStatus,
    Role,
    Staff,
    StockChangeType,
    StockHistoryEntry,
    Subscription,
    SubscriptionStatus,
    SystemStatus,
    Ticket,
    TicketAnalysis,
    TicketPriority,
    TicketStatus,
)
from crm.services.derivations import running_stock_levels, totals_patch
from crm.utils.store import EntityStore

logger = logging.getLogger(__name__)


def _at(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def _stock_history(moves: Sequence[Tuple[datetime, int, StockChangeType, Optional[str]]]) -> List[StockHistoryEntry]:
    levels = running_stock_levels([change for _, change, _, _ in moves])
    return [
        StockHistoryEntry(date=when, stock_level=level, change=change, type=kind, note=note)
        for (when, change, kind, note), level in zip(moves, levels)
    ]


def mock_customers() -> List[Customer]:
    return [
        Customer(
            id="CUST-001",
            name="Acme Corp Logistics",
            email="ops@acmelogistics.com",
            phone="(555) 123-4567",
            address="88 Industrial Way, Springfield",
            contract_value=Decimal("250"),
            notes="High security warehouse. Strict access control protocols.",
            systems=[AlarmSystem(
                id="SYS-A1", type="Honeywell Vista 128BPT",
                install_date=date(2021, 5, 12), last_service_date=date(2023, 11, 20),
                status=SystemStatus.ARMED_STAY, zones=64,
            )],
        ),
        Customer(
            id="CUST-002",
            name="Dr. Sarah Bennett",
            email="s.bennett@example.com",
            phone="(555) 987-6543",
            address="42 Maple Drive, Suburbia",
            contract_value=Decimal("45"),
            notes="Residential client. Has a dog, motion sensors are pet immune.",
            systems=[AlarmSystem(
                id="SYS-B2", type="DSC Neo",
                install_date=date(2022, 8, 15), last_service_date=date(2024, 1, 10),
                status=SystemStatus.DISARMED, zones=8,
            )],
        ),
        Customer(
            id="CUST-003",
            name="TechStart Hub",
            email="facilities@techstart.io",
            phone="(555) 444-3322",
            address="101 Innovation Blvd, Downtown",
            contract_value=Decimal("150"),
            notes="Frequent false alarms on Zone 3 (Rear Door).",
            systems=[AlarmSystem(
                id="SYS-C3", type="Qolsys IQ Panel 4",
                install_date=date(2023, 2, 1), last_service_date=date(2024, 3, 1),
                status=SystemStatus.TROUBLE, zones=32,
            )],
        ),
    ]


def mock_staff() -> List[Staff]:
    return [
        Staff(id="ST-001", name="John Salesman", role=Role.SALES, email="john@securelogic.com",
              phone="555-001-0001", active_leads=5),
        Staff(id="ST-002", name="Jane Closer", role=Role.SALES, email="jane@securelogic.com",
              phone="555-001-0002", active_leads=8),
        Staff(id="ENG-001", name="Robert Engineer", role=Role.ENGINEER, email="rob@securelogic.com",
              phone="555-002-0001"),
        Staff(id="ENG-002", name="Emily Tech", role=Role.ENGINEER, email="emily@securelogic.com",
              phone="555-002-0002"),
        Staff(id="TECH-001", name="Mike Repairman", role=Role.TECH, email="mike@securelogic.com",
              phone="555-003-0001"),
        Staff(id="TECH-002", name="Sarah Installer", role=Role.TECH, email="sarah.i@securelogic.com",
              phone="555-003-0002"),
        Staff(id="ADM-001", name="Alex Admin", role=Role.ADMIN, email="admin@securelogic.com",
              phone="555-000-0001"),
    ]


def mock_tickets() -> List[Ticket]:
    return [
        Ticket(
            id="TKT-101",
            customer_id="CUST-003",
            system_id="SYS-C3",
            title="Persistent Low Battery",
            description="Panel beeping every 4 hours showing 'System Low Bat'. Power cycle didn't fix.",
            status=TicketStatus.OPEN,
            priority=TicketPriority.MEDIUM,
            created_at=_at(2024, 5, 20, 9),
            ai_analysis=TicketAnalysis(
                suggested_action="Replace backup battery (12V 7Ah). Check charging circuit voltage.",
                estimated_time="30 mins",
                required_parts=["12V 7Ah Battery"],
            ),
            history=[HistoryEntry(date=_at(2024, 5, 20, 9), action="Ticket Created", actor="System",
                                  details="Persistent Low Battery")],
        ),
        Ticket(
            id="TKT-102",
            customer_id="CUST-001",
            system_id="SYS-A1",
            title="Zone 5 Open Fault",
            description="Warehouse bay door contact showing open even when closed. Magnet appears aligned.",
            status=TicketStatus.ASSIGNED,
            assigned_tech="TECH-001",
            priority=TicketPriority.HIGH,
            created_at=_at(2024, 5, 21, 14, 30),
            scheduled_date=_at(2024, 6, 3, 10),
            estimated_duration="2 hours",
            location="88 Industrial Way, Springfield",
            history=[
                HistoryEntry(date=_at(2024, 5, 21, 14, 30), action="Ticket Created", actor="System",
                             details="Zone 5 Open Fault"),
                HistoryEntry(date=_at(2024, 5, 21, 15), action="Technician Assigned", actor="Admin",
                             details="Status updated to Assigned. Assigned to Technician: Mike Repairman (TECH-001)"),
            ],
        ),
        Ticket(
            id="JOB-2001",
            customer_id="CUST-002",
            system_id="N/A",
            title="Annual Panel Maintenance",
            description="Yearly inspection, battery test and sensor walk test.",
            status=TicketStatus.ASSIGNED,
            assigned_tech="TECH-002",
            priority=TicketPriority.MEDIUM,
            job_type=JobType.MAINTENANCE,
            created_at=_at(2024, 5, 22, 8),
            scheduled_date=_at(2024, 6, 5, 13),
            estimated_duration="1.5 hours",
            location="42 Maple Drive, Suburbia",
            history=[HistoryEntry(date=_at(2024, 5, 22, 8), action="Job Scheduled", actor="Admin",
                                  details="Maintenance on 2024-06-05")],
        ),
    ]


def mock_products() -> List[Product]:
    products = [
        Product(
            id="PRD-001",
            name="12V 7Ah Sealed Lead Acid Battery",
            category="Power",
            description="High-performance sealed lead-acid battery designed for alarm control panels. "
                        "Maintenance-free operation with a 3-5 year lifespan.",
            price=Decimal("24.99"), cost=Decimal("11.50"), warranty="1 year",
            sku="BAT-1270", tags=["Popular", "Important"],
            stock_history=_stock_history([
                (_at(2024, 5, 1), 20, StockChangeType.RESTOCK, "Vendor shipment received"),
                (_at(2024, 5, 5), -2, StockChangeType.SALE, "Invoice #1002"),
                (_at(2024, 5, 10), -3, StockChangeType.SALE, "Service Install"),
                (_at(2024, 5, 15), 30, StockChangeType.RESTOCK, "Bulk order"),
                (_at(2024, 5, 20), -3, StockChangeType.SALE, "Counter sales"),
            ]),
        ),
        Product(
            id="PRD-002",
            name="Wireless Door/Window Contact",
            category="Sensors",
            description="Slim profile wireless magnetic contact with 2-mile range and 5-year battery life.",
            price=Decimal("34.50"), cost=Decimal("16.00"), warranty="3 years",
            sku="SEN-DW-01", tags=["Popular"],
            stock_history=_stock_history([
                (_at(2024, 5, 1), 10, StockChangeType.ADJUSTMENT, "Inventory count"),
                (_at(2024, 5, 12), 50, StockChangeType.RESTOCK, None),
                (_at(2024, 5, 18), -45, StockChangeType.SALE, "Project Install - Acme Corp"),
            ]),
        ),
        Product(
            id="PRD-003",
            name="PIR Motion Detector (Pet Immune)",
            category="Sensors",
            description="Passive infrared motion sensor with pet immunity up to 40lbs. 40x40 ft coverage.",
            price=Decimal("45.00"), cost=Decimal("21.00"), warranty="2 years",
            sku="SEN-PIR-PET",
            stock_history=_stock_history([
                (_at(2024, 4, 20), 12, StockChangeType.ADJUSTMENT, "Inventory count"),
                (_at(2024, 5, 2), -4, StockChangeType.SALE, None),
            ]),
        ),
        Product(
            id="PRD-004",
            name="LTE Cellular Communicator",
            category="Communication",
            description="Universal dual-path LTE cellular communicator for any contact ID capable panel.",
            price=Decimal("189.00"), cost=Decimal("120.00"), warranty="2 years",
            sku="COM-LTE-U", tags=["Important"],
            stock_history=_stock_history([
                (_at(2024, 5, 1), 5, StockChangeType.ADJUSTMENT, "Inventory count"),
            ]),
        ),
        Product(
            id="PRD-005",
            name="Service Call - Standard",
            category="Services",
            description="Standard on-site technician labor (1st hour). Includes trip charge and basic diagnosis.",
            price=Decimal("125.00"),
            sku="SVC-STD",
            stock_history=_stock_history([
                (_at(2024, 1, 1), 999, StockChangeType.ADJUSTMENT, "Service capacity"),
            ]),
        ),
    ]
    return [p.model_copy(update={"stock": p.stock_history[-1].stock_level}) for p in products]


def mock_invoices() -> List[Invoice]:
    return [
        Invoice(
            id="INV-2024-001",
            customer_id="CUST-002",
            issued_on=date(2024, 5, 15),
            due_date=date(2024, 5, 30),
            status=InvoiceStatus.PAID,
            history=[HistoryEntry(date=_at(2024, 5, 15), action="Invoice Created", actor="Admin")],
            **totals_patch([
                LineItem(id="1", product_id="PRD-005", product_name="Service Call - Standard",
                         quantity=1, unit_price=Decimal("125.00")),
                LineItem(id="2", product_id="PRD-001", product_name="12V 7Ah Sealed Lead Acid Battery",
                         quantity=1, unit_price=Decimal("24.99")),
                LineItem(id="3", product_id="MISC", product_name="Battery Disposal Fee",
                         quantity=1, unit_price=Decimal("20.00")),
            ]),
        ),
        Invoice(
            id="INV-2024-002",
            customer_id="CUST-001",
            issued_on=date(2024, 5, 20),
            due_date=date(2024, 6, 4),
            status=InvoiceStatus.SENT,
            history=[HistoryEntry(date=_at(2024, 5, 20), action="Invoice Created", actor="Admin")],
            **totals_patch([
                LineItem(id="1", product_id="PRD-004", product_name="LTE Cellular Communicator",
                         quantity=2, unit_price=Decimal("189.00")),
            ]),
        ),
    ]


def mock_quotes() -> List[Quote]:
    return [
        Quote(
            id="Q-1001",
            customer_id="CUST-003",
            issued_on=date(2024, 5, 25),
            expiry_date=date(2024, 6, 25),
            status=QuoteStatus.SENT,
            notes="Upgrade to main lobby panel.",
            history=[
                HistoryEntry(date=_at(2024, 5, 25), action="Quote Created", actor="John Salesman"),
                HistoryEntry(date=_at(2024, 5, 25, 12), action="Quote Sent", actor="John Salesman",
                             details="Status updated to Sent"),
            ],
            **totals_patch([
                LineItem(id="1", product_id="SYS", product_name="System Upgrade Package",
                         quantity=1, unit_price=Decimal("1200.00")),
            ]),
        ),
    ]


def mock_leads() -> List[Lead]:
    return [
        Lead(
            id="L-2024-55",
            customer_name="Metro Diner",
            contact_name="Bill Chef",
            email="bill@metrodiner.com",
            phone="555-999-8888",
            address="12 Main St",
            status=LeadStatus.ENGINEER_REVIEW,
            assigned_sales_id="ST-001",
            assigned_engineer_id="ENG-001",
            estimated_value=Decimal("3500"),
            requirements="Needs 4 cameras, 1 NVR, and alarm system for back door and front entrance. "
                         "Quote needs review for cable run lengths.",
            notes="Customer is concerned about monthly fees.",
            created_at=_at(2024, 5, 18, 10),
            history=[
                HistoryEntry(date=_at(2024, 5, 18, 10), action="Lead Created", actor="John Salesman",
                             details="Initial contact made via phone."),
                HistoryEntry(date=_at(2024, 5, 19, 14, 30), action="Status Change", actor="John Salesman",
                             details="Moved to Site Survey."),
                HistoryEntry(date=_at(2024, 5, 20, 11), action="Status Change", actor="John Salesman",
                             details="Submitted for Engineer Review."),
            ],
        ),
        Lead(
            id="L-2024-58",
            customer_name="Warehouse 13",
            contact_name="Artie N.",
            email="artie@warehouse13.com",
            phone="555-777-6666",
            address="51 Area Way",
            status=LeadStatus.NEW,
            assigned_sales_id="ST-002",
            estimated_value=Decimal("15000"),
            requirements="Full facility access control and fire integration.",
            notes="Big potential contract.",
            created_at=_at(2024, 5, 22, 14),
            history=[
                HistoryEntry(date=_at(2024, 5, 22, 14), action="Lead Created", actor="Jane Closer",
                             details="Lead imported from web form."),
            ],
        ),
    ]


def mock_subscriptions() -> List[Subscription]:
    return [
        Subscription(
            id="SUB-001", customer_id="CUST-001", plan_name="Commercial Monitoring Plus",
            amount=Decimal("250.00"), billing_cycle=BillingCycle.MONTHLY,
            status=SubscriptionStatus.ACTIVE, start_date=date(2021, 5, 12),
            next_billing_date=date(2024, 6, 12), last_payment_status=PaymentStatus.SUCCESS,
        ),
        Subscription(
            id="SUB-002", customer_id="CUST-002", plan_name="Residential Basic",
            amount=Decimal("45.00"), billing_cycle=BillingCycle.MONTHLY,
            status=SubscriptionStatus.ACTIVE, start_date=date(2022, 8, 15),
            next_billing_date=date(2024, 6, 15), last_payment_status=PaymentStatus.SUCCESS,
        ),
        Subscription(
            id="SUB-003", customer_id="CUST-003", plan_name="Business Video Monitoring",
            amount=Decimal("450.00"), billing_cycle=BillingCycle.QUARTERLY,
            status=SubscriptionStatus.PAST_DUE, start_date=date(2023, 2, 1),
            next_billing_date=date(2024, 5, 1), last_payment_status=PaymentStatus.FAILED,
        ),
    ]


def load_mock_data(store: EntityStore) -> EntityStore:
    """Insert the full mock data set into an empty store"""
    for collection, records in (
        (store.customers, mock_customers()),
        (store.staff, mock_staff()),
        (store.tickets, mock_tickets()),
        (store.products, mock_products()),
        (store.invoices, mock_invoices()),
        (store.quotes, mock_quotes()),
        (store.leads, mock_leads()),
        (store.subscriptions, mock_subscriptions()),
    ):
        for record in records:
            collection.create(record)
    logger.info(
        f"Loaded mock data: {len(store.customers)} customers, {len(store.tickets)} tickets, "
        f"{len(store.products)} products"
    )
    return store
