"""
Derivation tests

Totals, dashboard aggregates, financial summaries, stock history and
month arithmetic.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from crm.models import LineItem, Product, StockChangeType
from crm.services.derivations import (
    add_months,
    build_stock_entry,
    compute_totals,
    current_stock,
    customer_financial_summary,
    dashboard_summary,
    inventory_valuation,
    percentage,
    price_items,
    running_stock_levels,
    verify_stock_history,
)
from crm.utils.exceptions import ValidationError


def _item(price, quantity=1, name="Item"):
    return LineItem(product_name=name, quantity=quantity, unit_price=Decimal(price))


class TestTotals:
    """Test subtotal, tax and total derivation"""

    def test_single_item(self):
        totals = compute_totals([_item("1200.00")])

        assert totals.subtotal == Decimal("1200.00")
        assert totals.tax == Decimal("96.00")
        assert totals.total == Decimal("1296.00")

    def test_empty_list_is_zero(self):
        totals = compute_totals([])
        assert (totals.subtotal, totals.tax, totals.total) == (0, 0, 0)

    def test_tax_rounds_half_up_to_cents(self):
        """169.99 x 0.08 = 13.5992 rounds to 13.60"""
        totals = compute_totals([_item("125.00"), _item("24.99"), _item("20.00")])

        assert totals.subtotal == Decimal("169.99")
        assert totals.tax == Decimal("13.60")
        assert totals.total == Decimal("183.59")

    @pytest.mark.parametrize("items", [
        [_item("0.01")],
        [_item("33.33", quantity=3)],
        [_item("19.99", quantity=7), _item("5.05", quantity=2)],
    ])
    def test_total_is_subtotal_plus_tax(self, items):
        totals = compute_totals(items)
        assert totals.total == totals.subtotal + totals.tax

    def test_custom_tax_rate(self):
        totals = compute_totals([_item("100")], tax_rate=Decimal("0.2"))
        assert totals.tax == Decimal("20.00")

    def test_price_items_recomputes_line_totals(self):
        stale = LineItem(product_name="Battery", quantity=2, unit_price=Decimal("24.99"), total=Decimal("1"))
        priced = price_items([stale])

        assert priced[0].total == Decimal("49.98")
        assert stale.total == Decimal("1")


class TestPercentages:
    """Test percentage helper"""

    def test_zero_whole(self):
        assert percentage(3, 0) == 0.0

    def test_rounded_share(self):
        assert percentage(1, 3) == 33.3


class TestDashboard:
    """Test the dashboard over the mock data set"""

    def test_summary(self, seeded_store):
        summary = dashboard_summary(seeded_store, date(2024, 6, 1))

        assert summary.monthly_recurring_revenue == Decimal("445")
        assert summary.active_subscriptions == 2
        assert summary.active_systems == 3
        assert summary.open_tickets == 3
        assert summary.critical_tickets == 1
        assert summary.overdue_invoices == 0
        assert summary.outstanding_revenue == Decimal("408.24")
        assert summary.collected_revenue == Decimal("183.59")
        assert summary.subscription_revenue == Decimal("295.00")
        assert summary.failed_payments == 1

    def test_distributions(self, seeded_store):
        summary = dashboard_summary(seeded_store, date(2024, 6, 1))

        assert summary.ticket_status_distribution == {
            "Open": 33.3, "Assigned": 66.7, "In Progress": 0.0, "Resolved": 0.0,
        }
        assert summary.lead_pipeline_distribution["Engineer Review"] == 50.0
        assert summary.lead_pipeline_distribution["New"] == 50.0
        assert summary.lead_pipeline_distribution["Closed Won"] == 0.0

    def test_sent_invoice_past_due_counts_as_overdue(self, seeded_store):
        summary = dashboard_summary(seeded_store, date(2024, 6, 10))
        assert summary.overdue_invoices == 1

    def test_empty_store(self, store):
        summary = dashboard_summary(store, date(2024, 6, 1))

        assert summary.open_tickets == 0
        assert summary.ticket_status_distribution["Open"] == 0.0


class TestCustomerFinancials:
    """Test per-customer invoice position"""

    def test_paid_customer(self, seeded_store):
        summary = customer_financial_summary(seeded_store, "CUST-002", date(2024, 6, 1))

        assert summary.total_invoiced == Decimal("183.59")
        assert summary.total_paid == Decimal("183.59")
        assert summary.total_open == Decimal("0.00")
        assert summary.invoice_count == 1

    def test_overdue_customer(self, seeded_store):
        summary = customer_financial_summary(seeded_store, "CUST-001", date(2024, 6, 10))

        assert summary.total_open == Decimal("408.24")
        assert summary.total_overdue == Decimal("408.24")
        assert summary.overdue_invoice_count == 1


class TestStock:
    """Test stock levels as running sums"""

    def test_running_levels(self):
        assert running_stock_levels([20, -2, -3, 30, -3]) == [20, 18, 15, 45, 42]

    def test_running_levels_with_start(self):
        levels = running_stock_levels([5, -2], start=10)
        assert levels == [15, 13]
        assert levels[-1] == 10 + sum([5, -2])

    def test_seeded_products_are_consistent(self, seeded_store):
        for product in seeded_store.products.list():
            verify_stock_history(product)
            assert current_stock(product) == product.stock

    def test_mismatched_level_detected(self, seeded_store):
        product = seeded_store.products.get("PRD-001")
        broken = product.stock_history[1].model_copy(update={"stock_level": 99})
        product.stock_history[1] = broken

        with pytest.raises(ValidationError):
            verify_stock_history(product)

    def test_stock_field_mismatch_detected(self, seeded_store):
        product = seeded_store.products.get("PRD-001")
        product.stock = 1

        with pytest.raises(ValidationError):
            verify_stock_history(product)

    def test_build_entry_computes_level(self, seeded_store):
        product = seeded_store.products.get("PRD-003")
        when = datetime(2024, 6, 1, tzinfo=timezone.utc)

        entry = build_stock_entry(product, 10, StockChangeType.RESTOCK, None, when)

        assert entry.stock_level == 18
        assert entry.note == "Manual adjustment"

    def test_build_entry_rejects_zero(self, seeded_store):
        product = seeded_store.products.get("PRD-003")
        with pytest.raises(ValidationError):
            build_stock_entry(product, 0, StockChangeType.ADJUSTMENT, None, datetime.now(timezone.utc))

    def test_build_entry_rejects_negative_stock(self, seeded_store):
        product = seeded_store.products.get("PRD-003")
        with pytest.raises(ValidationError):
            build_stock_entry(product, -9, StockChangeType.SALE, None, datetime.now(timezone.utc))

    def test_build_entry_clamps_time(self):
        product = Product(name="Siren", sku="SIR-1")
        first = build_stock_entry(product, 5, StockChangeType.RESTOCK, "In", datetime(2024, 6, 2, tzinfo=timezone.utc))
        product.stock_history.append(first)

        second = build_stock_entry(product, -1, StockChangeType.SALE, "Out", datetime(2024, 6, 1, tzinfo=timezone.utc))

        assert second.date == first.date
        assert second.stock_level == 4

    def test_inventory_valuation(self, seeded_store):
        valuation = inventory_valuation(seeded_store.products.list())

        assert valuation.units == 1069
        assert valuation.retail_value == Decimal("127747.08")
        assert valuation.cost_value == Decimal("1491.00")
        assert valuation.low_stock == 2
        assert valuation.out_of_stock == 0


class TestAddMonths:
    """Test calendar month arithmetic"""

    @pytest.mark.parametrize("base,months,expected", [
        (date(2024, 1, 31), 1, date(2024, 2, 29)),
        (date(2023, 1, 31), 1, date(2023, 2, 28)),
        (date(2024, 11, 15), 3, date(2025, 2, 15)),
        (date(2024, 3, 31), -1, date(2024, 2, 29)),
        (date(2024, 2, 29), 12, date(2025, 2, 28)),
    ])
    def test_add_months(self, base, months, expected):
        assert add_months(base, months) == expected
