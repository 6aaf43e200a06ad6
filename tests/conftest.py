"""
Shared fixtures for the CRM engine tests.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from crm.models import LineItem
from crm.seed import load_mock_data
from crm.services.dispatcher import WorkflowDispatcher
from crm.services.records import RecordService
from crm.services.transitions import TransitionEngine
from crm.utils.clock import FixedClock
from crm.utils.store import EntityStore


class ManualScheduler:
    """Scheduler that holds callbacks until the test runs them"""

    def __init__(self):
        self.pending = []

    def __call__(self, delay, callback):
        self.pending.append((delay, callback))

    def run_all(self):
        while self.pending:
            _, callback = self.pending.pop(0)
            callback()


def chat_response(content):
    """Build an object shaped like an OpenAI chat completion"""
    if isinstance(content, dict):
        content = json.dumps(content)
    message = MagicMock()
    message.content = content
    choice = MagicMock()
    choice.message = message
    response = MagicMock()
    response.choices = [choice]
    return response


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return EntityStore()


@pytest.fixture
def seeded_store():
    return load_mock_data(EntityStore())


@pytest.fixture
def engine(store, clock):
    return TransitionEngine(store, clock)


@pytest.fixture
def seeded_engine(seeded_store, clock):
    return TransitionEngine(seeded_store, clock)


@pytest.fixture
def dispatcher(engine):
    return WorkflowDispatcher(engine)


@pytest.fixture
def seeded_dispatcher(seeded_engine):
    return WorkflowDispatcher(seeded_engine)


@pytest.fixture
def records(engine, dispatcher):
    return RecordService(engine)


@pytest.fixture
def seeded_records(seeded_engine, seeded_dispatcher):
    return RecordService(seeded_engine)


@pytest.fixture
def customer(records):
    return records.create_customer(
        name="TechStart Hub",
        email="facilities@techstart.io",
        address="101 Innovation Blvd, Downtown",
    )


@pytest.fixture
def upgrade_items():
    return [LineItem(product_name="System Upgrade Package", quantity=1, unit_price=Decimal("1200.00"))]


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def make_chat_response():
    return chat_response
