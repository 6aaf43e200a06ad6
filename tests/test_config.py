"""
Configuration tests
"""

import logging
from decimal import Decimal
from unittest.mock import patch

from crm.utils.config import Settings, configure_logging, get_settings, settings


class TestSettings:
    """Test settings defaults and environment overrides"""

    def test_defaults(self):
        fresh = Settings(_env_file=None)

        assert fresh.TAX_RATE == Decimal("0.08")
        assert fresh.INVOICE_DUE_DAYS == 14
        assert fresh.LOW_STOCK_THRESHOLD == 10
        assert fresh.LLM_MODEL == "gpt-4o-mini"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("INVOICE_DUE_DAYS", "30")
        monkeypatch.setenv("TAX_RATE", "0.1")

        fresh = Settings(_env_file=None)

        assert fresh.INVOICE_DUE_DAYS == 30
        assert fresh.TAX_RATE == Decimal("0.1")

    def test_global_instance(self):
        assert get_settings() is settings

    def test_configure_logging(self):
        with patch.object(logging, "basicConfig") as basic_config:
            configure_logging("debug")

        assert basic_config.call_args.kwargs["level"] == "DEBUG"
