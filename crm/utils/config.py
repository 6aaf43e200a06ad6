"""
Configuration management using pydantic-settings

Loads configuration from environment variables and .env file
"""

import logging
from decimal import Decimal
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Company
    COMPANY_NAME: str = Field(default="SecureLogic CRM", description="Name printed on documents")
    COMPANY_ADDRESS: str = Field(default="123 Security Blvd, Tech City", description="Company address")
    SUPPORT_EMAIL: str = Field(default="support@securelogic.com", description="Support contact email")

    # OpenAI Configuration
    OPENAI_API_KEY: Optional[str] = Field(default=None, description="OpenAI API key (AI analysis is skipped without it)")
    LLM_MODEL: str = Field(default="gpt-4o-mini", description="OpenAI chat model")
    AI_TIMEOUT_SECONDS: float = Field(default=15.0, description="Timeout for a single AI analysis call")
    ENABLE_AI_ANALYSIS: bool = Field(default=True, description="Enable AI ticket analysis")

    # Billing
    TAX_RATE: Decimal = Field(default=Decimal("0.08"), description="Flat sales tax rate applied to line items")
    INVOICE_DUE_DAYS: int = Field(default=14, description="Default payment terms for converted quotes")
    BILLING_DELAY_SECONDS: float = Field(default=1.5, description="Simulated delay before an auto-billing run")

    # Inventory
    LOW_STOCK_THRESHOLD: int = Field(default=10, description="Stock below this level counts as low")

    # Application Settings
    LOGIN_DELAY_SECONDS: float = Field(default=0.8, description="Simulated network delay before login")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance"""
    return settings


def configure_logging(level: Optional[str] = None):
    """Apply the configured log level to the root logger"""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
