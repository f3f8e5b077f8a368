import os
import sys
from functools import lru_cache
from typing import Any

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class TradingAccountConfig(BaseModel):
    """A broker account that entry/exit signals are fanned out to.

    Credentials are optional at load time so that an account can be listed
    (and reported as failed) even when its username or API key is missing.
    """

    account_id: int
    username: str | None = None
    api_key: str | None = None
    label: str | None = None


DEFAULT_SYMBOL_CONTRACTS: dict[str, str] = {
    "NQ1!": "CON.F.US.ENQ.U25",
    "MNQ1!": "CON.F.US.MNQ.U25",
    "ES1!": "CON.F.US.EP.U25",
    "MES1!": "CON.F.US.MES.U25",
    "XAUUSD": "CON.F.US.MGC.Q25",
}

DEFAULT_SYMBOL_QUANTITIES: dict[str, int] = {
    "NQ1!": 1,
    "MNQ1!": 1,
}

DEFAULT_SYMBOL_POINT_VALUES: dict[str, float] = {
    "NQ1!": 20.0,
    "MNQ1!": 2.0,
    "ES1!": 50.0,
    "MES1!": 5.0,
    "XAUUSD": 10.0,
}


class Settings(BaseSettings):
    """Application configuration loaded from environment variables and .env files."""

    app_name: str = "Momentum Control Center"
    environment: str = "dev"
    debug: bool = True
    version: str = "0.1.0"
    database_url: str = "sqlite:///./control_center.db"
    database_echo: bool = False

    broker_base_url: str = "https://api.topstepx.com/api"
    broker_timeout_seconds: float = 30.0

    session_ttl_hours: float = 24.0
    session_sweep_interval_hours: float = 12.0
    session_sweep_enabled: bool = True

    symbol_contracts: dict[str, str] = dict(DEFAULT_SYMBOL_CONTRACTS)
    symbol_quantities: dict[str, int] = dict(DEFAULT_SYMBOL_QUANTITIES)
    symbol_point_values: dict[str, float] = dict(DEFAULT_SYMBOL_POINT_VALUES)
    trading_accounts: list[TradingAccountConfig] = []

    dashboard_username: str | None = None
    dashboard_api_key: str | None = None

    premium_symbol: str = "NQ1!"
    premium_chat_url: str | None = None
    general_chat_url: str | None = None
    degen_chat_url: str | None = None
    notifications_enabled: bool = True

    access_password: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MCC_",
        extra="ignore",
    )

    def dashboard_credentials(self) -> tuple[str, str] | None:
        """Return the (username, api_key) pair used by dashboard endpoints."""

        if self.dashboard_username and self.dashboard_api_key:
            return self.dashboard_username, self.dashboard_api_key
        for account in self.trading_accounts:
            if account.username and account.api_key:
                return account.username, account.api_key
        return None

    def dict_for_logging(self) -> dict[str, Any]:
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "debug": self.debug,
            "version": self.version,
            "database_url": self.database_url,
            "broker_base_url": self.broker_base_url,
            "symbols": sorted(self.symbol_contracts),
            "accounts": [a.account_id for a in self.trading_accounts],
        }


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings instance."""

    settings = Settings()

    # Under pytest the dashboard guard stays open and the ledger lives in a
    # throwaway SQLite file instead of the operator's database.
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        settings.access_password = None
        settings.database_url = "sqlite:///./control_center_test.db"
        settings.session_sweep_enabled = False

    return settings


__all__ = ["Settings", "TradingAccountConfig", "get_settings"]
