"""Configuration management for the Up/Down round trader.

Settings are read from environment variables (optionally a ``.env`` file).
Names are unprefixed to match the deployment environment, e.g.
``PAPER_TRADING``, ``PRIVATE_KEY``, ``PROFIT_TARGET``.

All prices are in cents (0-100), sizes in shares, durations in ms unless the
field name says seconds.
"""

from typing import Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from updown.core.errors import ConfigurationError


class Settings(BaseSettings):
    """Trading, wallet and runtime configuration."""

    # Mode
    paper_trading: bool = Field(default=True, description="Simulate fills, never contact the exchange")

    # Wallet Configuration
    private_key: str = Field(default="", description="Polygon wallet private key")
    funder_address: Optional[str] = Field(
        default=None,
        description="Polymarket proxy wallet address (selects proxy signing mode)",
    )

    # Network Configuration
    clob_http_url: str = Field(
        default="https://clob.polymarket.com",
        description="CLOB HTTP API URL",
    )
    chain_id: int = Field(default=137, description="Polygon mainnet")

    # Strategy
    profit_target: float = Field(default=2.0, description="Take-profit offset in cents")
    max_buy_price: float = Field(default=50.0, description="Only enter below this price (cents)")
    max_position_size: int = Field(default=5, description="Shares per entry")
    sell_before_start_ms: int = Field(default=60_000, description="Forced exit window before a round boundary")
    min_time_to_trade_ms: int = Field(default=90_000, description="Minimum time before start to enter")
    max_time_to_start_ms: Optional[int] = Field(
        default=None,
        description="Do not enter earlier than this before start (None = no limit)",
    )
    mid_round_buffer_ms: int = Field(default=30_000, description="Extra time required for mid-round entries")
    fee_rate: float = Field(default=0.0, description="Taker fee rate applied per leg")

    # Execution
    settlement_timeout_seconds: float = 5.0
    settlement_poll_interval_seconds: float = 0.5
    protective_retry_backoff_seconds: float = 1.0

    # Loop
    reconcile_interval_seconds: float = 10.0
    poll_interval_seconds: float = 1.0

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(default=False, description="Enable JSON structured logging")

    model_config = {"env_prefix": "", "extra": "ignore"}

    @field_validator("profit_target", "max_buy_price")
    @classmethod
    def _check_cents(cls, value: float) -> float:
        if not 0 < value < 100:
            raise ValueError(f"must be between 0 and 100 cents, got {value}")
        return value

    @field_validator("max_position_size")
    @classmethod
    def _check_size(cls, value: int) -> int:
        if value <= 0:
            raise ValueError(f"must be positive, got {value}")
        return value

    @field_validator("fee_rate")
    @classmethod
    def _check_fee_rate(cls, value: float) -> float:
        if not 0 <= value < 1:
            raise ValueError(f"must be in [0, 1), got {value}")
        return value

    @property
    def proxy_mode(self) -> bool:
        """True when orders are signed on behalf of a funded proxy wallet."""
        return bool(self.funder_address)

    @property
    def signature_type(self) -> int:
        """py-clob-client signature type: 0=EOA, 1=Polymarket proxy."""
        return 1 if self.proxy_mode else 0


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Load settings from a ``.env`` file and the process environment.

    Variables already set in the environment win over the file.

    Raises:
        ConfigurationError: A value failed validation.
    """
    from dotenv import find_dotenv, load_dotenv
    load_dotenv(env_file or find_dotenv(usecwd=True))

    try:
        return Settings()
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ConfigurationError(f"Invalid settings: {fields}", cause=e) from e
