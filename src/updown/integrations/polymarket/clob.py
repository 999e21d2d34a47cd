"""Polymarket CLOB client for order execution.

Wraps the synchronous py-clob-client library with asyncio support (calls run
in a thread pool) and maps its failures onto the updown error hierarchy.

Credentials are derived from the signing key on ``connect``:
- L1 client (key only) derives or creates the API key set
- L2 client (key + API creds) is used for trading, either as the EOA itself
  (signature type 0) or on behalf of a funded proxy wallet (signature type 1)
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

import structlog
from py_clob_client.client import ClobClient
from py_clob_client.clob_types import (
    ApiCreds,
    AssetType,
    BalanceAllowanceParams,
    OrderArgs,
)
from py_clob_client.order_builder.constants import BUY, SELL

from updown.core.config import Settings
from updown.core.errors import (
    AuthenticationError,
    ExchangeError,
    OrderRejectedError,
    wrap_external_error,
)
from updown.core.retry import retry_transient
from updown.domain.order import BalanceAllowance, OrderSide

log = structlog.get_logger()

# Polymarket only accepts two-decimal prices inside (0, 1)
MIN_PRICE = 0.01
MAX_PRICE = 0.99


def clamp_price(price: float) -> float:
    """Round a dollar price to the tick and keep it on the book."""
    return round(min(max(price, MIN_PRICE), MAX_PRICE), 2)


class CLOBClient:
    """Async client for the Polymarket CLOB.

    Implements the ``ExchangeClient`` protocol.
    """

    def __init__(
        self,
        settings: Settings,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        """Initialize the CLOB client.

        Args:
            settings: Wallet and network settings.
            executor: Optional thread pool for running blocking calls.
        """
        self._settings = settings
        self._executor = executor or ThreadPoolExecutor(max_workers=2)
        self._client: Optional[ClobClient] = None
        self._creds: Optional[ApiCreds] = None
        self._log = log.bind(component="clob_client")

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def api_key_prefix(self) -> Optional[str]:
        if self._creds is None:
            return None
        return self._creds.api_key[:8]

    async def connect(self) -> None:
        """Derive API credentials and build the trading client.

        Raises:
            AuthenticationError: Missing key or credential derivation failed.
        """
        if self.is_connected:
            return
        if not self._settings.private_key:
            raise AuthenticationError("PRIVATE_KEY is not configured")

        host = self._settings.clob_http_url.rstrip("/")
        chain_id = self._settings.chain_id

        def create_client() -> tuple[ClobClient, ApiCreds]:
            l1_client = ClobClient(host, chain_id=chain_id, key=self._settings.private_key)
            creds = l1_client.create_or_derive_api_creds()
            if self._settings.proxy_mode:
                client = ClobClient(
                    host,
                    chain_id=chain_id,
                    key=self._settings.private_key,
                    creds=creds,
                    signature_type=1,
                    funder=self._settings.funder_address,
                )
            else:
                client = ClobClient(
                    host,
                    chain_id=chain_id,
                    key=self._settings.private_key,
                    creds=creds,
                )
            return client, creds

        self._log.info("deriving_api_credentials", proxy_mode=self._settings.proxy_mode)
        try:
            self._client, self._creds = await self._run_sync(create_client)
        except Exception as e:
            raise AuthenticationError("Failed to derive API credentials", cause=e) from e

        self._log.info(
            "clob_client_connected",
            url=host,
            api_key=self.api_key_prefix,
            funder=self._settings.funder_address if self._settings.proxy_mode else None,
        )

    async def close(self) -> None:
        """Drop the underlying client and shut down the thread pool."""
        self._client = None
        self._creds = None
        self._executor.shutdown(wait=False)
        self._log.info("clob_client_closed")

    async def __aenter__(self) -> "CLOBClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _ensure_connected(self) -> ClobClient:
        if self._client is None:
            raise ExchangeError("Client not connected. Call connect() first.")
        return self._client

    async def _run_sync(self, func, *args, **kwargs) -> Any:
        """Run a blocking py-clob-client call in the thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, lambda: func(*args, **kwargs))

    def _conditional_params(self, token_id: str) -> BalanceAllowanceParams:
        return BalanceAllowanceParams(
            asset_type=AssetType.CONDITIONAL,
            token_id=token_id,
            signature_type=self._settings.signature_type,
        )

    # =========================================================================
    # Orders
    # =========================================================================

    async def place_order(
        self,
        token_id: str,
        side: OrderSide,
        price: float,
        size: float,
    ) -> str:
        """Sign and post a GTC limit order.

        Returns:
            The exchange order id.

        Raises:
            OrderRejectedError: The exchange answered but did not accept the order.
            ExchangeError: Transport or signing failure.
        """
        client = self._ensure_connected()
        limit_price = clamp_price(price)
        order_args = OrderArgs(
            token_id=token_id,
            price=limit_price,
            size=size,
            side=BUY if side == OrderSide.BUY else SELL,
        )

        try:
            response = await self._run_sync(client.create_and_post_order, order_args)
        except Exception as e:
            raise wrap_external_error(e, f"{side.value} order failed") from e

        if isinstance(response, dict):
            order_id = response.get("orderID") or response.get("id") or ""
            accepted = response.get("success", True)
            error_msg = response.get("errorMsg") or ""
        else:
            order_id = getattr(response, "orderID", "") or ""
            accepted = getattr(response, "success", True)
            error_msg = getattr(response, "errorMsg", "") or ""

        if not accepted or not order_id:
            raise OrderRejectedError(
                f"{side.value} order rejected: {error_msg or 'no order id returned'}"
            )

        self._log.info(
            "order_posted",
            order_id=order_id,
            token_id=token_id[:16],
            side=side.value,
            price=limit_price,
            size=size,
        )
        return order_id

    async def cancel_all(self) -> None:
        """Cancel every open order on the account."""
        client = self._ensure_connected()
        try:
            await self._run_sync(client.cancel_all)
        except Exception as e:
            raise wrap_external_error(e, "cancel_all failed") from e
        self._log.info("cancelled_all_orders")

    # =========================================================================
    # Balances
    # =========================================================================

    @retry_transient(max_attempts=3, log_context={"call": "get_balance_allowance"})
    async def get_balance_allowance(self, token_id: str) -> BalanceAllowance:
        """Balance and sellable allowance for a conditional token."""
        client = self._ensure_connected()
        try:
            raw = await self._run_sync(
                client.get_balance_allowance, self._conditional_params(token_id)
            )
        except Exception as e:
            raise wrap_external_error(e, "balance query failed") from e
        return BalanceAllowance.from_raw(raw)

    async def grant_allowance(self, token_id: str) -> None:
        """Ask the exchange to refresh/approve the conditional token allowance."""
        client = self._ensure_connected()
        try:
            await self._run_sync(
                client.update_balance_allowance, self._conditional_params(token_id)
            )
        except Exception as e:
            raise wrap_external_error(e, "allowance update failed") from e
        self._log.info("allowance_granted", token_id=token_id[:16])
