"""Exchange Client Protocol - the capability set the executor relies on."""

from abc import abstractmethod
from typing import Protocol, runtime_checkable

from updown.domain.order import BalanceAllowance, OrderSide


@runtime_checkable
class ExchangeClient(Protocol):
    """Primitive order and balance operations against the exchange.

    Prices passed to ``place_order`` are dollar prices (0.01-0.99), sizes are
    share counts. Implementations raise on failure; they never return a
    sentinel order id.
    """

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Derive credentials and prepare the authenticated client."""
        ...

    @abstractmethod
    async def place_order(
        self,
        token_id: str,
        side: OrderSide,
        price: float,
        size: float,
    ) -> str:
        """Submit a limit order and return the exchange order id."""
        ...

    @abstractmethod
    async def cancel_all(self) -> None:
        """Cancel every open order on the account."""
        ...

    @abstractmethod
    async def get_balance_allowance(self, token_id: str) -> BalanceAllowance:
        """Balance and sellable allowance for a conditional token, in shares."""
        ...

    @abstractmethod
    async def grant_allowance(self, token_id: str) -> None:
        """Approve the exchange to move this token (enables selling)."""
        ...
