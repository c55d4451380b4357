"""
In-memory wallet cache: token holdings with last fill price and SOL balance.
"""

from dataclasses import dataclass

from solders.pubkey import Pubkey

from core.pubkeys import LAMPORTS_PER_SOL
from interfaces.core import BalanceCache
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class TokenHolding:
    amount: int
    price: float | None = None


class InMemoryBalanceCache(BalanceCache):
    """Process-local BalanceCache. Entries disappear when they reach zero."""

    def __init__(self, sol_lamports: int = 0):
        self.sol_lamports = sol_lamports
        self.holdings: dict[str, TokenHolding] = {}

    def get_holding(self, mint: Pubkey) -> TokenHolding | None:
        return self.holdings.get(str(mint))

    def get_holding_fraction(self, mint: Pubkey, percent: float) -> int:
        """Amount to sell for percent of the holding.

        Never returns less than 1 when something is held and percent > 0,
        never more than the holding.
        """
        holding = self.get_holding(mint)
        if holding is None or holding.amount <= 0 or percent <= 0:
            return 0
        amount = holding.amount * round(percent * 100) // 10_000
        return min(max(amount, 1), holding.amount)

    def record_fill(self, mint: Pubkey, amount_delta: int, price: float | None = None) -> None:
        key = str(mint)
        existing = self.holdings.get(key)
        amount = (existing.amount if existing else 0) + amount_delta
        if amount <= 0:
            self.holdings.pop(key, None)
            logger.info(f"Removed {key} from cache (balance {amount})")
            return
        self.holdings[key] = TokenHolding(
            amount=amount,
            price=price if price is not None else (existing.price if existing else None),
        )
        logger.info(f"Added {amount_delta} to {key}, holding {amount}")

    def reduce_holding(self, mint: Pubkey, amount: int) -> None:
        key = str(mint)
        holding = self.holdings.get(key)
        if holding is None:
            return
        holding.amount = holding.amount - amount if holding.amount > amount else 0
        if holding.amount == 0:
            del self.holdings[key]
            logger.info(f"Removed {key} from cache (fully sold)")
        else:
            logger.info(f"Reduced {key} by {amount}, remaining {holding.amount}")

    def get_balance(self) -> int:
        return self.sol_lamports

    def credit_balance(self, amount: int) -> None:
        if amount <= 0:
            return
        self.sol_lamports += amount
        logger.info(
            f"Credited {amount} lamports, balance {self.sol_lamports / LAMPORTS_PER_SOL:.4f} SOL"
        )

    def set_balance(self, lamports: int) -> None:
        self.sol_lamports = lamports
