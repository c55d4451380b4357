"""
Command-line entry points: pump-buy, pump-sell, pump-claim-cashback.

Usage:
    pump-buy <TOKEN_ADDRESS> <AMOUNT_SOL> [--slippage-bps 300]
    pump-sell <TOKEN_ADDRESS> <PERCENT> [--slippage-bps 500]
    pump-claim-cashback [--platform pump_swap]

Credentials come from SOLANA_PRIVATE_KEY / SOLANA_NODE_RPC_ENDPOINT
(or .env), optionally overridden by --config bots/trader.yaml.
"""

import argparse
import asyncio
import sys

from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from config_loader import TraderConfig, load_trader_config
from core.client import SolanaClient
from core.errors import TradingError
from core.pubkeys import LAMPORTS_PER_SOL, TOKEN_DECIMALS
from interfaces.core import Platform, QuotingMode, TradeDirection, TradeRequest
from trading.balance_cache import InMemoryBalanceCache
from trading.executor import TradeExecutor
from utils.logger import (
    get_logger,
    setup_console_logging,
    setup_file_logging,
    setup_json_logging,
)

logger = get_logger(__name__)


def _base_parser(description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("--config", help="YAML config (default: environment only)")
    parser.add_argument(
        "--priority-fee", type=int, default=None, help="Priority fee in microlamports"
    )
    return parser


def _parse_mint(raw: str) -> Pubkey:
    try:
        return Pubkey.from_string(raw)
    except ValueError:
        print(f"❌ Invalid token address: {raw}")
        sys.exit(1)


def _make_executor(
    config: TraderConfig,
    client: SolanaClient,
    priority_fee: int | None,
    cache: InMemoryBalanceCache | None = None,
) -> TradeExecutor:
    return TradeExecutor(
        client,
        config.keypair(),
        cache=cache or InMemoryBalanceCache(),
        options=config.build,
        retry=config.retry,
        priority_fee=priority_fee if priority_fee is not None else config.priority_fee,
    )


async def buy_token(config: TraderConfig, mint: Pubkey, amount_sol: float, slippage_bps: int, priority_fee: int | None) -> bool:
    client = SolanaClient(config.rpc_endpoint)
    try:
        executor = _make_executor(config, client, priority_fee)
        request = TradeRequest(
            mint=mint,
            direction=TradeDirection.BUY,
            mode=QuotingMode.BUDGET_IN,
            amount=int(amount_sol * LAMPORTS_PER_SOL),
            slippage_bps=slippage_bps,
        )
        result = await executor.execute_buy(request)
        if not result.submitted:
            print("⚠️  Nothing to buy for that amount")
            return False
        tokens = (result.realized_token_amount or 0) / 10**TOKEN_DECIMALS
        print(f"✅ Bought {tokens:,.2f} tokens on {result.platform.value}")
        print(f"🔗 https://solscan.io/tx/{result.signature}")
        return True
    except TradingError as e:
        logger.error(f"Buy failed: {e}")
        print(f"❌ {e}")
        return False
    finally:
        await client.close()


async def sell_token(config: TraderConfig, mint: Pubkey, percent: float, slippage_bps: int, priority_fee: int | None) -> bool:
    client = SolanaClient(config.rpc_endpoint)
    try:
        cache = InMemoryBalanceCache()
        executor = _make_executor(config, client, priority_fee, cache)
        mint_info = await executor.state_reader.read_mint(mint)
        token_account = get_associated_token_address(
            executor.user, mint, mint_info.token_program
        )
        if await executor.state_reader.missing_accounts({"ata": token_account}):
            print("❌ No token account for this mint")
            return False

        balance = await client.get_token_account_balance(token_account)
        if balance == 0:
            print("❌ No tokens to sell")
            return False
        cache.record_fill(mint, balance)
        cache.set_balance(await client.get_balance(executor.user))

        result = await executor.execute_sell_fraction(mint, percent, slippage_bps)
        if not result.submitted:
            print("⚠️  Sell amount too small")
            return False
        print(
            f"✅ Sold {result.quote.primary_amount / 10**TOKEN_DECIMALS:,.2f} tokens "
            f"for ~{result.quote.sol_amount / LAMPORTS_PER_SOL:.6f} SOL"
        )
        print(f"🔗 https://solscan.io/tx/{result.signature}")
        return True
    except TradingError as e:
        logger.error(f"Sell failed: {e}")
        print(f"❌ {e}")
        return False
    finally:
        await client.close()


async def claim(config: TraderConfig, platform: Platform, priority_fee: int | None) -> bool:
    client = SolanaClient(config.rpc_endpoint)
    try:
        executor = _make_executor(config, client, priority_fee)
        signature = await executor.claim_cashback(platform)
        print(f"✅ Cashback claimed on {platform.value}")
        print(f"🔗 https://solscan.io/tx/{signature}")
        return True
    except TradingError as e:
        logger.error(f"Claim failed: {e}")
        print(f"❌ {e}")
        return False
    finally:
        await client.close()


def _load(args) -> TraderConfig:
    setup_console_logging()
    setup_file_logging()
    setup_json_logging()
    try:
        return load_trader_config(args.config)
    except ValueError as e:
        print(f"❌ Config error: {e}")
        sys.exit(1)


def buy_main():
    parser = _base_parser("Buy a token by mint address")
    parser.add_argument("token", help="Token mint address")
    parser.add_argument("amount", type=float, help="Amount of SOL to spend")
    parser.add_argument("--slippage-bps", type=int, default=None, help="Slippage in basis points")
    args = parser.parse_args()

    mint = _parse_mint(args.token)
    if args.amount <= 0:
        print("❌ Amount must be positive")
        sys.exit(1)

    config = _load(args)
    slippage = args.slippage_bps if args.slippage_bps is not None else config.slippage_bps
    print(f"🎯 Buying token: {mint}")
    print("=" * 50)
    success = asyncio.run(buy_token(config, mint, args.amount, slippage, args.priority_fee))
    sys.exit(0 if success else 1)


def sell_main():
    parser = _base_parser("Sell a percentage of a token holding")
    parser.add_argument("token", help="Token mint address")
    parser.add_argument("percent", type=float, help="Percentage to sell (100=all, 50=half)")
    parser.add_argument("--slippage-bps", type=int, default=None, help="Slippage in basis points")
    args = parser.parse_args()

    mint = _parse_mint(args.token)
    if args.percent <= 0 or args.percent > 100:
        print(f"❌ Invalid percent: {args.percent}. Must be between 0 and 100")
        sys.exit(1)

    config = _load(args)
    slippage = args.slippage_bps if args.slippage_bps is not None else config.slippage_bps
    print(f"🎯 Selling {args.percent:.0f}% of token: {mint}")
    print("=" * 50)
    success = asyncio.run(sell_token(config, mint, args.percent, slippage, args.priority_fee))
    sys.exit(0 if success else 1)


def claim_main():
    parser = _base_parser("Claim accrued trading cashback")
    parser.add_argument(
        "--platform",
        choices=[p.value for p in Platform],
        default=Platform.PUMP_SWAP.value,
    )
    args = parser.parse_args()

    config = _load(args)
    success = asyncio.run(claim(config, Platform(args.platform), args.priority_fee))
    sys.exit(0 if success else 1)

