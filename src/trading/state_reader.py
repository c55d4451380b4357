"""
Reads on-chain state that quoting and instruction assembly depend on.

Every read is a fresh fetch: nothing is cached between calls so a trade
attempt always sees the mechanism that currently governs the token.
"""

from construct import Int8ul, Int16ul, Int64ul, Struct
from solders.pubkey import Pubkey

from core.client import SolanaClient
from core.errors import AccountNotFound, MalformedAccount
from core.pubkeys import SystemAddresses
from interfaces.core import (
    CurveState,
    Mechanism,
    MintInfo,
    PoolState,
    TransferFee,
    TransferFeeConfig,
)
from platforms.pumpfun.curve_manager import GlobalAccount, PumpFunCurveManager
from platforms.pumpswap.pool_manager import PumpSwapPoolManager
from utils.logger import get_logger

logger = get_logger(__name__)

MINT_DECIMALS_OFFSET = 44
MINT_BASE_SIZE = 82
TOKEN_2022_TLV_OFFSET = 166
EXTENSION_TRANSFER_FEE_CONFIG = 1

TRANSFER_FEE_STRUCT = Struct(
    "epoch" / Int64ul,
    "maximum_fee" / Int64ul,
    "transfer_fee_basis_points" / Int16ul,
)
# Two 32-byte authorities and the withheld amount precede the fee entries
TRANSFER_FEE_CONFIG_PREFIX = 32 + 32 + 8
TRANSFER_FEE_CONFIG_SIZE = TRANSFER_FEE_CONFIG_PREFIX + 2 * TRANSFER_FEE_STRUCT.sizeof()


def _decode_transfer_fee(raw: bytes) -> TransferFee:
    parsed = TRANSFER_FEE_STRUCT.parse(raw)
    return TransferFee(
        epoch=parsed.epoch,
        maximum_fee=parsed.maximum_fee,
        basis_points=parsed.transfer_fee_basis_points,
    )


def decode_transfer_fee_config(data: bytes) -> TransferFeeConfig | None:
    """Find the transfer-fee extension in Token-2022 mint TLV data."""
    offset = TOKEN_2022_TLV_OFFSET
    while offset + 4 <= len(data):
        extension_type = Int16ul.parse(data[offset : offset + 2])
        length = Int16ul.parse(data[offset + 2 : offset + 4])
        value_start = offset + 4
        if extension_type == 0:
            break
        if extension_type == EXTENSION_TRANSFER_FEE_CONFIG:
            if length < TRANSFER_FEE_CONFIG_SIZE or value_start + length > len(data):
                return None
            entry_size = TRANSFER_FEE_STRUCT.sizeof()
            older_start = value_start + TRANSFER_FEE_CONFIG_PREFIX
            newer_start = older_start + entry_size
            return TransferFeeConfig(
                older=_decode_transfer_fee(data[older_start : older_start + entry_size]),
                newer=_decode_transfer_fee(data[newer_start : newer_start + entry_size]),
            )
        offset = value_start + length
    return None


def decode_mint(address: Pubkey, owner: Pubkey, data: bytes) -> MintInfo:
    """Decode mint decimals, owning program and transfer-fee extension."""
    if owner not in (SystemAddresses.TOKEN_PROGRAM, SystemAddresses.TOKEN_2022_PROGRAM):
        raise MalformedAccount(address, f"mint owned by unknown program {owner}")
    if len(data) < MINT_BASE_SIZE:
        raise MalformedAccount(address, f"mint needs {MINT_BASE_SIZE} bytes, got {len(data)}")

    transfer_fee = None
    if owner == SystemAddresses.TOKEN_2022_PROGRAM and len(data) > TOKEN_2022_TLV_OFFSET:
        transfer_fee = decode_transfer_fee_config(data)

    return MintInfo(
        mint=address,
        token_program=owner,
        decimals=Int8ul.parse(data[MINT_DECIMALS_OFFSET : MINT_DECIMALS_OFFSET + 1]),
        transfer_fee=transfer_fee,
    )


class StateReader:
    """Fresh reads of curve, pool, global and mint state."""

    def __init__(
        self,
        client: SolanaClient,
        curve_manager: PumpFunCurveManager | None = None,
        pool_manager: PumpSwapPoolManager | None = None,
    ):
        self.client = client
        self.curve_manager = curve_manager or PumpFunCurveManager(client)
        self.pool_manager = pool_manager or PumpSwapPoolManager(client)

    async def read_curve(self, mint: Pubkey) -> CurveState:
        return await self.curve_manager.get_curve_state(mint)

    async def read_pool(self, mint: Pubkey, curve: CurveState | None = None) -> PoolState:
        is_cashback_coin = curve.is_cashback_coin if curve is not None else False
        return await self.pool_manager.get_pool_state(mint, is_cashback_coin)

    async def read_mechanism(self, mint: Pubkey) -> Mechanism:
        """Return whichever mechanism currently governs mint.

        An active curve is returned as is; a completed curve routes to the
        PumpSwap pool it migrated into.

        Raises:
            AccountNotFound: If neither the curve nor the pool exists
            MalformedAccount: If the governing account cannot be decoded
        """
        try:
            curve = await self.read_curve(mint)
        except AccountNotFound:
            logger.info(f"No bonding curve for {mint}, looking for a PumpSwap pool")
            return await self.read_pool(mint)

        if not curve.complete:
            return curve

        logger.info(f"Bonding curve for {mint} is complete, routing to PumpSwap")
        return await self.read_pool(mint, curve)

    async def read_global(self) -> GlobalAccount:
        return await self.curve_manager.get_global_account()

    async def read_mint(self, mint: Pubkey) -> MintInfo:
        account = await self.client.get_account_info(mint)
        return decode_mint(mint, account.owner, bytes(account.data))

    async def read_account_data(self, address: Pubkey) -> bytes | None:
        """Raw account bytes, or None if the account does not exist."""
        try:
            account = await self.client.get_account_info(address)
        except AccountNotFound:
            return None
        return bytes(account.data)

    async def missing_accounts(self, named: dict[str, Pubkey]) -> set[str]:
        """Names whose accounts do not exist yet (one batched request)."""
        if not named:
            return set()
        names = list(named)
        accounts = await self.client.get_multiple_accounts([named[n] for n in names])
        return {name for name, account in zip(names, accounts) if account is None}
