"""
Pump.fun bonding curve and global account decoding.

Layouts are read by fixed offset. Trailing flags are optional so accounts
created before those fields existed still decode.
"""

from dataclasses import dataclass

from construct import Bytes, Flag, Int64ul, Struct
from solders.pubkey import Pubkey

from core.client import SolanaClient
from core.errors import MalformedAccount
from interfaces.core import CurveState
from platforms.pumpfun.address_provider import PumpFunAddressProvider
from utils.logger import get_logger

logger = get_logger(__name__)

CURVE_STRUCT = Struct(
    "discriminator" / Bytes(8),
    "virtual_token_reserves" / Int64ul,
    "virtual_sol_reserves" / Int64ul,
    "real_token_reserves" / Int64ul,
    "real_sol_reserves" / Int64ul,
    "token_total_supply" / Int64ul,
    "complete" / Flag,
    "creator" / Bytes(32),
)
CURVE_MIN_SIZE = CURVE_STRUCT.sizeof()  # 81
CURVE_MAYHEM_OFFSET = 81
CURVE_CASHBACK_OFFSET = 82

GLOBAL_FEE_RECIPIENT_OFFSET = 41
GLOBAL_PROTOCOL_FEE_OFFSET = 105
GLOBAL_CREATOR_FEE_OFFSET = 154
GLOBAL_MIN_SIZE = GLOBAL_CREATOR_FEE_OFFSET + 8  # 162


@dataclass(frozen=True)
class GlobalAccount:
    """Fields of the Pump.fun global account used for trading."""

    fee_recipient: Pubkey
    protocol_fee_bps: int
    creator_fee_bps: int


def _optional_flag(data: bytes, offset: int) -> bool:
    return len(data) > offset and data[offset] != 0


def decode_curve_state(address: Pubkey, mint: Pubkey, data: bytes) -> CurveState:
    """Decode raw bonding curve bytes.

    Raises:
        MalformedAccount: If data is shorter than the fixed prefix or the
            virtual reserves are zero on an active curve
    """
    if len(data) < CURVE_MIN_SIZE:
        raise MalformedAccount(
            address, f"bonding curve needs {CURVE_MIN_SIZE} bytes, got {len(data)}"
        )

    parsed = CURVE_STRUCT.parse(data)
    state = CurveState(
        mint=mint,
        bonding_curve=address,
        virtual_token_reserves=parsed.virtual_token_reserves,
        virtual_sol_reserves=parsed.virtual_sol_reserves,
        real_token_reserves=parsed.real_token_reserves,
        real_sol_reserves=parsed.real_sol_reserves,
        token_total_supply=parsed.token_total_supply,
        complete=parsed.complete,
        creator=Pubkey.from_bytes(parsed.creator),
        is_mayhem_mode=_optional_flag(data, CURVE_MAYHEM_OFFSET),
        is_cashback_coin=_optional_flag(data, CURVE_CASHBACK_OFFSET),
    )

    if not state.complete and (
        state.virtual_token_reserves == 0 or state.virtual_sol_reserves == 0
    ):
        raise MalformedAccount(address, "active curve with zero virtual reserves")

    return state


def decode_global_account(address: Pubkey, data: bytes) -> GlobalAccount:
    if len(data) < GLOBAL_MIN_SIZE:
        raise MalformedAccount(
            address, f"global account needs {GLOBAL_MIN_SIZE} bytes, got {len(data)}"
        )
    return GlobalAccount(
        fee_recipient=Pubkey.from_bytes(
            data[GLOBAL_FEE_RECIPIENT_OFFSET : GLOBAL_FEE_RECIPIENT_OFFSET + 32]
        ),
        protocol_fee_bps=Int64ul.parse(
            data[GLOBAL_PROTOCOL_FEE_OFFSET : GLOBAL_PROTOCOL_FEE_OFFSET + 8]
        ),
        creator_fee_bps=Int64ul.parse(
            data[GLOBAL_CREATOR_FEE_OFFSET : GLOBAL_CREATOR_FEE_OFFSET + 8]
        ),
    )


class PumpFunCurveManager:
    """Fetches and decodes Pump.fun curve accounts."""

    def __init__(
        self,
        client: SolanaClient,
        address_provider: PumpFunAddressProvider | None = None,
    ):
        self.client = client
        self.address_provider = address_provider or PumpFunAddressProvider()

    async def get_curve_state(self, mint: Pubkey) -> CurveState:
        """Fetch the bonding curve for mint.

        Raises:
            AccountNotFound: If the curve account does not exist
            MalformedAccount: If it cannot be decoded
        """
        curve_address = self.address_provider.derive_bonding_curve(mint)
        account = await self.client.get_account_info(curve_address)
        state = decode_curve_state(curve_address, mint, bytes(account.data))

        logger.debug(
            f"Curve {curve_address}: vT={state.virtual_token_reserves} "
            f"vS={state.virtual_sol_reserves} rT={state.real_token_reserves} "
            f"complete={state.complete} cashback={state.is_cashback_coin}"
        )
        return state

    async def get_global_account(self) -> GlobalAccount:
        address = self.address_provider.derive_global()
        account = await self.client.get_account_info(address)
        return decode_global_account(address, bytes(account.data))
