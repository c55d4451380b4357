"""
Fee resolution for the curve and the pool.

Three tiers, first usable one wins:
    1. fee-config account of the fee program keyed by the trading program
    2. the trading program's own global account
    3. hard-coded defaults
Reading problems never surface to the caller, they only push resolution
down a tier (logged as a warning).
"""

from collections.abc import Callable

from construct import Bytes, Int8ul, Int64ul, Struct
from solders.pubkey import Pubkey

from interfaces.core import CurveState, FeeSchedule, Mechanism
from platforms.pumpfun.address_provider import PumpFunAddressProvider
from platforms.pumpfun.curve_manager import (
    GLOBAL_CREATOR_FEE_OFFSET,
    GLOBAL_MIN_SIZE,
    GLOBAL_PROTOCOL_FEE_OFFSET,
)
from platforms.pumpswap.address_provider import PumpSwapAddressProvider
from trading.state_reader import StateReader
from utils.logger import get_logger

logger = get_logger(__name__)

FEE_CONFIG_STRUCT = Struct(
    "discriminator" / Bytes(8),
    "authority" / Bytes(32),
    "bump" / Int8ul,
    "lp_fee_bps" / Int64ul,
    "protocol_fee_bps" / Int64ul,
    "creator_fee_bps" / Int64ul,
)
FEE_CONFIG_MIN_SIZE = FEE_CONFIG_STRUCT.sizeof()  # 65

# PumpSwap GlobalConfig: admin, lp fee, protocol fee, disable flags,
# eight protocol fee recipients, then the coin creator fee
POOL_GLOBAL_LP_FEE_OFFSET = 40
POOL_GLOBAL_PROTOCOL_FEE_OFFSET = 48
POOL_GLOBAL_CREATOR_FEE_OFFSET = 313
POOL_GLOBAL_MIN_SIZE = POOL_GLOBAL_CREATOR_FEE_OFFSET + 8

DEFAULT_CURVE_FEES = FeeSchedule(protocol_bps=95, creator_bps=30, source="default")
DEFAULT_POOL_FEES = FeeSchedule(protocol_bps=5, creator_bps=5, lp_bps=20, source="default")


def _u64_at(data: bytes, offset: int) -> int:
    return Int64ul.parse(data[offset : offset + 8])


def decode_fee_config(data: bytes, include_lp: bool) -> FeeSchedule | None:
    if len(data) < FEE_CONFIG_MIN_SIZE:
        return None
    parsed = FEE_CONFIG_STRUCT.parse(data)
    return FeeSchedule(
        protocol_bps=parsed.protocol_fee_bps,
        creator_bps=parsed.creator_fee_bps,
        lp_bps=parsed.lp_fee_bps if include_lp else 0,
        source="fee_config",
    )


def decode_curve_global_fees(data: bytes) -> FeeSchedule | None:
    if len(data) < GLOBAL_MIN_SIZE:
        return None
    return FeeSchedule(
        protocol_bps=_u64_at(data, GLOBAL_PROTOCOL_FEE_OFFSET),
        creator_bps=_u64_at(data, GLOBAL_CREATOR_FEE_OFFSET),
        source="global",
    )


def decode_pool_global_fees(data: bytes) -> FeeSchedule | None:
    if len(data) < POOL_GLOBAL_MIN_SIZE:
        return None
    return FeeSchedule(
        protocol_bps=_u64_at(data, POOL_GLOBAL_PROTOCOL_FEE_OFFSET),
        creator_bps=_u64_at(data, POOL_GLOBAL_CREATOR_FEE_OFFSET),
        lp_bps=_u64_at(data, POOL_GLOBAL_LP_FEE_OFFSET),
        source="global",
    )


FeeTier = tuple[str, Pubkey, Callable[[bytes], FeeSchedule | None]]


class FeeOracle:
    """Resolves the FeeSchedule in effect for a mechanism."""

    def __init__(
        self,
        state_reader: StateReader,
        pumpfun: PumpFunAddressProvider | None = None,
        pumpswap: PumpSwapAddressProvider | None = None,
    ):
        self.state_reader = state_reader
        self.pumpfun = pumpfun or PumpFunAddressProvider()
        self.pumpswap = pumpswap or PumpSwapAddressProvider(self.pumpfun)

    def _tiers(self, mechanism: Mechanism) -> tuple[list[FeeTier], FeeSchedule]:
        if isinstance(mechanism, CurveState):
            return [
                ("fee_config", self.pumpfun.derive_fee_config(),
                 lambda data: decode_fee_config(data, include_lp=False)),
                ("global", self.pumpfun.derive_global(), decode_curve_global_fees),
            ], DEFAULT_CURVE_FEES
        return [
            ("fee_config", self.pumpswap.derive_fee_config(),
             lambda data: decode_fee_config(data, include_lp=True)),
            ("global_config", self.pumpswap.derive_global_config(), decode_pool_global_fees),
        ], DEFAULT_POOL_FEES

    async def _try_tier(
        self,
        name: str,
        address: Pubkey,
        decode: Callable[[bytes], FeeSchedule | None],
    ) -> FeeSchedule | None:
        try:
            data = await self.state_reader.read_account_data(address)
        except Exception as e:
            logger.warning(f"Fee tier {name} unreadable ({address}): {e}")
            return None

        if data is None:
            logger.warning(f"Fee tier {name} account {address} not found")
            return None

        fees = decode(data)
        if fees is None:
            logger.warning(f"Fee tier {name} account {address} too short ({len(data)} bytes)")
            return None
        if not fees.is_usable:
            logger.warning(f"Fee tier {name} has unusable total {fees.total_bps} bps")
            return None
        return fees

    async def resolve(self, mechanism: Mechanism) -> FeeSchedule:
        """Resolve fees for mechanism. Never raises."""
        tiers, default = self._tiers(mechanism)
        for name, address, decode in tiers:
            fees = await self._try_tier(name, address, decode)
            if fees is not None:
                logger.info(
                    f"{mechanism.platform.value} fees from {fees.source}: "
                    f"protocol={fees.protocol_bps} creator={fees.creator_bps} "
                    f"lp={fees.lp_bps} total={fees.total_bps} bps"
                )
                return fees

        logger.warning(
            f"{mechanism.platform.value} fees fell back to defaults: {default.total_bps} bps"
        )
        return default
