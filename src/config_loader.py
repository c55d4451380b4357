"""
Configuration loading: YAML file with ${VAR} placeholders resolved from
the environment (and .env).

Environment toggles are read here once and turned into explicit values
on BuildOptions; nothing else in the project looks at os.environ.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import base58
import yaml
from dotenv import load_dotenv
from solders.keypair import Keypair

from interfaces.core import BuildOptions
from trading.executor import DEFAULT_PRIORITY_FEE, RetryPolicy
from utils.logger import get_logger

logger = get_logger(__name__)

ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

RPC_ENDPOINT_ENV = "SOLANA_NODE_RPC_ENDPOINT"
PRIVATE_KEY_ENV = "SOLANA_PRIVATE_KEY"
INCLUDE_V2_ENV = "PUMP_INCLUDE_V2_ACCOUNTS"

DEFAULT_SLIPPAGE_BPS = 300

BUILD_OPTION_KEYS = {
    "include_v2_accounts",
    "buy_24b_compat",
    "track_volume",
    "cashback_track_volume",
    "close_wsol_account",
    "wsol_wrap_buffer_lamports",
}


@dataclass
class TraderConfig:
    rpc_endpoint: str
    private_key: str
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS
    priority_fee: int | None = DEFAULT_PRIORITY_FEE
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    build: BuildOptions = field(default_factory=BuildOptions)
    name: str = "pump-trader"

    def keypair(self) -> Keypair:
        """Decode the base58 secret key."""
        return Keypair.from_bytes(base58.b58decode(self.private_key))


def resolve_env_vars(value: Any) -> Any:
    """Replace ${VAR} placeholders in every string of a parsed YAML tree.

    Raises:
        ValueError: If a referenced variable is not set
    """
    if isinstance(value, dict):
        return {key: resolve_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]
    if not isinstance(value, str):
        return value

    def _substitute(match: re.Match) -> str:
        name = match.group(1)
        resolved = os.environ.get(name)
        if resolved is None:
            raise ValueError(f"Environment variable {name} is not set")
        return resolved

    return ENV_VAR_PATTERN.sub(_substitute, value)


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() != "false"


def build_options_from(section: dict[str, Any] | None) -> BuildOptions:
    section = dict(section or {})
    unknown = set(section) - BUILD_OPTION_KEYS
    if unknown:
        raise ValueError(f"Unknown instructions options: {sorted(unknown)}")

    env_v2 = os.environ.get(INCLUDE_V2_ENV)
    if env_v2 is not None:
        section["include_v2_accounts"] = _parse_bool(env_v2)
        logger.info(f"{INCLUDE_V2_ENV}={env_v2} -> include_v2_accounts={section['include_v2_accounts']}")

    options = BuildOptions(**section)
    if options.wsol_wrap_buffer_lamports < 0:
        raise ValueError("wsol_wrap_buffer_lamports must be non-negative")
    return options


def load_trader_config(path: str | Path | None = None) -> TraderConfig:
    """Load configuration from YAML (optional) and the environment.

    Args:
        path: YAML file; when omitted only environment values are used

    Returns:
        Validated TraderConfig

    Raises:
        ValueError: On missing credentials or invalid values
    """
    load_dotenv()

    raw: dict[str, Any] = {}
    if path is not None:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"{path}: top level must be a mapping")
        raw = resolve_env_vars(raw)

    rpc_endpoint = raw.get("rpc_endpoint") or os.environ.get(RPC_ENDPOINT_ENV)
    private_key = raw.get("private_key") or os.environ.get(PRIVATE_KEY_ENV)
    if not rpc_endpoint:
        raise ValueError(f"rpc_endpoint is not configured ({RPC_ENDPOINT_ENV})")
    if not private_key:
        raise ValueError(f"private_key is not configured ({PRIVATE_KEY_ENV})")

    trade = raw.get("trade") or {}
    slippage_bps = int(trade.get("slippage_bps", DEFAULT_SLIPPAGE_BPS))
    if not 0 <= slippage_bps <= 10_000:
        raise ValueError(f"slippage_bps must be within 0..10000, got {slippage_bps}")

    retry_section = raw.get("retry") or {}
    retry = RetryPolicy(
        max_attempts=int(retry_section.get("max_attempts", 3)),
        delay_seconds=float(retry_section.get("delay_seconds", 0.1)),
    )

    config = TraderConfig(
        name=raw.get("name", "pump-trader"),
        rpc_endpoint=rpc_endpoint,
        private_key=private_key,
        slippage_bps=slippage_bps,
        priority_fee=trade.get("priority_fee", DEFAULT_PRIORITY_FEE),
        retry=retry,
        build=build_options_from(raw.get("instructions")),
    )
    logger.info(
        f"Loaded config '{config.name}': slippage={config.slippage_bps} bps, "
        f"retries={config.retry.max_attempts}, v2={config.build.include_v2_accounts}"
    )
    return config
