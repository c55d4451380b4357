"""
Solana client abstraction for blockchain operations.
"""

import asyncio
import json
import re
from typing import Any

import aiohttp
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Processed
from solana.rpc.types import TxOpts
from solders.account import Account
from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from core.errors import AccountNotFound, MechanismChanged, SubmissionRejected
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_COMPUTE_UNIT_LIMIT = 150_000

# BondingCurveComplete is custom program error 6005 (0x1775)
CURVE_COMPLETE_PATTERN = re.compile(
    r"\b0x1775\b|\bCustom\W{0,3}6005\b|\bError Number: 6005\b|BondingCurveComplete",
    re.IGNORECASE,
)


def classify_send_error(error: Exception) -> SubmissionRejected:
    """Map a raw transport/program error onto the trading error taxonomy.

    BondingCurveComplete (6005 / 0x1775) means the curve migrated while the
    trade was in flight; everything else is a generic rejection.
    """
    if isinstance(error, SubmissionRejected):
        return error

    error_str = str(error)
    error_str_lower = error_str.lower()

    if CURVE_COMPLETE_PATTERN.search(error_str):
        return MechanismChanged(f"BondingCurveComplete: {error_str}")

    if "slippage" in error_str_lower or "0x1772" in error_str:
        return SubmissionRejected(f"SlippageExceeded: {error_str}")

    if "insufficient" in error_str_lower or "not enough" in error_str_lower:
        return SubmissionRejected(f"Insufficient funds: {error_str}")

    return SubmissionRejected(error_str)


class SolanaClient:
    """Abstraction for Solana RPC client operations."""

    def __init__(self, rpc_endpoint: str):
        """Initialize Solana client with RPC endpoint.

        Args:
            rpc_endpoint: URL of the Solana RPC endpoint
        """
        self.rpc_endpoint = rpc_endpoint
        self._client = None

    async def get_client(self) -> AsyncClient:
        """Get or create the AsyncClient instance."""
        if self._client is None:
            self._client = AsyncClient(self.rpc_endpoint)
        return self._client

    async def close(self):
        """Close the client connection."""
        if self._client:
            await self._client.close()
            self._client = None

    async def get_account_info(self, pubkey: Pubkey) -> Account:
        """Get account info from the blockchain.

        Args:
            pubkey: Public key of the account

        Returns:
            Account with owner and raw data

        Raises:
            AccountNotFound: If the account doesn't exist
        """
        client = await self.get_client()
        response = await client.get_account_info(pubkey, encoding="base64")
        if not response.value:
            raise AccountNotFound(pubkey)
        return response.value

    async def get_multiple_accounts(
        self, pubkeys: list[Pubkey]
    ) -> list[Account | None]:
        """Get multiple accounts in a single RPC call.

        Args:
            pubkeys: List of public keys (max 100)

        Returns:
            Accounts in request order, None for accounts that don't exist
        """
        if not pubkeys:
            return []

        if len(pubkeys) > 100:
            raise ValueError(f"get_multiple_accounts: {len(pubkeys)} > 100 keys")

        client = await self.get_client()
        response = await client.get_multiple_accounts(pubkeys, encoding="base64")
        return [account if account else None for account in response.value]

    async def get_balance(self, pubkey: Pubkey) -> int:
        """Get SOL balance in lamports."""
        client = await self.get_client()
        response = await client.get_balance(pubkey, commitment=Processed)
        return response.value

    async def get_token_account_balance(self, token_account: Pubkey) -> int:
        """Get raw token balance for a token account (0 if missing)."""
        client = await self.get_client()
        response = await client.get_token_account_balance(token_account)
        return int(response.value.amount) if response.value else 0

    async def get_epoch(self) -> int:
        """Get the current epoch (selects the active transfer-fee entry)."""
        client = await self.get_client()
        response = await client.get_epoch_info()
        return response.value.epoch

    async def get_latest_blockhash(self) -> Hash:
        """Get the latest blockhash."""
        client = await self.get_client()
        response = await client.get_latest_blockhash(commitment="processed")
        return response.value.blockhash

    async def build_and_send_transaction(
        self,
        instructions: list[Instruction],
        signer_keypair: Keypair,
        skip_preflight: bool = False,
        priority_fee: int | None = None,
        compute_unit_limit: int | None = None,
    ) -> str:
        """
        Send one transaction with optional priority fee and compute unit limit.

        Retrying is owned by the caller so every attempt can re-quote.

        Args:
            instructions: List of instructions to include in the transaction.
            signer_keypair: Keypair to sign the transaction.
            skip_preflight: Whether to skip preflight simulation.
            priority_fee: Optional priority fee in microlamports.
            compute_unit_limit: Optional compute unit limit.

        Returns:
            Transaction signature.

        Raises:
            MechanismChanged: If the bonding curve completed under the trade
            SubmissionRejected: For any other rejection
        """
        client = await self.get_client()

        if priority_fee is not None or compute_unit_limit is not None:
            fee_instructions = [
                set_compute_unit_limit(
                    compute_unit_limit
                    if compute_unit_limit is not None
                    else DEFAULT_COMPUTE_UNIT_LIMIT
                )
            ]
            if priority_fee is not None:
                fee_instructions.append(set_compute_unit_price(priority_fee))
            instructions = fee_instructions + list(instructions)

        try:
            recent_blockhash = await self.get_latest_blockhash()
            message = Message(instructions, signer_keypair.pubkey())
            transaction = Transaction([signer_keypair], message, recent_blockhash)
            tx_opts = TxOpts(
                skip_preflight=skip_preflight, preflight_commitment=Processed
            )
            response = await client.send_transaction(transaction, tx_opts)
        except Exception as e:
            rejected = classify_send_error(e)
            logger.error(f"Transaction rejected: {rejected}")
            raise rejected from e

        logger.info(f"Transaction sent: {response.value}")
        return str(response.value)

    async def confirm_transaction(
        self, signature: str, commitment: str = "confirmed", timeout: float = 45.0
    ) -> bool:
        """Wait for transaction confirmation with timeout.

        If the wait times out the signature status is checked directly,
        transactions may be confirmed even if the wait itself timed out.

        Args:
            signature: Transaction signature
            commitment: Confirmation commitment level
            timeout: Maximum time to wait for confirmation

        Returns:
            Whether transaction was confirmed without error
        """
        client = await self.get_client()
        sig_obj = (
            Signature.from_string(signature) if isinstance(signature, str) else signature
        )

        try:
            await asyncio.wait_for(
                client.confirm_transaction(
                    sig_obj, commitment=commitment, sleep_seconds=0.5
                ),
                timeout=timeout,
            )
        except TimeoutError:
            logger.warning(
                f"Confirmation wait timed out after {timeout}s, checking status directly..."
            )
            status = await client.get_signature_statuses([sig_obj])
            if status.value and status.value[0]:
                if status.value[0].err is None:
                    return True
                logger.error(f"Transaction failed with error: {status.value[0].err}")
            return False

        status = await client.get_signature_statuses([sig_obj])
        if status.value and status.value[0] and status.value[0].err is not None:
            logger.error(f"Transaction failed with error: {status.value[0].err}")
            return False
        return True

    async def get_token_balance_change(
        self, signature: str, owner: Pubkey, mint: Pubkey
    ) -> int | None:
        """Get how many raw tokens of mint the owner gained (negative if lost).

        Uses pre/post token balances of the confirmed transaction.

        Returns:
            Balance delta, or None if the transaction could not be fetched
        """
        result = await self._get_transaction_result(signature)
        if not result:
            return None

        meta = result.get("meta", {})
        owner_str = str(owner)
        mint_str = str(mint)

        def _amount(balances: list[dict]) -> int:
            for balance in balances:
                if balance.get("owner") == owner_str and balance.get("mint") == mint_str:
                    return int(balance.get("uiTokenAmount", {}).get("amount", 0))
            return 0

        pre_amount = _amount(meta.get("preTokenBalances", []))
        post_amount = _amount(meta.get("postTokenBalances", []))
        return post_amount - pre_amount

    async def _get_transaction_result(self, signature: str) -> dict | None:
        """Fetch a confirmed transaction through raw JSON-RPC."""
        body = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "getTransaction",
            "params": [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": "confirmed",
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        }

        response = await self.post_rpc(body)
        if not response or "result" not in response:
            logger.warning(f"Failed to get transaction {signature}")
            return None

        result = response["result"]
        if not result or "meta" not in result:
            return None
        return result

    async def post_rpc(self, body: dict[str, Any]) -> dict[str, Any] | None:
        """
        Send a raw RPC request to the Solana node.

        Args:
            body: JSON-RPC request body.

        Returns:
            Parsed JSON response, or None if the request fails.
        """
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.rpc_endpoint,
                    json=body,
                    timeout=aiohttp.ClientTimeout(10),
                ) as response:
                    response.raise_for_status()
                    return await response.json()
        except aiohttp.ClientError:
            logger.exception("RPC request failed")
            return None
        except json.JSONDecodeError:
            logger.exception("Failed to decode RPC response")
            return None
