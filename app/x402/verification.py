# app/x402/verification.py
"""
On-chain payment verification for x402 challenges.

A PaymentVerifier decides whether a transaction reference proves that the
quoted amount reached the quoted recipient. The challenge state machine only
sees the VerificationResult, so any payment network can be plugged in.

SolanaRpcVerifier checks a transaction signature over Solana JSON-RPC:
1. getSignatureStatuses: the transaction landed, succeeded, and reached the
   configured confirmation level
2. getTransaction (jsonParsed): it moved at least the quoted amount to the
   recipient, either as a native SOL transfer or as an SPL token balance
   increase for the configured mint, and its block time is not earlier than
   the challenge it is claimed for

Configuration is loaded from app/core/config.py:
- X402_VERIFY_PAYMENTS: Enable verification (off = accept payment claims)
- SOLANA_RPC_URL: JSON-RPC endpoint
- X402_RPC_TIMEOUT_SECONDS: Timeout for each RPC call
- X402_MIN_CONFIRMATION: "processed", "confirmed" or "finalized"
- X402_TOKEN_MINT: SPL mint address for non-SOL tokens
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

import requests
from requests.exceptions import RequestException

from app.core.config import settings
from app.x402.errors import InternalError
from app.x402.models import Pricing

logger = logging.getLogger(__name__)

NATIVE_TOKEN = "SOL"

# Tolerated drift between the gateway clock and validator block times
BLOCK_TIME_SKEW_SECONDS = 60

CONFIRMATION_LEVELS = {
    "processed": 0,
    "confirmed": 1,
    "finalized": 2,
}


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of checking a payment proof."""
    is_valid: bool
    invalid_reason: Optional[str] = None
    payer: Optional[str] = None

    @classmethod
    def rejected(cls, reason: str) -> "VerificationResult":
        return cls(is_valid=False, invalid_reason=reason)


class PaymentVerifier(ABC):
    """Confirms that a transaction paid the expected terms."""

    @abstractmethod
    def verify(
        self,
        transaction_ref: str,
        expected: Pricing,
        not_before: Optional[datetime] = None
    ) -> VerificationResult:
        """
        Check a transaction against the expected pricing.

        Transactions that landed before not_before (the challenge issuance
        time) do not count as payment for it.

        Raises:
            InternalError: If the result could not be determined (network fault, timeout)
        """


class SolanaRpcVerifier(PaymentVerifier):
    """Verifies Solana payments through a JSON-RPC node."""

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        timeout: Optional[float] = None,
        min_confirmation: Optional[str] = None,
        token_mint: Optional[str] = None
    ):
        self.rpc_url = rpc_url or str(settings.SOLANA_RPC_URL)
        self.timeout = timeout if timeout is not None else settings.X402_RPC_TIMEOUT_SECONDS
        self.min_confirmation = (min_confirmation or settings.X402_MIN_CONFIRMATION).lower()
        self.token_mint = token_mint if token_mint is not None else settings.X402_TOKEN_MINT

        if self.min_confirmation not in CONFIRMATION_LEVELS:
            raise ValueError(f"Unknown confirmation level: {self.min_confirmation}")

    def verify(
        self,
        transaction_ref: str,
        expected: Pricing,
        not_before: Optional[datetime] = None
    ) -> VerificationResult:
        if not expected.network.lower().startswith("solana"):
            return VerificationResult.rejected(f"Unsupported network: {expected.network}")

        status = self._get_signature_status(transaction_ref)
        if status is None:
            return VerificationResult.rejected("Transaction not found")
        if status.get("err") is not None:
            return VerificationResult.rejected(f"Transaction failed: {status['err']}")

        confirmation = status.get("confirmationStatus") or "processed"
        if CONFIRMATION_LEVELS.get(confirmation, 0) < CONFIRMATION_LEVELS[self.min_confirmation]:
            return VerificationResult.rejected(
                f"Transaction not yet {self.min_confirmation} (currently {confirmation})"
            )

        transaction = self._get_transaction(transaction_ref)
        if transaction is None:
            return VerificationResult.rejected("Transaction details unavailable")

        meta = transaction.get("meta") or {}
        if meta.get("err") is not None:
            return VerificationResult.rejected(f"Transaction failed: {meta['err']}")

        if not_before is not None:
            rejection = self._check_block_time(transaction, not_before)
            if rejection is not None:
                return rejection

        if expected.token.upper() == NATIVE_TOKEN:
            received, payer = self._native_amount_received(transaction, expected.recipient)
        else:
            if not self.token_mint:
                return VerificationResult.rejected(
                    f"No mint configured to verify {expected.token} payments"
                )
            received, payer = self._token_amount_received(meta, expected.recipient, self.token_mint)

        required = expected.amount_base_units
        if received < required:
            logger.warning(
                f"Payment {transaction_ref} short: received {received}, required {required} "
                f"base units of {expected.token} to {expected.recipient}"
            )
            if received == 0:
                return VerificationResult.rejected(
                    f"No {expected.token} transfer to {expected.recipient} found in transaction"
                )
            return VerificationResult.rejected(
                f"Insufficient payment: required {required}, received {received} base units"
            )

        logger.info(f"Payment {transaction_ref} verified: {received} base units of {expected.token}")
        return VerificationResult(is_valid=True, payer=payer)

    @staticmethod
    def _check_block_time(
        transaction: Dict[str, Any],
        not_before: datetime
    ) -> Optional[VerificationResult]:
        """Reject transactions without a block time or from before not_before."""
        block_time = transaction.get("blockTime")
        if block_time is None:
            return VerificationResult.rejected("Transaction block time unavailable")

        landed_at = datetime.fromtimestamp(block_time, tz=timezone.utc)
        if landed_at < not_before - timedelta(seconds=BLOCK_TIME_SKEW_SECONDS):
            logger.warning(
                f"Transaction landed at {landed_at.isoformat()}, before challenge "
                f"issued at {not_before.isoformat()}"
            )
            return VerificationResult.rejected("Transaction predates the challenge")
        return None

    def _get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        result = self._rpc(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": True}]
        )
        values = (result or {}).get("value") or []
        return values[0] if values else None

    def _get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        commitment = "finalized" if self.min_confirmation == "finalized" else "confirmed"
        return self._rpc(
            "getTransaction",
            [signature, {
                "encoding": "jsonParsed",
                "commitment": commitment,
                "maxSupportedTransactionVersion": 0,
            }]
        )

    def _rpc(self, method: str, params: List[Any]) -> Any:
        """
        Call a Solana JSON-RPC method and return its result.

        Raises:
            InternalError: On network faults, timeouts, RPC errors or malformed responses
        """
        try:
            response = requests.post(
                self.rpc_url,
                json={
                    "jsonrpc": "2.0",
                    "id": 1,
                    "method": method,
                    "params": params,
                },
                timeout=self.timeout
            )
            response.raise_for_status()
            body = response.json()
        except RequestException as e:
            logger.error(f"Solana RPC {method} failed ({self.rpc_url}): {e}")
            raise InternalError("payment verification unavailable") from e
        except ValueError as e:
            logger.error(f"Solana RPC {method} returned invalid JSON: {e}")
            raise InternalError("payment verification unavailable") from e

        if not isinstance(body, dict):
            logger.error(f"Unexpected Solana RPC {method} response: {type(body)}")
            raise InternalError("payment verification unavailable")
        if "error" in body:
            logger.error(f"Solana RPC {method} error: {body['error']}")
            raise InternalError("payment verification unavailable")

        return body.get("result")

    @staticmethod
    def _native_amount_received(transaction: Dict[str, Any], recipient: str):
        """Sum lamports moved to the recipient by system transfer instructions."""
        received = 0
        payer = None
        for instruction in _iter_instructions(transaction):
            if instruction.get("program") != "system":
                continue
            parsed = instruction.get("parsed") or {}
            if parsed.get("type") not in ("transfer", "transferWithSeed"):
                continue
            info = parsed.get("info") or {}
            if info.get("destination") != recipient:
                continue
            received += int(info.get("lamports", 0))
            payer = payer or info.get("source")
        return received, payer

    @staticmethod
    def _token_amount_received(meta: Dict[str, Any], recipient: str, mint: str):
        """Net increase of the recipient's token balance for the given mint."""

        def total(balances: Iterable[Dict[str, Any]]) -> int:
            amount = 0
            for balance in balances or []:
                if balance.get("owner") == recipient and balance.get("mint") == mint:
                    amount += int((balance.get("uiTokenAmount") or {}).get("amount", 0))
            return amount

        delta = total(meta.get("postTokenBalances")) - total(meta.get("preTokenBalances"))
        return max(delta, 0), None


def _iter_instructions(transaction: Dict[str, Any]):
    """Yield top-level and inner parsed instructions of a transaction."""
    message = (transaction.get("transaction") or {}).get("message") or {}
    for instruction in message.get("instructions") or []:
        yield instruction

    meta = transaction.get("meta") or {}
    for inner in meta.get("innerInstructions") or []:
        for instruction in inner.get("instructions") or []:
            yield instruction


def get_payment_verifier() -> Optional[PaymentVerifier]:
    """
    Verifier for payment claims, or None when verification is disabled.

    Used as a FastAPI dependency.
    """
    if not settings.X402_VERIFY_PAYMENTS:
        return None
    return SolanaRpcVerifier()
