# app/x402/pricing.py
"""
Price quotes for x402 payment challenges.

Each challenge is issued with a Pricing snapshot taken from the configured
policy. The snapshot is stored with the challenge and re-served unchanged, so
a client retrying payment always sees the terms it was first quoted.

Configuration is loaded from app/core/config.py:
- X402_PRICE_AMOUNT: Price in whole token units, as a decimal string
- X402_TOKEN: Token symbol ("SOL", "USDC", ...)
- X402_TOKEN_DECIMALS: Decimals of the token's smallest unit
- X402_NETWORK: Network identifier
- X402_PAY_TO_ADDRESS: Recipient address for payments
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional

from app.core.config import settings
from app.x402.models import Pricing

logger = logging.getLogger(__name__)

# Used when no recipient is configured, so challenges stay well-formed
PLACEHOLDER_RECIPIENT = "11111111111111111111111111111111"

# Decimals of well-known tokens, used when X402_TOKEN_DECIMALS is not set explicitly
TOKEN_DECIMALS = {
    "SOL": 9,
    "USDC": 6,
}

PricingPolicy = Callable[[Dict[str, Any]], Pricing]


def normalize_amount(amount: str) -> str:
    """
    Validate a price and return it in canonical decimal form.

    Raises:
        ValueError: If the amount is not a positive decimal number
    """
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid price amount: {amount!r}")

    if not value.is_finite() or value <= 0:
        raise ValueError(f"Price amount must be positive: {amount!r}")

    return format(value.normalize(), "f")


def get_recipient_address() -> str:
    """Configured payment recipient, or a placeholder with a warning."""
    pay_to = settings.X402_PAY_TO_ADDRESS
    if not pay_to:
        logger.warning("X402_PAY_TO_ADDRESS not configured - using placeholder")
        pay_to = PLACEHOLDER_RECIPIENT
    return pay_to


def get_price_quote(submission: Optional[Dict[str, Any]] = None) -> Pricing:
    """
    Get the payment terms for a new challenge.

    This is the default pricing policy: a flat price from configuration,
    independent of the submission.

    Args:
        submission: The validated submission being priced (unused by the flat policy)

    Returns:
        Pricing snapshot for the challenge

    Raises:
        ValueError: If the configured price is invalid
    """
    token = settings.X402_TOKEN
    decimals = settings.X402_TOKEN_DECIMALS
    if decimals is None:
        decimals = TOKEN_DECIMALS.get(token.upper(), 9)

    pricing = Pricing(
        amount=normalize_amount(settings.X402_PRICE_AMOUNT),
        token=token,
        network=settings.X402_NETWORK,
        recipient=get_recipient_address(),
        decimals=decimals,
    )

    logger.debug(
        f"Quoted {pricing.amount} {pricing.token} on {pricing.network} "
        f"({pricing.amount_base_units} base units) to {pricing.recipient}"
    )

    return pricing
