# app/x402/__init__.py
"""
x402 Payment Protocol Integration Module.

This module implements the payment-gated challenge protocol behind the vibe
check API: a submission is answered with an HTTP 402 challenge, paid out of
band, then redeemed for its report.

Key components:
- store: Challenge records and their atomic state transitions
- issuer: Challenge creation and 402 payloads
- recorder: Idempotent payment recording, optionally verified on-chain
- gate: Redemption gate releasing reports only for paid challenges
- forwarder: Relay to upstream x402 payment processors
- verification: Solana JSON-RPC payment verification
- pricing: Price quotes for challenges
- audit: Protocol event audit logging

Configuration is loaded from environment variables via app.core.config.
"""

__version__ = "0.1.0"
