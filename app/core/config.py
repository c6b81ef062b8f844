# app/core/config.py
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import AnyHttpUrl # AnyHttpUrl stays in pydantic core
from functools import lru_cache
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

class Settings(BaseSettings):
    PROJECT_NAME: str = "VibeCheck x402 Gateway"
    API_V1_STR: str = "/api/v1"

    # Pricing quoted in every 402 challenge (snapshotted per challenge)
    X402_PRICE_AMOUNT: str = "0.01"
    X402_TOKEN: str = "SOL"
    X402_TOKEN_DECIMALS: Optional[int] = None  # defaults to the known decimals of X402_TOKEN
    X402_TOKEN_MINT: Optional[str] = None  # SPL mint, required to verify non-SOL payments
    X402_NETWORK: str = "solana-devnet"
    X402_PAY_TO_ADDRESS: Optional[str] = None

    # Challenge lifecycle
    X402_CHALLENGE_TTL_SECONDS: int = 3600
    X402_PAID_RETENTION_SECONDS: Optional[int] = None  # unset = paid checks never expire
    X402_SINGLE_USE_REDEMPTION: bool = False

    # On-chain payment verification (off = accept payment claims as-is)
    X402_VERIFY_PAYMENTS: bool = False
    X402_MIN_CONFIRMATION: str = "confirmed"
    SOLANA_RPC_URL: AnyHttpUrl = "https://api.devnet.solana.com"
    X402_RPC_TIMEOUT_SECONDS: float = 10.0

    # Payment forwarding relay
    X402_FORWARD_TIMEOUT_SECONDS: float = 15.0

    # Audit trail
    X402_AUDIT_ENABLED: bool = True
    X402_AUDIT_LOG_PATH: str = "logs/x402_audit.jsonl"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env

@lru_cache() # Cache the settings object for performance
def get_settings() -> Settings:
    return Settings()

settings = get_settings()
