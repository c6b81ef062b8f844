# app/api/models/check.py
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Literal


class CheckSubmission(BaseModel):
    """
    Profile submitted for a vibe check.

    Only name is required; the remaining fields are optional free text and
    default to an empty string, so the scoring step always sees strings.
    """
    name: str = Field(..., min_length=1, max_length=100, description="Display name on the profile.", examples=["Riya"])
    handle: Optional[str] = Field("", max_length=100, description="Public social handle, if any.", examples=["@riya"])
    platform: Optional[str] = Field("", max_length=50, description="Platform the profile was found on.", examples=["tinder"])
    bio: Optional[str] = Field("", max_length=2000, description="Free-text bio or notes.", examples=["Love hiking and coffee"])

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value

    @field_validator("handle", "platform", "bio", mode="before")
    @classmethod
    def none_to_empty(cls, value: Optional[str]) -> str:
        return "" if value is None else value


class PaymentChallengeResponse(BaseModel):
    """HTTP 402 body describing how to pay for a check."""
    status: Literal["payment_required"] = Field("payment_required", description="Always 'payment_required'.")
    protocol: Literal["x402"] = Field("x402", description="Payment protocol marker.")
    amount: str = Field(..., description="Price in whole token units (decimal string).")
    token: str = Field(..., description="Token/currency symbol.")
    network: str = Field(..., description="Network the payment must be made on.")
    recipient: str = Field(..., description="Address that must receive the payment.")
    checkId: str = Field(..., description="Challenge id used to record payment and redeem the report.")
    expiresAt: Optional[str] = Field(None, description="When the unpaid challenge expires (ISO 8601).")

    class Config:
        json_schema_extra = {
            "example": {
                "status": "payment_required",
                "protocol": "x402",
                "amount": "0.01",
                "token": "SOL",
                "network": "solana-devnet",
                "recipient": "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin",
                "checkId": "Yq3nXk2l0m9Qe7vW1sT4bA",
                "expiresAt": "2026-10-18T13:00:00+00:00"
            }
        }


class ReportProfile(BaseModel):
    """Submitted profile fields echoed back with the report."""
    name: Optional[str] = None
    handle: Optional[str] = None
    platform: Optional[str] = None


class ReportResponse(BaseModel):
    """Vibe check report released after payment."""
    score: int = Field(..., description="Trust score (higher is better).")
    risk: Literal["Low", "Medium", "High"] = Field(..., description="Risk bucket derived from the score.")
    reasons: List[str] = Field(default_factory=list, description="Findings that lowered the score.")
    profile: ReportProfile

    class Config:
        json_schema_extra = {
            "example": {
                "score": 60,
                "risk": "Medium",
                "reasons": ["No public handle provided.", "Bio is too short or missing."],
                "profile": {"name": "Riya", "handle": "", "platform": "tinder"}
            }
        }
