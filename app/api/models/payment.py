# app/api/models/payment.py
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, Union


class PaymentRecordRequest(BaseModel):
    """
    Request model for recording a payment against a challenge.

    checkId is validated by the endpoint rather than the schema so that a
    missing id yields the same 400 error body as every other bad request.
    """
    checkId: Optional[str] = Field(None, description="Challenge id that was paid.", examples=["Yq3nXk2l0m9Qe7vW1sT4bA"])
    transactionRef: Optional[str] = Field(
        None,
        max_length=128,
        description="Transaction signature proving payment. Required when payment verification is enabled."
    )


class PaymentRecordResponse(BaseModel):
    """Acknowledgement of a recorded payment."""
    ok: bool = True


class ForwardPaymentRequest(BaseModel):
    """
    Request model for relaying a payment to an upstream x402 processor.

    'receiver' is the canonical recipient field; 'pay_to' is accepted as a
    deprecated alias and only used when 'receiver' is absent.
    """
    payment_endpoint: Optional[str] = Field(None, description="Upstream payment processor URL.", examples=["https://pay.example.com/x402"])
    amount: Optional[Union[str, int, float]] = Field(None, description="Amount to pay.", examples=["0.01"])
    receiver: Optional[str] = Field(None, description="Recipient address.")
    pay_to: Optional[str] = Field(None, description="Deprecated alias of 'receiver'.")
    network: Optional[str] = Field(None, description="Network identifier.", examples=["solana-devnet"])
    currency: Optional[str] = Field(None, description="Currency/token symbol.", examples=["SOL"])

    def get_receiver(self) -> Optional[str]:
        """Returns the canonical receiver, falling back to the deprecated alias."""
        if self.receiver:
            return self.receiver
        return self.pay_to


class ForwardPaymentResponse(BaseModel):
    """Successful upstream payment result, passed through unmodified."""
    ok: bool = True
    upstream: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Structured error body returned for every failure."""
    error: str = Field(..., description="Human-readable message.")
    kind: str = Field(..., description="Machine-readable error kind.", examples=["NotFound"])
    upstream: Optional[Dict[str, Any]] = Field(None, description="Upstream body for UpstreamPaymentFailed.")
