# tests/test_x402_issuer.py
"""
Unit tests for x402 challenge issuance.
"""
import pytest
from unittest.mock import patch

from app.x402.errors import ChallengeAlreadyPaid, NotFound
from app.x402.issuer import (
    generate_check_id,
    build_payment_required_payload,
    issue_challenge,
    get_payment_challenge,
)
from app.x402.models import ChallengeState, Pricing


SUBMISSION = {"name": "Riya", "handle": "", "platform": "tinder", "bio": ""}


class TestGenerateCheckId:
    """Test challenge id generation."""

    def test_ids_are_long_and_url_safe(self):
        """Ids carry 128 bits of entropy in url-safe characters."""
        check_id = generate_check_id()
        assert len(check_id) >= 22
        assert all(c.isalnum() or c in "-_" for c in check_id)

    def test_ids_are_unique(self):
        """Generated ids do not repeat."""
        ids = {generate_check_id() for _ in range(1000)}
        assert len(ids) == 1000


class TestBuildPaymentRequiredPayload:
    """Test 402 payload construction."""

    def test_payload_fields(self, make_challenge, pricing):
        """Payload carries status, protocol, terms and checkId."""
        payload = build_payment_required_payload(make_challenge("abc"))

        assert payload == {
            "status": "payment_required",
            "protocol": "x402",
            "amount": "0.01",
            "token": "SOL",
            "network": "solana-devnet",
            "recipient": pricing.recipient,
            "checkId": "abc",
        }

    def test_expires_at_included_when_given(self, make_challenge):
        """expiresAt is only present when provided."""
        payload = build_payment_required_payload(make_challenge("abc"), "2026-01-01T13:00:00+00:00")
        assert payload["expiresAt"] == "2026-01-01T13:00:00+00:00"


class TestIssueChallenge:
    """Test challenge issuance."""

    def test_challenge_persisted_before_return(self, store, pricing):
        """The returned checkId is immediately known to the store."""
        challenge, payload = issue_challenge(SUBMISSION, store, lambda submission: pricing)

        stored = store.get(payload["checkId"])
        assert stored.state is ChallengeState.CREATED
        assert stored == challenge
        assert stored.submission == SUBMISSION

    def test_payload_matches_stored_pricing(self, store, pricing):
        """The quoted terms equal the stored snapshot."""
        challenge, payload = issue_challenge(SUBMISSION, store, lambda submission: pricing)

        assert payload["amount"] == challenge.pricing.amount
        assert payload["recipient"] == challenge.pricing.recipient
        assert "expiresAt" in payload

    def test_each_submission_gets_new_challenge(self, store, pricing):
        """Identical submissions produce distinct challenges."""
        first, _ = issue_challenge(SUBMISSION, store, lambda submission: pricing)
        second, _ = issue_challenge(SUBMISSION, store, lambda submission: pricing)

        assert first.id != second.id
        assert len(store) == 2

    def test_submission_copied(self, store, pricing):
        """Later mutation of the caller's dict does not alter the challenge."""
        submission = dict(SUBMISSION)
        challenge, _ = issue_challenge(submission, store, lambda s: pricing)

        submission["name"] = "Changed"
        assert store.get(challenge.id).submission["name"] == "Riya"

    def test_id_collision_retried(self, store, pricing):
        """A colliding id is regenerated."""
        with patch("app.x402.issuer.generate_check_id", side_effect=["dup", "dup", "fresh"]):
            issue_challenge(SUBMISSION, store, lambda s: pricing)
            challenge, _ = issue_challenge(SUBMISSION, store, lambda s: pricing)

        assert challenge.id == "fresh"

    def test_repeated_collisions_raise(self, store, pricing):
        """Persistent collisions fail instead of overwriting."""
        with patch("app.x402.issuer.generate_check_id", return_value="dup"):
            issue_challenge(SUBMISSION, store, lambda s: pricing)
            with pytest.raises(RuntimeError):
                issue_challenge(SUBMISSION, store, lambda s: pricing)

    def test_pricing_error_leaves_store_empty(self, store):
        """A failing pricing policy persists nothing."""

        def broken_policy(submission):
            raise ValueError("bad price")

        with pytest.raises(ValueError):
            issue_challenge(SUBMISSION, store, broken_policy)
        assert len(store) == 0


class TestGetPaymentChallenge:
    """Test re-serving payment terms."""

    def test_terms_unchanged_after_config_change(self, store, pricing):
        """Re-served terms match the original quote even if pricing changes."""
        challenge, original = issue_challenge(SUBMISSION, store, lambda s: pricing)

        with patch("app.x402.pricing.settings") as mock_settings:
            mock_settings.X402_PRICE_AMOUNT = "5"
            again = get_payment_challenge(challenge.id, store)

        assert again == original

    def test_unknown_challenge(self, store):
        """Unknown ids raise NotFound."""
        with pytest.raises(NotFound):
            get_payment_challenge("missing", store)

    def test_paid_challenge_conflicts(self, store, pricing):
        """Paid challenges no longer serve payment terms."""
        challenge, _ = issue_challenge(SUBMISSION, store, lambda s: pricing)
        store.mark_paid(challenge.id)

        with pytest.raises(ChallengeAlreadyPaid):
            get_payment_challenge(challenge.id, store)


class TestDefaultPricingPolicy:
    """Test issuance with the configured pricing policy."""

    @patch("app.x402.pricing.settings")
    def test_uses_configured_terms(self, mock_settings, store):
        """Default policy quotes the configured price."""
        mock_settings.X402_PRICE_AMOUNT = "0.02"
        mock_settings.X402_TOKEN = "SOL"
        mock_settings.X402_TOKEN_DECIMALS = None
        mock_settings.X402_NETWORK = "solana-devnet"
        mock_settings.X402_PAY_TO_ADDRESS = "MyWallet"

        challenge, payload = issue_challenge(SUBMISSION, store)

        assert challenge.pricing == Pricing("0.02", "SOL", "solana-devnet", "MyWallet", 9)
        assert payload["amount"] == "0.02"
