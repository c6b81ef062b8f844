# tests/test_x402_gate.py
"""
Unit tests for the redemption gate.
"""
import pytest
from unittest.mock import MagicMock

from app.core.config import settings
from app.x402.errors import AlreadyRedeemed, NotFound, PaymentRequired
from app.x402.gate import redeem
from app.x402.models import ChallengeState


SUBMISSION = {"name": "Riya", "handle": "@riya", "platform": "tinder", "bio": "secret bio"}


def fake_report(submission):
    return {"score": 80, "risk": "Low", "reasons": []}


class TestRedeem:
    """Test report release."""

    def test_missing_check_id(self, store):
        """No id behaves as an unknown challenge."""
        with pytest.raises(NotFound):
            redeem(None, store, fake_report, single_use=False)

    def test_unknown_check_id(self, store):
        """Unknown ids raise NotFound."""
        with pytest.raises(NotFound):
            redeem("missing", store, fake_report, single_use=False)

    def test_unpaid_challenge_withholds_report(self, store, make_challenge):
        """Report is never generated before payment."""
        store.add(make_challenge("abc", SUBMISSION))
        generator = MagicMock(side_effect=fake_report)

        with pytest.raises(PaymentRequired):
            redeem("abc", store, generator, single_use=False)
        generator.assert_not_called()

    def test_paid_challenge_returns_report_with_profile(self, store, make_challenge):
        """Paid challenge yields the report plus the submitted profile."""
        store.add(make_challenge("abc", SUBMISSION))
        store.mark_paid("abc")

        report = redeem("abc", store, fake_report, single_use=False)

        assert report["score"] == 80
        assert report["profile"] == {"name": "Riya", "handle": "@riya", "platform": "tinder"}
        assert "bio" not in report["profile"]

    def test_unlimited_redemption(self, store, make_challenge):
        """Without single-use the report can be fetched repeatedly."""
        store.add(make_challenge("abc", SUBMISSION))
        store.mark_paid("abc")

        first = redeem("abc", store, fake_report, single_use=False)
        second = redeem("abc", store, fake_report, single_use=False)

        assert first == second
        assert store.get("abc").state is ChallengeState.PAID

    def test_generator_receives_submission(self, store, make_challenge):
        """The report is computed from the stored submission."""
        store.add(make_challenge("abc", SUBMISSION))
        store.mark_paid("abc")
        generator = MagicMock(side_effect=fake_report)

        redeem("abc", store, generator, single_use=False)

        generator.assert_called_once_with(SUBMISSION)


class TestSingleUseRedemption:
    """Test single-use redemption."""

    def test_second_redemption_rejected(self, store, make_challenge):
        """Only the first redemption succeeds."""
        store.add(make_challenge("abc", SUBMISSION))
        store.mark_paid("abc")

        redeem("abc", store, fake_report, single_use=True)

        assert store.get("abc").state is ChallengeState.REDEEMED
        with pytest.raises(AlreadyRedeemed):
            redeem("abc", store, fake_report, single_use=True)

    def test_unpaid_challenge_not_redeemed(self, store, make_challenge):
        """Unpaid challenges stay Created."""
        store.add(make_challenge("abc", SUBMISSION))

        with pytest.raises(PaymentRequired):
            redeem("abc", store, fake_report, single_use=True)
        assert store.get("abc").state is ChallengeState.CREATED

    def test_setting_controls_default(self, store, make_challenge, monkeypatch):
        """single_use defaults to X402_SINGLE_USE_REDEMPTION."""
        monkeypatch.setattr(settings, "X402_SINGLE_USE_REDEMPTION", True)
        store.add(make_challenge("abc", SUBMISSION))
        store.mark_paid("abc")

        redeem("abc", store, fake_report)

        with pytest.raises(AlreadyRedeemed):
            redeem("abc", store, fake_report)

    def test_failed_generation_keeps_challenge_redeemable(self, store, make_challenge):
        """A generator error does not use up a single-use challenge."""
        store.add(make_challenge("abc", SUBMISSION))
        store.mark_paid("abc")
        failing = MagicMock(side_effect=RuntimeError("scoring backend down"))

        with pytest.raises(RuntimeError):
            redeem("abc", store, failing, single_use=True)

        assert store.get("abc").state is ChallengeState.PAID
        report = redeem("abc", store, fake_report, single_use=True)
        assert report["score"] == 80
        assert store.get("abc").state is ChallengeState.REDEEMED

    def test_redeemed_challenge_skips_generation(self, store, make_challenge):
        """A used-up challenge does not run the generator again."""
        store.add(make_challenge("abc", SUBMISSION))
        store.mark_paid("abc")
        store.mark_redeemed("abc")
        generator = MagicMock(side_effect=fake_report)

        with pytest.raises(AlreadyRedeemed):
            redeem("abc", store, generator, single_use=True)
        generator.assert_not_called()


class TestPaidChallengeLifetime:
    """Test that payment keeps a challenge redeemable."""

    def test_report_available_long_after_payment(self, store, make_challenge, clock):
        """Paid challenges outlive the unpaid TTL and any purge."""
        store.add(make_challenge("abc", SUBMISSION))
        store.mark_paid("abc")

        clock.advance(3601)
        store.purge_expired()

        report = redeem("abc", store, fake_report, single_use=False)
        assert report["profile"]["name"] == "Riya"
