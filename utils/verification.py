"""Account verification strategies, selected per deployment by ``IDENTITY_VERIFIER``.

``otp`` emails a short-lived six digit code that the citizen types back in.
``trusted`` is for deployments behind an identity provider that has already
proven ownership of the email address, so accounts are verified on creation.
"""
from __future__ import annotations

from datetime import datetime

from flask import current_app

from extensions import db, notifier
from models import OneTimeCode, User
from utils import email_service
from utils.errors import ValidationError
from utils.security import generate_otp

OTP_PURPOSE = "ACCOUNT_VERIFICATION"
OTP_LENGTH = 6


class IdentityVerifier:
    """Contract every verification strategy implements."""

    name = "base"
    # True when the user must complete a challenge before logging in.
    requires_challenge = True

    def start(self, user: User) -> None:
        raise NotImplementedError

    def confirm(self, user: User, code: str | None) -> None:
        raise NotImplementedError


class OtpVerifier(IdentityVerifier):
    name = "otp"
    requires_challenge = True

    def start(self, user: User) -> None:
        ttl_seconds = int(current_app.config.get("OTP_TTL_SECONDS", 600))
        code = generate_otp(OTP_LENGTH)
        # Only the newest code is ever valid.
        OneTimeCode.query.filter_by(user_id=user.id, purpose=OTP_PURPOSE, consumed_at=None).delete(
            synchronize_session=False
        )
        OneTimeCode.issue(user, code, ttl_seconds=ttl_seconds, purpose=OTP_PURPOSE)
        db.session.commit()
        current_app.logger.info("Verification code issued", extra={"user_id": user.id})
        notifier.submit(email_service.send_otp_email, user.email, user.name, code, ttl_seconds)

    def confirm(self, user: User, code: str | None) -> None:
        record = (
            OneTimeCode.query.filter_by(user_id=user.id, purpose=OTP_PURPOSE, consumed_at=None)
            .order_by(OneTimeCode.created_at.desc(), OneTimeCode.id.desc())
            .first()
        )
        candidate = (code or "").strip()
        if record is None or not candidate:
            raise ValidationError("Invalid OTP. Please try again.")
        if record.is_expired:
            raise ValidationError("OTP has expired. Please request a new one.")
        if not record.verify(candidate):
            current_app.logger.info("Verification code rejected", extra={"user_id": user.id})
            raise ValidationError("Invalid OTP. Please try again.")
        record.consumed_at = datetime.utcnow()
        user.is_verified = True
        db.session.commit()


class TrustedVerifier(IdentityVerifier):
    name = "trusted"
    requires_challenge = False

    def start(self, user: User) -> None:
        user.is_verified = True
        db.session.commit()
        current_app.logger.info("Account trusted from upstream identity provider", extra={"user_id": user.id})

    def confirm(self, user: User, code: str | None) -> None:
        self.start(user)


VERIFIERS: dict[str, type[IdentityVerifier]] = {
    OtpVerifier.name: OtpVerifier,
    TrustedVerifier.name: TrustedVerifier,
}


def get_verifier() -> IdentityVerifier:
    key = (current_app.config.get("IDENTITY_VERIFIER") or "otp").lower()
    verifier_class = VERIFIERS.get(key)
    if verifier_class is None:
        current_app.logger.warning("Unknown IDENTITY_VERIFIER; falling back to otp", extra={"verifier": key})
        verifier_class = OtpVerifier
    return verifier_class()
