# bottlescan/services/otp.py
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from fastapi import Depends
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bottlescan.core.clock import as_utc, utcnow
from bottlescan.core.config import settings
from bottlescan.core.db import get_db
from bottlescan.integrations.two_factor_client import SmsDeliveryError, TwoFactorClient
from bottlescan.models.otp_session import OtpSession
from bottlescan.services.errors import InternalError, OTPDeliveryFailed, OTPThrottled
from bottlescan.services.phone import normalize_phone, provider_phone

logger = logging.getLogger(__name__)


@dataclass
class OtpSendResult:
    success: bool
    message: str


@dataclass
class OtpValidation:
    valid: bool
    message: str = ""


def _generate_code(length: int) -> str:
    # leading digit never zero, so the code keeps its length when treated as a number
    first = str(secrets.randbelow(9) + 1)
    rest = "".join(str(secrets.randbelow(10)) for _ in range(length - 1))
    return first + rest


class OtpService:
    """
    Phone OTP: generate, deliver by SMS, store with expiry, validate once.
    A newer session for the same phone supersedes the older ones.
    """

    def __init__(self, db: AsyncSession, sms: TwoFactorClient | None = None):
        self.db = db
        self.sms = sms or TwoFactorClient()

    async def _latest_session(self, phone: str) -> OtpSession | None:
        res = await self.db.execute(
            select(OtpSession)
            .where(OtpSession.phone == phone)
            .order_by(OtpSession.created_at.desc(), OtpSession.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return res.scalar_one_or_none()

    async def send_otp(self, phone: str) -> OtpSendResult:
        normalized = normalize_phone(phone)
        now = utcnow()

        recent = await self._latest_session(normalized)
        if recent is not None and as_utc(recent.created_at) > now - timedelta(seconds=settings.OTP_RESEND_SECONDS):
            logger.warning("OTP request for %s throttled", normalized)
            raise OTPThrottled(
                f"Please wait {settings.OTP_RESEND_SECONDS} seconds before requesting a new OTP."
            )

        code = _generate_code(settings.OTP_LENGTH)

        try:
            session_id = await self.sms.send_otp(provider_phone(normalized), code)
        except SmsDeliveryError as e:
            raise OTPDeliveryFailed(str(e)) from e

        try:
            self.db.add(
                OtpSession(
                    phone=normalized,
                    code=code,
                    session_id=session_id,
                    expires_at=now + timedelta(seconds=settings.OTP_TTL_SECONDS),
                    created_at=now,
                )
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("OTP sent to %s but session storage failed: %s", normalized, e)
            raise InternalError("System error: OTP sent but session storage failed.") from e

        logger.info("OTP sent to %s", normalized)
        return OtpSendResult(success=True, message="OTP Sent")

    async def validate_otp(self, phone: str, code: str) -> OtpValidation:
        normalized = normalize_phone(phone)
        session = await self._latest_session(normalized)

        if session is None:
            return OtpValidation(False, "No OTP found for this number")

        if utcnow() > as_utc(session.expires_at):
            return OtpValidation(False, "OTP has expired. Please request a new one.")

        if session.verified:
            return OtpValidation(False, "This OTP has already been used.")

        if session.attempts >= settings.OTP_MAX_ATTEMPTS:
            return OtpValidation(False, "Too many failed attempts. Please request a new OTP.")

        if str(session.code).strip() != str(code or "").strip():
            await self.db.execute(
                update(OtpSession)
                .where(OtpSession.id == session.id)
                .values(attempts=OtpSession.attempts + 1)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            return OtpValidation(False, "Invalid OTP")

        # single use: only one concurrent validation can flip verified
        res = await self.db.execute(
            update(OtpSession)
            .where(OtpSession.id == session.id, OtpSession.verified.is_(False))
            .values(verified=True, verified_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if res.rowcount == 0:
            return OtpValidation(False, "This OTP has already been used.")

        return OtpValidation(True)


def get_otp_service(db: AsyncSession = Depends(get_db)) -> OtpService:
    return OtpService(db)
