from __future__ import annotations

import asyncio
import logging
from urllib.parse import quote

import httpx

from bottlescan.core.config import settings

logger = logging.getLogger(__name__)


class SmsDeliveryError(Exception):
    pass


class TwoFactorClient:
    """2Factor.in DLT OTP sender."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        template: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = settings.TWO_FACTOR_API_KEY if api_key is None else api_key
        self.base_url = (base_url or settings.TWO_FACTOR_BASE_URL).rstrip("/")
        self.template = template or settings.TWO_FACTOR_TEMPLATE
        self.timeout = settings.SMS_TIMEOUT_SECONDS
        self.max_retries = max(1, settings.SMS_MAX_RETRIES)
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _call(self, phone_digits: str, otp: str) -> dict:
        url = f"{self.base_url}/{self.api_key}/SMS/{phone_digits}/{otp}/{quote(self.template)}"
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            r = await client.get(url)
        r.raise_for_status()
        return r.json()

    async def send_otp(self, phone_digits: str, otp: str) -> str | None:
        """
        Deliver ``otp``; returns the provider session id.
        Network failures are retried with linear backoff, a provider-level
        rejection is not.
        """
        if not self.configured:
            raise SmsDeliveryError("SMS Configuration Error")

        data: dict | None = None
        for attempt in range(self.max_retries):
            try:
                data = await self._call(phone_digits, otp)
                break
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("2Factor attempt %s/%s failed: %s", attempt + 1, self.max_retries, e)
                if attempt + 1 >= self.max_retries:
                    raise SmsDeliveryError("Service temporarily unavailable. Please try again later.") from e
                await asyncio.sleep(1 * (attempt + 1))

        if not data or data.get("Status") != "Success":
            logger.error("2Factor rejected OTP send: %s", data)
            raise SmsDeliveryError("Failed to send OTP via SMS provider.")

        return data.get("Details")
