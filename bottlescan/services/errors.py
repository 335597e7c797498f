# bottlescan/services/errors.py
"""
Domain error taxonomy shared by the redemption, campaign-status and
bottle-check services.

Every error carries a stable ``code`` the scanning UI can branch on, an HTTP
status and a user-facing message. ``main`` renders them as
``{"error": message, "code": code}``.
"""
from __future__ import annotations


class ServiceError(Exception):
    code = "error"
    status_code = 400
    message = "Request failed"

    def __init__(self, message: str | None = None, *, status_code: int | None = None):
        self.message = message or self.message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


# -------------------------
# client input errors
# -------------------------
class InvalidInput(ServiceError):
    code = "invalid_input"
    message = "Missing required fields"


class InvalidPhone(ServiceError):
    code = "invalid_phone"
    message = "Invalid phone number"


class InvalidOTP(ServiceError):
    code = "invalid_otp"
    message = "Invalid OTP"


class OTPThrottled(ServiceError):
    code = "otp_throttled"
    status_code = 429
    message = "Please wait 60 seconds before requesting a new OTP."


class OTPDeliveryFailed(ServiceError):
    code = "otp_delivery_failed"
    status_code = 502
    message = "Failed to send OTP via SMS provider."


class BottleNotFound(ServiceError):
    code = "bottle_not_found"
    status_code = 404
    message = "Bottle not found"


class CampaignNotFound(ServiceError):
    code = "campaign_not_found"
    status_code = 404
    message = "Campaign not found"


class InvalidCode(ServiceError):
    code = "invalid_code"
    status_code = 404
    message = "Invalid coupon code"


class JobNotFound(ServiceError):
    code = "job_not_found"
    status_code = 404
    message = "Job not found"


# -------------------------
# conflicts
# -------------------------
class AlreadyUsed(ServiceError):
    code = "already_used"
    status_code = 409
    message = "This QR code has already been used."


class AlreadyRedeemedForCampaign(ServiceError):
    code = "already_redeemed_for_campaign"
    status_code = 409
    message = "You have already redeemed a coupon for this campaign"


class AlreadyRedeemed(ServiceError):
    code = "already_redeemed"
    status_code = 409
    message = "Coupon already redeemed"


# -------------------------
# campaign policy
# -------------------------
class CampaignInactive(ServiceError):
    code = "campaign_inactive"
    message = "Campaign is not active"


class CampaignExpired(ServiceError):
    code = "campaign_expired"
    message = "Campaign has expired"


class InvalidTransition(ServiceError):
    code = "invalid_transition"
    message = "Invalid status transition"


class MissingDates(ServiceError):
    code = "missing_dates"
    message = "Cannot activate campaign with missing dates."


class InvalidDateRange(ServiceError):
    code = "invalid_date_range"
    message = "End date must be after start date."


# -------------------------
# system
# -------------------------
class InternalError(ServiceError):
    code = "system_error"
    status_code = 500
    message = "Redemption failed (System Error)"
