# bottlescan/models/__init__.py
# Import all models here so SQLAlchemy registers them into Base.metadata.

from bottlescan.models.account import Account, Client  # noqa: F401
from bottlescan.models.campaign import Campaign  # noqa: F401
from bottlescan.models.qr_job import QrJob  # noqa: F401
from bottlescan.models.bottle import Bottle  # noqa: F401
from bottlescan.models.user import User  # noqa: F401
from bottlescan.models.coupon import Coupon  # noqa: F401
from bottlescan.models.redemption import Redemption  # noqa: F401
from bottlescan.models.otp_session import OtpSession  # noqa: F401
