"""Pydantic schemas for request/response validation."""

from .availability import *  # noqa: F403
from .booking import *  # noqa: F403
from .charter import *  # noqa: F403
from .common import *  # noqa: F403
from .health import *  # noqa: F403
from .price_alert import *  # noqa: F403
from .referral import *  # noqa: F403
from .waitlist import *  # noqa: F403
