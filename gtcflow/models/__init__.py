# SQLModel definitions, imported here so the metadata is populated for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .sector import Sector, Service, GtcPoint, GtcPointService  # noqa: F401
from .user import User  # noqa: F401
from .convention import Convention, ConventionDocument  # noqa: F401
from .onboarding import PointOnboarding, PointOnboardingService  # noqa: F401
from .notification import Notification  # noqa: F401
