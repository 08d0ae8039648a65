# Import all models so Base.metadata.create_all() can see them.

from topup.models.user import User  # noqa: F401
from topup.models.order import Order  # noqa: F401
from topup.models.points import PointTransaction, WeeklyReward, PointRequest  # noqa: F401
from topup.models.config import AppConfig  # noqa: F401
