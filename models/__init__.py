# Import models so that SQLAlchemy metadata includes them on app startup
from .user import User  # noqa: F401
from .store import Store  # noqa: F401
from .category import ProductCategory  # noqa: F401
from .product import Product  # noqa: F401
from .customer import Customer, Address  # noqa: F401
from .coupon import Coupon  # noqa: F401
from .order import Order  # noqa: F401
from .order_item import OrderItem  # noqa: F401
from .order_status_history import OrderStatusHistory  # noqa: F401
from .store_usage import StoreMonthlyUsage  # noqa: F401
from .plan_history import PlanHistory  # noqa: F401
