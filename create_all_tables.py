"""
Create any missing database tables straight from the models.

Usage:
    python create_all_tables.py

Useful for a fresh local database; deployed databases go through Alembic
(alembic_runner.run_migrations) instead.
"""
import sys
from pathlib import Path
from dotenv import load_dotenv
import logging

ROOT_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(ROOT_DIR))

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

from database import Base, engine
from alembic_runner import get_current_revision
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

EXPECTED_TABLES = {
    'users': 'Login_module.User.user_model.User',
    'courses': 'Course_module.Course_model.Course',
    'pending_courses': 'Course_module.Course_model.PendingCourse',
    'coupons': 'Coupon_module.Coupon_model.Coupon',
    'carts': 'Cart_module.Cart_model.Cart',
    'cart_items': 'Cart_module.Cart_model.CartItem',
    'orders': 'Orders_module.Order_model.Order',
    'order_items': 'Orders_module.Order_model.OrderItem',
    'order_status_history': 'Orders_module.Order_model.OrderStatusHistory',
    'enrollments': 'Enrollment_module.Enrollment_model.Enrollment',
    'course_progress': 'Enrollment_module.Enrollment_model.CourseProgress',
    'notifications': 'Notification_module.Notification_model.Notification',
    'webhook_events': 'Payment_module.Payment_model.WebhookEvent',
}


def import_all_models() -> bool:
    """Import every model so it registers with Base.metadata."""
    logger.info("Importing all models...")
    try:
        from Login_module.User.user_model import User
        from Course_module.Course_model import Course, PendingCourse
        from Coupon_module.Coupon_model import Coupon
        from Cart_module.Cart_model import Cart, CartItem
        from Orders_module.Order_model import Order, OrderItem, OrderStatusHistory
        from Enrollment_module.Enrollment_model import Enrollment, CourseProgress
        from Notification_module.Notification_model import Notification
        from Payment_module.Payment_model import WebhookEvent
    except ImportError as e:
        logger.error(f"❌ Error importing models: {e}", exc_info=True)
        return False

    unregistered = [name for name in EXPECTED_TABLES if name not in Base.metadata.tables]
    if unregistered:
        logger.error(f"❌ Tables missing from Base.metadata: {', '.join(unregistered)}")
        return False

    logger.info(f"✅ {len(Base.metadata.tables)} table(s) registered in Base.metadata")
    return True


def get_existing_tables():
    try:
        return inspect(engine).get_table_names()
    except OperationalError as e:
        logger.error(f"❌ Cannot connect to database: {e}")
        logger.error("Please check your DATABASE_URL environment variable")
        return None


def create_missing_tables(existing_tables):
    """Returns (success, newly created table names)."""
    missing_tables = set(Base.metadata.tables.keys()) - set(existing_tables)
    if not missing_tables:
        logger.info("✅ All tables already exist in the database!")
        return True, []

    logger.info(f"Found {len(missing_tables)} missing table(s): {', '.join(sorted(missing_tables))}")
    try:
        with engine.begin() as conn:
            Base.metadata.create_all(bind=conn, checkfirst=True)
    except OperationalError as e:
        logger.error(f"❌ Database operation error: {e}")
        return False, []

    newly_created = set(inspect(engine).get_table_names()) - set(existing_tables)
    still_missing = missing_tables - newly_created
    if still_missing:
        logger.warning(f"⚠ {len(still_missing)} table(s) were not created: {', '.join(sorted(still_missing))}")
        return False, sorted(newly_created)

    logger.info(f"✅ Successfully created {len(newly_created)} table(s): {', '.join(sorted(newly_created))}")
    return True, sorted(newly_created)


def print_table_summary(existing_tables, newly_created):
    print("\n" + "=" * 70)
    print(f"TABLE SUMMARY (alembic revision: {get_current_revision()})")
    print("=" * 70)
    for table_name in sorted(EXPECTED_TABLES):
        if table_name in newly_created:
            marker = "created"
        elif table_name in existing_tables:
            marker = "exists"
        else:
            marker = "MISSING"
        print(f"  {table_name:<24} {marker:<8} {EXPECTED_TABLES[table_name]}")
    print("=" * 70 + "\n")


def main() -> int:
    if not import_all_models():
        return 1

    existing_tables = get_existing_tables()
    if existing_tables is None:
        return 1

    success, newly_created = create_missing_tables(existing_tables)
    print_table_summary(existing_tables, newly_created)
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
