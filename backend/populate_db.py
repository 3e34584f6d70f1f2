import os
import random
import sys
from datetime import timedelta

# Add 'backend' folder to Python path
sys.path.append(os.path.abspath(os.path.dirname(__file__)))

# Database models and setup
from database import SessionLocal, init_db
from models.users import User
from models.product import Product
from models.service_area import ServiceArea
from models.delivery_slot import DeliverySlot
from models.coupon import Coupon, DiscountType
from models.address import Address, AddressType
from services import wallet as wallet_service
from utils.clock import utcnow

# Configuration
DEMO_EMAIL = "demo@example.com"
DEMO_WALLET_BALANCE = 1000.0
COUPON_VALIDITY_DAYS = 90
# End Configuration

SERVICE_AREAS = [
    # postal_code, area, city, state, eta, fee, min order
    ("560001", "MG Road", "Bengaluru", "Karnataka", "20-30 mins", 25.0, 99.0),
    ("560034", "Koramangala", "Bengaluru", "Karnataka", "30-45 mins", 30.0, 149.0),
    ("560095", "HSR Layout", "Bengaluru", "Karnataka", "30-45 mins", 30.0, 149.0),
    ("400001", "Fort", "Mumbai", "Maharashtra", "45-60 mins", 40.0, 199.0),
]

PRODUCTS = [
    # name, unit, price range
    ("Toned Milk", "500 ml", (26, 30)),
    ("Brown Bread", "400 g", (40, 55)),
    ("Farm Eggs", "6 pcs", (48, 60)),
    ("Basmati Rice", "1 kg", (120, 180)),
    ("Toor Dal", "1 kg", (140, 170)),
    ("Sunflower Oil", "1 l", (130, 160)),
    ("Onion", "1 kg", (30, 45)),
    ("Tomato", "500 g", (20, 35)),
    ("Banana Robusta", "6 pcs", (40, 55)),
    ("Paneer", "200 g", (80, 95)),
    ("Curd", "400 g", (35, 45)),
    ("Atta Whole Wheat", "5 kg", (220, 280)),
]

DELIVERY_SLOTS = [
    # name, start, end, max orders
    ("Morning", "07:00", "10:00", 40),
    ("Midday", "11:00", "14:00", 30),
    ("Evening", "17:00", "20:00", 50),
]

COUPONS = [
    # code, description, type, value, min order, max discount, total limit, per user
    ("SAVE20", "20% off up to 100 on orders above 500", DiscountType.PERCENTAGE, 20.0, 500.0, 100.0, 1000, 1),
    ("FREE499", "Free delivery on your order", DiscountType.FREE_DELIVERY, 0.0, 0.0, None, None, 3),
    ("FLAT50", "Flat 50 off on orders above 300", DiscountType.FIXED, 50.0, 300.0, None, 500, 2),
]


def seed_service_areas(session):
    for postal_code, area, city, state, eta, fee, min_order in SERVICE_AREAS:
        if session.query(ServiceArea).filter(ServiceArea.postal_code == postal_code).first():
            continue
        session.add(ServiceArea(
            postal_code=postal_code, area=area, city=city, state=state,
            delivery_eta_label=eta, delivery_fee=fee, min_order_value=min_order,
        ))
    print(f"Service areas: {len(SERVICE_AREAS)}")


def seed_delivery_slots(session):
    for name, start, end, max_orders in DELIVERY_SLOTS:
        if session.query(DeliverySlot).filter(DeliverySlot.name == name).first():
            continue
        session.add(DeliverySlot(name=name, start_time=start, end_time=end, max_orders=max_orders))
    print(f"Delivery slots: {len(DELIVERY_SLOTS)}")


def seed_products(session):
    for index, (name, unit, (low, high)) in enumerate(PRODUCTS, start=1):
        code = f"GR{index:04d}"
        if session.query(Product).filter(Product.code == code).first():
            continue
        session.add(Product(
            name=name, code=code, unit=unit,
            price=float(random.randint(low, high)),
            stock_quantity=random.randint(20, 200),
        ))
    print(f"Products: {len(PRODUCTS)}")


def seed_coupons(session):
    now = utcnow()
    for code, description, discount_type, value, min_order, max_discount, limit, per_user in COUPONS:
        if session.query(Coupon).filter(Coupon.code == code).first():
            continue
        session.add(Coupon(
            code=code, description=description, discount_type=discount_type, value=value,
            min_order_amount=min_order, max_discount_amount=max_discount,
            total_usage_limit=limit, per_user_usage_limit=per_user,
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=COUPON_VALIDITY_DAYS),
        ))
    print(f"Coupons: {len(COUPONS)}")


def seed_demo_customer(session):
    user = session.query(User).filter(User.email == DEMO_EMAIL).first()
    if user:
        print(f"Demo customer {DEMO_EMAIL} already exists.")
        return

    # Login is handled elsewhere, the account only needs to exist for token issuance
    user = User(email=DEMO_EMAIL, password_hash="!", role="customer", name="Demo Customer", phone="9800000000")
    session.add(user)
    session.flush()

    session.add(Address(
        user_id=user.id, type=AddressType.HOME, recipient_name="Demo Customer", phone="9800000000",
        line1="12, 4th Cross", line2="Koramangala 5th Block", landmark="Near Forum Mall",
        city="Bengaluru", state="Karnataka", postal_code="560034", is_default=True,
    ))
    wallet_service.credit(session, user.id, DEMO_WALLET_BALANCE, description="Welcome credit")
    print(f"Demo customer {DEMO_EMAIL} created with wallet balance {DEMO_WALLET_BALANCE}.")


def populate_database():
    """Main execution function to populate database."""
    init_db()
    session = SessionLocal()
    try:
        seed_service_areas(session)
        seed_delivery_slots(session)
        seed_products(session)
        seed_coupons(session)
        seed_demo_customer(session)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
    print("Database populated.")


if __name__ == "__main__":
    populate_database()
