from carmarket import create_app
from carmarket.models.store import Store
from carmarket.utils.constants import Availability, Role
from carmarket.utils.security import generate_hash


def ensure_user(store: Store, username: str, password: str, role: str):
    """
    Ensure a user with `username` exists in the store.
    - If exists: update password hash and role (idempotent).
    - If not:   create a new user.
    """
    u = store.find_user(username)
    if u:
        store.update_user(u["user_id"], password_hash=generate_hash(password), role=role)
        return u["user_id"]
    return store.create_user(username, generate_hash(password), role)


def demo_car(dealer_id: str, brand: str, model: str, car_type: str, year: int, *,
             price_per_day=None, sale_price=None, mileage=0, image=""):
    return {
        "dealer_id": dealer_id,
        "brand": brand,
        "model": model,
        "type": car_type,
        "year": year,
        "mileage": mileage,
        "for_sale": sale_price is not None,
        "price_per_day": price_per_day,
        "sale_price": sale_price,
        "is_sold": False,
        "buyer_id": None,
        "availability": Availability.AVAILABLE,
        "dealer_phone": "+97333123456",
        "is_compatible": False,
        "images": [{"url": f"/uploads/{image}", "handle": image}] if image else [],
    }


def main():
    app = create_app()
    with app.app_context():
        store = Store.instance()

        # ---- Admin / Dealer / User demo accounts ----
        ensure_user(store, "admin", "Admin123", Role.ADMIN)
        dealer_id = ensure_user(store, "dealer", "Dealer123", Role.DEALER)
        ensure_user(store, "user", "User123", Role.USER)

        # ---- Demo cars (create only if none exist) ----
        if not store.count("cars"):
            store.create_car(demo_car(dealer_id, "Toyota", "Corolla", "Sedan", 2021,
                                      price_per_day=45, mileage=32000, image="corolla.jpg"))
            store.create_car(demo_car(dealer_id, "Honda", "Civic", "Sedan", 2022,
                                      price_per_day=50, mileage=18000, image="civic.jpg"))
            store.create_car(demo_car(dealer_id, "Nissan", "Patrol", "SUV", 2020,
                                      sale_price=21500, mileage=64000, image="patrol.jpg"))
            store.create_car(demo_car(dealer_id, "Kia", "Carnival", "Van", 2023,
                                      price_per_day=70, mileage=9000, image="carnival.jpg"))

        store.save()

        print("✅ Seed complete.")
        print("🔑 Admin login:  admin / Admin123")
        print("🚗 Dealer login: dealer / Dealer123")
        print("👤 User login:   user / User123")


if __name__ == "__main__":
    main()
