# carmarket/utils/constants.py

"""
Global constants for roles, statuses, and listing enumerations.
These constants are imported by both models and services.
"""

from datetime import date

# Date format (used for rental start/end)
DATE_FMT = "%Y-%m-%d"


class Role:
    USER = "user"
    DEALER = "dealer"
    ADMIN = "admin"

    ALL = (USER, DEALER, ADMIN)


class RentalStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    ACTIVE = frozenset({PENDING, APPROVED})


class Availability:
    AVAILABLE = "available"
    RENTED = "rented"
    UNAVAILABLE = "unavailable"


class ApprovalStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PaymentStatus:
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class ListingType:
    RENT = "rent"
    SALE = "sale"


# --- Listing enumerations ---
CAR_BRANDS = (
    "Toyota", "Honda", "Ford", "Chevrolet", "BMW",
    "Mercedes-Benz", "Audi", "Volkswagen", "Hyundai", "Kia",
    "Nissan", "Tesla", "Lexus", "Mazda", "Subaru",
    "Jeep", "Dodge", "GMC", "Porsche", "Land Rover",
)

CAR_TYPES = (
    "SUV", "Sedan", "Truck", "Off-Road", "Convertible", "Hatchback", "Luxury",
    "Electric", "Sports", "Van", "Muscle", "Coupe", "Hybrid",
)

MIN_YEAR = 2000


def allowed_years() -> range:
    return range(MIN_YEAR, date.today().year + 1)


# Bahrain mobile and landline numbers, optional +973 prefix
BAHRAIN_PHONE_PATTERN = (
    r"^(\+973)?(3(20|21|22|23|80|81|82|83|84|87|88|89|9\d)\d{5}|33\d{6}|34[0-6]\d{5}"
    r"|35(0|1|3|4|5)\d{5}|36\d{6}|37\d{6}|31\d{6}|66(3|6|7|8|9)\d{5}|6500\d{4}|1\d{7})$"
)

# --- Misc ---
ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png"}
