# marketplace/config.py

"""
Central business-rule settings for the marketplace.
Every value can be overridden through the environment (.env).
Amounts are whole dinars (DA).
"""
import os

# =================================================
# Delivery fees
# =================================================
# Fee charged when the store configuration cannot be read at all.
DEFAULT_DELIVERY_FEE = int(os.environ.get("DEFAULT_DELIVERY_FEE", "500"))

# Base fee for stores that never set their own.
DEFAULT_BASE_DELIVERY_FEE = int(os.environ.get("DEFAULT_BASE_DELIVERY_FEE", "500"))

# Added per store when the destination wilaya is outside its service region
# and no route-specific surcharge exists.
OUT_OF_AREA_SURCHARGE = int(os.environ.get("OUT_OF_AREA_SURCHARGE", "300"))

# Region assumed for stores without a storage city.
DEFAULT_SERVICE_REGION = os.environ.get("DEFAULT_SERVICE_REGION", "Oran")


# =================================================
# Free delivery
# =================================================
FREE_DELIVERY_THRESHOLD_MIN = int(os.environ.get("FREE_DELIVERY_THRESHOLD_MIN", "1000"))
FREE_DELIVERY_THRESHOLD_MAX = int(os.environ.get("FREE_DELIVERY_THRESHOLD_MAX", "50000"))
DEFAULT_FREE_DELIVERY_THRESHOLD = int(os.environ.get("DEFAULT_FREE_DELIVERY_THRESHOLD", "8000"))

# Stores this close to their threshold get the "add X DA more" prompt.
FREE_DELIVERY_INCENTIVE_WINDOW = int(os.environ.get("FREE_DELIVERY_INCENTIVE_WINDOW", "3000"))


# =================================================
# Platform commission
# =================================================
# Fraction retained by the platform on the items value. 0.10 means 10%.
# Used until an admin stores a rate in platform_settings.
PLATFORM_COMMISSION_RATE = float(os.environ.get("PLATFORM_COMMISSION_RATE", "0.0"))
