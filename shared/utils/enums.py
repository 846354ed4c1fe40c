from enum import Enum


class UserAccountType(str, Enum):
    ADMIN = "admin"
    STORE_OWNER = "store_owner"
    BRAND_OWNER = "brand_owner"
