"""Settlement calculator.

Pure functions: a frozen inventory snapshot plus commission rates in, a
three-way monetary breakdown (platform / store / brand) out. Nothing here
touches the database.

All percentages apply to the pre-tax sales value. Tax is reported but never
distributed. Amounts stay unrounded floats until they are persisted.
"""

from dataclasses import asdict, dataclass
from typing import Iterable, List, Optional

from ...core.errors import DataIntegrityError
from ...enum.rental_enum import CommissionType


@dataclass(frozen=True)
class SettlementBreakdown:
    total_sales: float
    total_sales_with_tax: float
    total_sold_units: int
    total_returned_units: int
    platform_commission_rate: float
    platform_commission_amount: float
    store_commission_rate: float
    store_commission_amount: float
    store_payout_amount: float
    brand_sales_revenue: float
    return_inventory_value: float
    brand_total_amount: float

    def to_dict(self) -> dict:
        return asdict(self)


def first_rate(sources: Iterable[Optional[float]]) -> Optional[float]:
    """Return the first source that is set, in order."""
    for rate in sources:
        if rate is not None:
            return float(rate)
    return None


def resolve_platform_rate(rental, platform_default: Optional[float]) -> float:
    """admin override -> rental's platform entry -> platform default."""
    override = rental.admin_approved_commission
    rate = first_rate([
        float(override) if override is not None else None,
        rental.commission_rate(CommissionType.platform.value),
        platform_default,
    ])
    if rate is None:
        raise DataIntegrityError(
            f"No platform commission rate for rental {rental.id}")
    return rate


def resolve_store_rate(rental) -> float:
    """rental's store entry, else zero."""
    return first_rate([
        rental.commission_rate(CommissionType.store.value),
        0.0,
    ])


def calculate_settlement(
    snapshot: List[dict],
    platform_rate: float,
    store_rate: float,
) -> SettlementBreakdown:
    total_sales = sum(float(item["total_sales_value"]) for item in snapshot)
    total_sales_with_tax = sum(
        float(item["total_sales_with_tax"]) for item in snapshot)

    platform_commission = total_sales * platform_rate / 100
    store_commission = total_sales * store_rate / 100
    brand_sales_revenue = total_sales - platform_commission - store_commission

    return_value = sum(
        item["remaining_quantity"] * float(item["unit_price"]) for item in snapshot)

    return SettlementBreakdown(
        total_sales=total_sales,
        total_sales_with_tax=total_sales_with_tax,
        total_sold_units=sum(item["sold_quantity"] for item in snapshot),
        total_returned_units=sum(
            item["remaining_quantity"] for item in snapshot),
        platform_commission_rate=platform_rate,
        platform_commission_amount=platform_commission,
        store_commission_rate=store_rate,
        store_commission_amount=store_commission,
        # the store's commission is its payout
        store_payout_amount=store_commission,
        brand_sales_revenue=brand_sales_revenue,
        return_inventory_value=return_value,
        brand_total_amount=brand_sales_revenue + return_value,
    )


def calculate_rental_settlement(rental, platform_default: Optional[float]) -> SettlementBreakdown:
    if rental.final_product_snapshot is None:
        raise DataIntegrityError("Inventory snapshot not available")

    return calculate_settlement(
        rental.final_product_snapshot,
        resolve_platform_rate(rental, platform_default),
        resolve_store_rate(rental),
    )
