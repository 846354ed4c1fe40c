from collections import defaultdict
from typing import List

from ...clients.sales_ledger import SalesLedger
from ...core.errors import DataIntegrityError


def calculate_final_inventory(rental, ledger: SalesLedger, tax_rate: float) -> List[dict]:
    """Sold vs remaining per manifest line over the rental window.

    Uses the quantity frozen at booking time; the live manifest quantity has
    already been decremented by sales and would count them twice.
    """
    product_ids = [item.product_id for item in rental.products]
    sale_lines = ledger.list_sale_lines(
        rental.start_date, rental.end_date, product_ids)

    sold_by_product = defaultdict(int)
    for line in sale_lines:
        if rental.start_date <= line.sold_at <= rental.end_date:
            sold_by_product[line.product_id] += line.quantity

    snapshot = []
    for item in rental.products:
        product = ledger.get_product(item.product_id)
        if not product:
            raise DataIntegrityError(
                f"Product {item.product_id} on rental {rental.id} no longer exists")

        sold_qty = sold_by_product[item.product_id]
        initial_qty = item.initial_quantity
        sales_value = sold_qty * product.price

        snapshot.append({
            "product_id": str(item.product_id),
            "product_name": product.name,
            "product_name_ar": product.name_ar,
            "initial_quantity": initial_qty,
            "sold_quantity": sold_qty,
            "remaining_quantity": max(0, initial_qty - sold_qty),
            "unit_price": product.price,
            "total_sales_value": sales_value,
            "total_sales_with_tax": sales_value * (1 + tax_rate),
        })

    return snapshot
