"""
Billing Calculator

Pure functions deriving bill totals from order item snapshots.

Rounding policy: all arithmetic runs on Decimal at full precision. Each
reported component is rounded to 2 places (ROUND_HALF_UP) for display,
while the grand total is computed from the unrounded components and
rounded once, so per-line rounding never accumulates into the total.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from qrdine.core.config import get_settings
from qrdine.core.errors import ValidationError
from qrdine.core.money import Number, round_money, to_decimal


@dataclass(frozen=True)
class BillTotals:
    subtotal: Decimal
    service_charge: Decimal
    gst: Decimal
    discount: Decimal
    grand_total: Decimal

    def as_floats(self) -> dict[str, float]:
        return {
            "subtotal": float(self.subtotal),
            "service_charge": float(self.service_charge),
            "gst": float(self.gst),
            "discount": float(self.discount),
            "grand_total": float(self.grand_total),
        }


def calculate_bill(
    lines: Iterable[tuple[Number, Number]],
    discount: Number = 0,
    service_charge_rate: Optional[Number] = None,
    tax_rate: Optional[Number] = None,
) -> BillTotals:
    """
    Compute subtotal, service charge, GST and grand total.

    Args:
        lines: (unit price, quantity) pairs
        discount: Absolute amount taken off the total
        service_charge_rate: Defaults to SERVICE_CHARGE_RATE (0.10)
        tax_rate: Defaults to TAX_RATE (0.18)

    Returns:
        BillTotals with every component rounded to 2 places

    Raises:
        ValidationError: Negative price, quantity or discount, or a
            discount larger than the pre-discount total
    """
    settings = get_settings()
    service_rate = to_decimal(settings.service_charge_rate if service_charge_rate is None else service_charge_rate)
    gst_rate = to_decimal(settings.tax_rate if tax_rate is None else tax_rate)

    subtotal = Decimal("0")
    for price, quantity in lines:
        price, quantity = to_decimal(price), to_decimal(quantity)
        if price < 0 or quantity < 0:
            raise ValidationError("Prices and quantities must not be negative")
        subtotal += price * quantity

    discount = to_decimal(discount)
    if discount < 0:
        raise ValidationError("Discount must not be negative")

    service_charge = subtotal * service_rate
    gst = subtotal * gst_rate
    gross = subtotal + service_charge + gst
    if discount > gross:
        raise ValidationError(
            "Discount exceeds bill total",
            detail={"discount": float(discount), "total": float(round_money(gross))},
        )

    return BillTotals(
        subtotal=round_money(subtotal),
        service_charge=round_money(service_charge),
        gst=round_money(gst),
        discount=round_money(discount),
        grand_total=round_money(gross - discount),
    )


def bill_lines_from_orders(orders: Iterable) -> list[tuple[Number, Number]]:
    """Flatten the item snapshots of orders into (price, quantity) pairs."""
    return [
        (item["price"], item["quantity"])
        for order in orders
        for item in order.items
    ]
