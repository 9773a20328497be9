"""Checkout pricing. All amounts are whole taka."""
from dataclasses import dataclass

from core.config import settings

DHAKA = "Dhaka"
DIVISIONS = ("Dhaka", "Chittagong", "Rajshahi", "Khulna", "Barisal", "Sylhet", "Rangpur", "Mymensingh")


@dataclass(frozen=True)
class OrderPricing:
    subtotal: int
    discount_amount: int
    delivery_charge: int
    cod_charge: int
    total: int


def delivery_charge(division: str) -> int:
    if division == DHAKA:
        return settings.DHAKA_DELIVERY_CHARGE
    return settings.OUTSIDE_DHAKA_DELIVERY_CHARGE


def cod_charge(amount: int) -> int:
    """ceil(COD_CHARGE_PERCENT% of amount), in integer arithmetic."""
    return -(-amount * settings.COD_CHARGE_PERCENT // 100)


def price_order(subtotal: int, division: str, discount_amount: int = 0, free_shipping: bool = False) -> OrderPricing:
    discount_amount = min(max(discount_amount, 0), subtotal)
    delivery = 0 if free_shipping else delivery_charge(division)
    chargeable = subtotal - discount_amount + delivery
    cod = cod_charge(chargeable)
    return OrderPricing(
        subtotal=subtotal,
        discount_amount=discount_amount,
        delivery_charge=delivery,
        cod_charge=cod,
        total=chargeable + cod,
    )
