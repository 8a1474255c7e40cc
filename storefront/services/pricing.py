# storefront/services/pricing.py
from decimal import Decimal

from storefront.domain.money import ZERO, to_money
from storefront.utils.settings import (
    FREE_SHIPPING_THRESHOLD,
    SHIPPING_INSIDE_DHAKA,
    SHIPPING_OUTSIDE_DHAKA,
    TAX_RATE,
)

#districts of Dhaka division billed at the inside-Dhaka rate
DHAKA_DISTRICTS = frozenset({
    "dhaka",
    "gazipur",
    "narayanganj",
    "munshiganj",
    "manikganj",
    "narsingdi",
})


class PricingPolicy:
    """Flat shipping by zone with a free-shipping threshold, and one tax rate."""

    def __init__(
        self,
        free_shipping_threshold: Decimal = FREE_SHIPPING_THRESHOLD,
        inside_dhaka: Decimal = SHIPPING_INSIDE_DHAKA,
        outside_dhaka: Decimal = SHIPPING_OUTSIDE_DHAKA,
        tax_rate: Decimal = TAX_RATE,
    ):
        self.free_shipping_threshold = Decimal(free_shipping_threshold)
        self.inside_dhaka = Decimal(inside_dhaka)
        self.outside_dhaka = Decimal(outside_dhaka)
        self.tax_rate = Decimal(tax_rate)

    def is_inside_dhaka(self, district: str | None) -> bool:
        # no address yet (cart page): estimate with the inside rate
        if not district:
            return True
        return district.strip().lower() in DHAKA_DISTRICTS

    def shipping_cost(self, subtotal: Decimal, district: str | None = None) -> Decimal:
        if subtotal <= ZERO:
            return ZERO
        if subtotal >= self.free_shipping_threshold:
            return ZERO
        rate = self.inside_dhaka if self.is_inside_dhaka(district) else self.outside_dhaka
        return to_money(rate)

    def tax(self, taxable: Decimal) -> Decimal:
        if taxable <= ZERO:
            return ZERO
        return to_money(taxable * self.tax_rate)
