"""Derived money values for carts and orders. Pure functions of the item lines."""
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from core.config import Settings

CENTS = Decimal("0.01")


class PricedLine(Protocol):
    """Anything with a unit price and a quantity."""

    price: Decimal
    quantity: int


@dataclass(frozen=True)
class PricingPolicy:
    """Tax and shipping policy applied to every cart and order."""

    tax_rate: Decimal = Decimal("0.08")
    free_shipping_threshold: Decimal = Decimal("500")
    flat_shipping_fee: Decimal = Decimal("50")

    @classmethod
    def from_settings(cls, settings: Settings) -> "PricingPolicy":
        """Build the policy from application settings."""
        return cls(
            tax_rate=settings.tax_rate,
            free_shipping_threshold=settings.free_shipping_threshold,
            flat_shipping_fee=settings.flat_shipping_fee,
        )

    def subtotal(self, lines: Iterable[PricedLine]) -> Decimal:
        """Sum of price * quantity."""
        return sum((Decimal(line.price) * line.quantity for line in lines), Decimal("0"))

    def tax(self, subtotal: Decimal) -> Decimal:
        """Tax at the fixed rate. Not rounded, so tax == rate * subtotal exactly."""
        return subtotal * self.tax_rate

    def shipping(self, subtotal: Decimal) -> Decimal:
        """Free above the threshold, flat fee otherwise (an empty cart included)."""
        if subtotal > self.free_shipping_threshold:
            return Decimal("0")
        return self.flat_shipping_fee

    def grand_total(self, subtotal: Decimal) -> Decimal:
        """Subtotal + tax + shipping."""
        return subtotal + self.tax(subtotal) + self.shipping(subtotal)


def to_cents(amount: Decimal) -> Decimal:
    """Round a money amount to cents for storage on an order."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)
