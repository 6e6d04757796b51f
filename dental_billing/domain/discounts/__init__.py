from dental_billing.domain.discounts.registry import (
    DiscountCode,
    AppliedDiscount,
    DiscountRegistry,
)

__all__ = ["DiscountCode", "AppliedDiscount", "DiscountRegistry"]
