"""
Discount code registry.

Codes are configured, not stored: the registry is built from settings at
startup and injected into the receipt issuer. Only the applied code string is
persisted on a receipt.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional
import logging

from dental_billing.core.config import settings
from dental_billing.core.exceptions import ValidationError
from dental_billing.core.money import Number, to_money, to_rate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscountCode:
    code: str
    percentage: Decimal
    description: str
    is_active: bool = True

    @property
    def discount_text(self) -> str:
        return f"{(self.percentage * 100).normalize():f}% off"


@dataclass(frozen=True)
class AppliedDiscount:
    code: str
    percentage: Decimal
    amount: Decimal
    description: str


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


class DiscountRegistry:
    """Percentage discounts keyed by upper-case code"""

    def __init__(self, codes: Iterable[DiscountCode] = ()):
        self._codes: Dict[str, DiscountCode] = {}
        for code in codes:
            if code.percentage < 0 or code.percentage > 1:
                raise ValueError(f"Discount percentage for {code.code} must be between 0 and 1")
            self._codes[normalize_code(code.code)] = code

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Mapping[str, Any]]) -> "DiscountRegistry":
        return cls(
            DiscountCode(
                code=normalize_code(code),
                percentage=to_rate(entry["percentage"]),
                description=entry.get("description", ""),
                is_active=entry.get("is_active", True),
            )
            for code, entry in mapping.items()
        )

    @classmethod
    def from_settings(cls) -> "DiscountRegistry":
        return cls.from_mapping(settings.DISCOUNT_CODES)

    def get(self, code: str) -> Optional[DiscountCode]:
        return self._codes.get(normalize_code(code))

    def validate(self, code: str, subtotal: Number) -> AppliedDiscount:
        """Resolve a code against a subtotal.

        Raises ValidationError when the code is unknown or switched off.
        """
        normalized = normalize_code(code)
        if not normalized:
            raise ValidationError("Discount code is required", details={"field": "discount_code"})

        discount = self._codes.get(normalized)
        if not discount:
            raise ValidationError("Invalid discount code", details={"discount_code": normalized})
        if not discount.is_active:
            raise ValidationError("Discount code is no longer active", details={"discount_code": normalized})

        return AppliedDiscount(
            code=normalized,
            percentage=discount.percentage,
            amount=to_money(to_money(subtotal) * discount.percentage),
            description=discount.description,
        )

    def validate_public(self, code: str, subtotal: Number) -> Optional[AppliedDiscount]:
        """Same as validate, but an unusable code is simply None"""
        try:
            return self.validate(code, subtotal)
        except ValidationError as e:
            logger.info(f"Discount code lookup failed: {e.message}")
            return None

    def available_codes(self) -> List[Dict[str, Any]]:
        return [
            {
                "code": code.code,
                "description": code.description,
                "percentage": code.percentage,
                "discount_text": code.discount_text,
            }
            for code in self._codes.values()
            if code.is_active
        ]
