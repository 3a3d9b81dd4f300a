"""Promo code apply/remove lifecycle."""

import logging
from enum import Enum
from typing import Optional, Protocol

from pydantic import ValidationError

from .models import AppliedPromoCode, PromoValidationResult
from .translation import Translator

logger = logging.getLogger(__name__)


class PromoCodeValidator(Protocol):
    async def validate_promo_code(
        self, code: str, cart_total: float, email: Optional[str] = None
    ) -> PromoValidationResult: ...


class PromoCodeState(str, Enum):
    NONE = "none"
    PENDING = "pending"
    APPLIED = "applied"


class PromoCodeCoordinator:
    """
    Holds at most one applied promo code.

    The storefront decides validity and computes the discount; the amount it
    returns is kept as-is and never recomputed here.
    """

    def __init__(self, validator: PromoCodeValidator, translate: Optional[Translator] = None) -> None:
        self.validator = validator
        self.t = translate or Translator()
        self.state = PromoCodeState.NONE
        self.applied: Optional[AppliedPromoCode] = None
        self.error: Optional[str] = None
        self.error_key: Optional[str] = None
        self._generation = 0

    @property
    def loading(self) -> bool:
        return self.state == PromoCodeState.PENDING

    @property
    def discount_amount(self) -> float:
        return self.applied.discount_amount if self.applied else 0.0

    def _fail(self, message: str, key: Optional[str] = None) -> bool:
        self.state = PromoCodeState.NONE
        self.applied = None
        self.error = message
        self.error_key = key
        return False

    async def apply(self, code: str, cart_subtotal: float, email: Optional[str] = None) -> bool:
        """
        Validate and apply a promo code.

        Returns:
            True if the code was applied; otherwise `error` explains why
        """
        if self.loading:
            logger.warning("Promo code validation already in progress, ignoring apply")
            return False
        if self.state == PromoCodeState.APPLIED:
            self.error = self.t("promo_code.already_applied", "Remove the applied promo code first")
            self.error_key = "promo_code.already_applied"
            return False

        normalized = (code or "").strip().upper()
        if not normalized:
            return self._fail(self.t("promo_code.enter_code", "Please enter a promo code"), "promo_code.enter_code")

        self.state = PromoCodeState.PENDING
        self.error = None
        self.error_key = None
        generation = self._generation
        try:
            return await self._validate(normalized, cart_subtotal, email, generation)
        finally:
            # A call never returns with its own request still pending.
            if generation == self._generation and self.state == PromoCodeState.PENDING:
                self.state = PromoCodeState.NONE

    def _generic_failure(self) -> bool:
        return self._fail(
            self.t("promo_code.error", "Could not validate the promo code. Please try again."),
            "promo_code.error",
        )

    async def _validate(self, normalized: str, cart_subtotal: float, email: Optional[str], generation: int) -> bool:
        try:
            result = await self.validator.validate_promo_code(normalized, cart_subtotal, email or None)
        except Exception as e:
            if generation != self._generation:
                return False
            logger.error(f"Promo code validation failed: {e}")
            return self._generic_failure()

        if generation != self._generation:
            logger.info(f"Discarding promo validation for {normalized}: code was removed meanwhile")
            return False

        if not result.valid:
            logger.info(f"Promo code {normalized} rejected: {result.error_key or result.error}")
            return self._fail(
                result.error or self.t("promo_code.invalid", "Invalid promo code"),
                result.error_key or "promo_code.invalid",
            )

        if result.kind is None or result.value is None or result.discount_amount is None:
            logger.error(f"Promo code {normalized} accepted without discount details")
            return self._generic_failure()

        try:
            applied = AppliedPromoCode(
                code=result.code or normalized,
                kind=result.kind,
                value=result.value,
                discount_amount=result.discount_amount,
            )
        except ValidationError as e:
            logger.error(f"Promo code {normalized} accepted with unusable discount details: {e}")
            return self._generic_failure()

        self.applied = applied
        self.state = PromoCodeState.APPLIED
        logger.info(f"Promo code {applied.code} applied: -{applied.discount_amount:.2f}")
        return True

    def remove(self) -> None:
        """Drop the applied code and any error; no network round-trip."""
        if self.applied:
            logger.info(f"Promo code {self.applied.code} removed")
        self._generation += 1
        self.state = PromoCodeState.NONE
        self.applied = None
        self.error = None
        self.error_key = None
