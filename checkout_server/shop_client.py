"""Storefront API client: promo validation, pickup points and order submission."""

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from .models import (
    OrderPayload,
    PickupPoint,
    PickupPointType,
    PromoKind,
    PromoValidationResult,
    SubmitResult,
)

logger = logging.getLogger(__name__)

LOCKER_TYPE = 3


class ShopApiError(Exception):
    """Transport failure, unexpected status or unparsable response from the storefront."""


class ShopApiClient:
    """Async client for the storefront's checkout endpoints."""

    def __init__(
        self,
        base_url: str,
        locale: str = "lt",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the storefront client.

        Args:
            base_url: Storefront base URL
            locale: Locale for server-side error messages
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url
        self.locale = locale
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
            headers={
                "Accept": "application/json",
                "X-Requested-With": "XMLHttpRequest",
            },
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise ShopApiError(f"{method} {url} failed: {e}") from e

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ShopApiError(f"Invalid JSON from {response.request.url}: {e}") from e

    async def validate_promo_code(
        self, code: str, cart_total: float, email: Optional[str] = None
    ) -> PromoValidationResult:
        """
        Ask the storefront whether a promo code applies to the cart.

        Args:
            code: Promo code as entered
            cart_total: Cart subtotal the discount is computed against
            email: Customer email for per-customer usage limits

        Returns:
            PromoValidationResult; `discount_amount` is the server's figure

        Raises:
            ShopApiError: If the request fails or the response is malformed
        """
        logger.info(f"Validating promo code {code} for cart total {cart_total:.2f}")
        body: dict[str, Any] = {"code": code, "cart_total": cart_total, "locale": self.locale}
        if email:
            body["email"] = email

        response = await self._request("POST", "/api/promo-code/validate", json=body)
        if response.status_code == 422:
            data = self._json(response)
            if not isinstance(data, dict):
                data = {}
            return PromoValidationResult(valid=False, error=data.get("message"))
        if response.status_code != 200:
            raise ShopApiError(f"Promo validation returned status {response.status_code}")

        data = self._json(response)
        if not isinstance(data, dict):
            raise ShopApiError("Promo validation response is not an object")
        try:
            kind = data.get("type") or data.get("kind")
            return PromoValidationResult(
                valid=bool(data.get("valid")),
                code=data.get("code"),
                kind=PromoKind(kind) if kind else None,
                value=data.get("value"),
                discount_amount=data.get("discount_amount"),
                error=data.get("error"),
                error_key=data.get("error_key"),
            )
        except (ValueError, ValidationError) as e:
            raise ShopApiError(f"Could not parse promo validation response: {e}") from e

    async def fetch_pickup_points(self, country: str) -> list[PickupPoint]:
        """
        Fetch carrier pickup points for a country, sorted by city then name.

        Raises:
            ShopApiError: If the request fails or the response is malformed
        """
        logger.info(f"Fetching pickup points for {country}")
        response = await self._request("GET", "/api/venipak/pickup-points", params={"country": country})
        if response.status_code != 200:
            raise ShopApiError(f"Pickup points returned status {response.status_code}")

        data = self._json(response)
        if not isinstance(data, dict) or not data.get("success"):
            raise ShopApiError("Pickup points response was not successful")

        points = []
        for raw in data.get("data") or []:
            point = self._parse_pickup_point(raw, country)
            if point is not None:
                points.append(point)
        points.sort(key=lambda p: (p.city, p.name))
        logger.info(f"Loaded {len(points)} pickup point(s) for {country}")
        return points

    @staticmethod
    def _parse_pickup_point(raw: Any, country: str) -> Optional[PickupPoint]:
        if not isinstance(raw, dict) or raw.get("id") is None:
            logger.warning(f"Skipping malformed pickup point: {raw!r}")
            return None
        try:
            point_type = int(raw.get("type") or 1)
        except (TypeError, ValueError):
            point_type = 1
        try:
            return PickupPoint(
                id=str(raw["id"]),
                name=raw.get("display_name") or raw.get("name") or "",
                address=raw.get("address") or "",
                city=raw.get("city") or "",
                zip=str(raw.get("zip") or ""),
                country=str(raw.get("country") or country).upper(),
                type=PickupPointType.LOCKER if point_type == LOCKER_TYPE else PickupPointType.TERMINAL,
                cod_enabled=bool(raw.get("cod_enabled")),
            )
        except ValidationError as e:
            logger.warning(f"Skipping invalid pickup point {raw.get('id')}: {e}")
            return None

    async def submit_order(self, payload: OrderPayload) -> SubmitResult:
        """
        Submit the assembled order.

        Returns:
            SubmitResult with success, or with field errors on a 422

        Raises:
            ShopApiError: On transport failure or an unexpected status
        """
        logger.info(
            f"=== SUBMIT ORDER: items={len(payload.items)}, total={payload.summary.total:.2f}, "
            f"shipping={payload.shipping_method}, payment={payload.payment_method} ==="
        )
        response = await self._request("POST", "/checkout", json=payload.to_request())

        if response.status_code == 422:
            data = self._json(response)
            if not isinstance(data, dict):
                data = {}
            errors = {}
            for field, messages in (data.get("errors") or {}).items():
                if isinstance(messages, list):
                    messages = messages[0] if messages else ""
                errors[field] = str(messages)
            logger.info(f"Order rejected with {len(errors)} field error(s)")
            return SubmitResult(success=False, errors=errors, message=data.get("message"))

        if response.status_code not in (200, 201):
            raise ShopApiError(f"Order submission returned status {response.status_code}")

        data = self._json(response)
        if not isinstance(data, dict):
            raise ShopApiError("Order submission response is not an object")
        result = SubmitResult(
            success=bool(data.get("success", True)),
            order_number=data.get("order_number"),
            redirect_url=data.get("redirect_url"),
            message=data.get("message"),
        )
        logger.info(f"Order submitted: success={result.success}, order={result.order_number}")
        return result

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
