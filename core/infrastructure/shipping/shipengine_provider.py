"""
ShipEngine Shipping Provider.

Buys and voids labels through the ShipEngine REST API
(https://www.shipengine.com/docs/).
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

import aiohttp
from pydantic import BaseModel, ConfigDict

from core.settings.sections import ShipEngineSettings
from orchestration.errors import ExternalProviderError

from .models import CreateLabelRequest, LabelResult, Parcel, ShippingAddress, VoidResult
from .provider import ShippingLabelProvider


logger = logging.getLogger(__name__)

TRACKING_URL = "https://track.shipengine.com/{tracking_number}"

_WEIGHT_UNITS = {
    "lb": "pound", "lbs": "pound", "pound": "pound", "pounds": "pound",
    "oz": "ounce", "ounce": "ounce", "ounces": "ounce",
    "kg": "kilogram", "kilogram": "kilogram", "kilograms": "kilogram",
    "g": "gram", "gram": "gram", "grams": "gram",
}
_DIMENSION_UNITS = {
    "in": "inch", "inch": "inch", "inches": "inch",
    "cm": "centimeter", "centimeter": "centimeter", "centimeters": "centimeter",
}


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class _ShipEngineModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class LabelDownload(_ShipEngineModel):
    href: Optional[str] = None
    pdf: Optional[str] = None
    png: Optional[str] = None
    zpl: Optional[str] = None


class ShipmentCost(_ShipEngineModel):
    currency: Optional[str] = None
    amount: Optional[float] = None


class ShipEngineLabelResponse(_ShipEngineModel):
    label_id: str
    status: Optional[str] = None
    shipment_id: Optional[str] = None
    carrier_id: Optional[str] = None
    carrier_code: Optional[str] = None
    service_code: Optional[str] = None
    tracking_number: Optional[str] = None
    label_format: Optional[str] = None
    label_download: Optional[LabelDownload] = None
    shipment_cost: Optional[ShipmentCost] = None
    is_return_label: Optional[bool] = None


class ShipEngineVoidResponse(_ShipEngineModel):
    approved: bool = False
    message: Optional[str] = None


# =============================================================================
# PROVIDER
# =============================================================================

class ShipEngineProvider(ShippingLabelProvider):
    """
    ShipEngine implementation of ShippingLabelProvider.

    Label purchases carry an ``Idempotency-Key`` header so a retried
    request returns the label created by the first one.
    """

    name = "shipengine"

    def __init__(self, settings: ShipEngineSettings, session: Optional[aiohttp.ClientSession] = None):
        """
        Initialize ShipEngine provider.

        Args:
            settings: ShipEngine settings (API keys, defaults, ship-from address)
            session: Optional shared aiohttp session; one is opened per call otherwise
        """
        self.settings = settings
        self._session = session
        self.base_url = settings.base_url.rstrip("/")

    def is_available(self) -> bool:
        has_key = bool(self.settings.effective_api_key)
        if self.settings.enabled and not has_key:
            logger.warning("ShipEngine is enabled but no API key is configured")
        return self.settings.enabled and has_key

    @property
    def default_from_address(self) -> ShippingAddress:
        s = self.settings
        return ShippingAddress(
            name=s.from_name or None,
            company=s.from_company or None,
            street1=s.from_street1,
            street2=s.from_street2 or None,
            city=s.from_city,
            state=s.from_state or None,
            postal_code=s.from_postal_code,
            country=s.from_country,
            phone=s.from_phone or None,
        )

    async def create_label(self, idempotency_key: str, request: CreateLabelRequest) -> LabelResult:
        logger.info(
            f"ShipEngine: creating label (idempotency_key={idempotency_key}, "
            f"sandbox={self.settings.use_sandbox})"
        )
        if not self.is_available():
            raise ExternalProviderError(
                "ShipEngine provider is not configured. Set SHIPENGINE_API_KEY or SHIPENGINE_SANDBOX_API_KEY",
                provider=self.name,
            )

        try:
            data = await self._request(
                "POST",
                "/v1/labels",
                json=self.build_label_request(request),
                headers={"Idempotency-Key": idempotency_key},
            )
            response = ShipEngineLabelResponse.model_validate(data)
        except ExternalProviderError:
            raise
        except Exception as e:
            logger.error(f"ShipEngine label creation failed: {e}", exc_info=True)
            raise ExternalProviderError(f"Failed to create label: {e}", provider=self.name) from e

        logger.info(
            f"ShipEngine label created: label_id={response.label_id}, tracking={response.tracking_number}"
        )
        return self.to_label_result(response)

    async def void_label(self, label_id: str) -> VoidResult:
        logger.info(f"ShipEngine: voiding label {label_id}")
        if not self.is_available():
            return VoidResult(success=False, error="ShipEngine provider is not configured")

        try:
            data = await self._request("PUT", f"/v1/labels/{label_id}/void")
            response = ShipEngineVoidResponse.model_validate(data or {})
        except Exception as e:
            logger.error(f"ShipEngine label void failed: {e}", exc_info=True)
            return VoidResult(success=False, error=f"Void request failed: {e}")

        if response.approved:
            logger.info(f"ShipEngine label voided: {label_id}")
            return VoidResult(success=True)

        error = response.message or "Void request not approved"
        logger.warning(f"ShipEngine label void not approved: {label_id} - {error}")
        return VoidResult(success=False, error=error)

    # =========================================================================
    # HTTP
    # =========================================================================

    async def _request(self, method: str, path: str, **kwargs: Any) -> Optional[Dict[str, Any]]:
        headers = {"API-Key": self.settings.effective_api_key, "Content-Type": "application/json"}
        headers.update(kwargs.pop("headers", {}))
        timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout_seconds)
        url = f"{self.base_url}{path}"

        if self._session is not None:
            return await self._send(self._session, method, url, headers, timeout, **kwargs)
        async with aiohttp.ClientSession() as session:
            return await self._send(session, method, url, headers, timeout, **kwargs)

    async def _send(
        self,
        session: aiohttp.ClientSession,
        method: str,
        url: str,
        headers: Dict[str, str],
        timeout: aiohttp.ClientTimeout,
        **kwargs: Any,
    ) -> Optional[Dict[str, Any]]:
        async with session.request(method, url, headers=headers, timeout=timeout, **kwargs) as response:
            if response.status >= 400:
                error_text = await response.text()
                raise ExternalProviderError(
                    f"ShipEngine API error: {response.status} - {error_text}", provider=self.name
                )
            if response.status == 204:
                return None
            return await response.json(content_type=None)

    # =========================================================================
    # MAPPING
    # =========================================================================

    def build_label_request(self, request: CreateLabelRequest) -> Dict[str, Any]:
        from_address = request.ship_from_address
        if from_address is None or not from_address.street1:
            from_address = self.default_from_address

        carrier_id = self._carrier_id(request.carrier)
        shipment: Dict[str, Any] = {
            "service_code": request.service or self.settings.default_service_code,
            "ship_to": _address(request.ship_to_address),
            "ship_from": _address(from_address),
            "packages": [_package(parcel) for parcel in request.parcels],
        }
        if carrier_id:
            shipment["carrier_id"] = carrier_id
        return {
            "shipment": shipment,
            "label_format": self.settings.label_format,
            "label_layout": "4x6",
        }

    def to_label_result(self, response: ShipEngineLabelResponse) -> LabelResult:
        download = response.label_download
        cost = response.shipment_cost
        return LabelResult(
            label_id=response.label_id,
            tracking_number=response.tracking_number,
            tracking_url=(
                TRACKING_URL.format(tracking_number=response.tracking_number)
                if response.tracking_number
                else None
            ),
            label_url=(download.pdf or download.href) if download else None,
            carrier=response.carrier_code,
            service=response.service_code,
            cost=Decimal(str(cost.amount)) if cost and cost.amount is not None else None,
            currency=(cost.currency if cost and cost.currency else "USD").upper(),
            provider_data={
                "shipengine_label_id": response.label_id,
                "shipment_id": response.shipment_id or "",
                "carrier_id": response.carrier_id or "",
                "label_format": response.label_format or self.settings.label_format,
                "is_return_label": bool(response.is_return_label),
                "sandbox": self.settings.use_sandbox,
            },
        )

    def _carrier_id(self, carrier: Optional[str]) -> str:
        # ShipEngine carrier ids look like "se-123456"
        if carrier and carrier.startswith("se-"):
            return carrier
        return self.settings.default_carrier_id


def _address(address: ShippingAddress) -> Dict[str, Any]:
    fields = {
        "name": address.name,
        "company_name": address.company,
        "address_line1": address.street1,
        "address_line2": address.street2,
        "city_locality": address.city,
        "state_province": address.state,
        "postal_code": address.postal_code,
        "country_code": address.country,
        "phone": address.phone,
        "email": address.email,
    }
    return {key: value for key, value in fields.items() if value}


def _package(parcel: Parcel) -> Dict[str, Any]:
    return {
        "weight": {
            "value": parcel.weight,
            "unit": _WEIGHT_UNITS.get(parcel.weight_unit.lower(), "pound"),
        },
        "dimensions": {
            "length": parcel.length,
            "width": parcel.width,
            "height": parcel.height,
            "unit": _DIMENSION_UNITS.get(parcel.dimension_unit.lower(), "inch"),
        },
    }


def default_parcels() -> List[Parcel]:
    """Single medium box used when the caller supplies no parcels."""
    return [Parcel(length=12.0, width=10.0, height=6.0, weight=2.0)]
