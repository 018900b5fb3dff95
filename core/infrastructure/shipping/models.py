"""
Shipping provider DTOs.

Provider-neutral request and result types exchanged with label providers.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional


@dataclass
class ShippingAddress:
    street1: str
    city: str
    postal_code: str
    country: str
    name: Optional[str] = None
    company: Optional[str] = None
    street2: Optional[str] = None
    state: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShippingAddress":
        """Build from a stored delivery address (missing keys become blanks)."""
        return cls(
            street1=data.get("street1") or data.get("address_1") or "",
            street2=data.get("street2") or data.get("address_2"),
            city=data.get("city") or "",
            state=data.get("state") or data.get("province"),
            postal_code=data.get("postal_code") or "",
            country=(data.get("country") or data.get("country_code") or "US").upper(),
            name=data.get("name"),
            company=data.get("company"),
            phone=data.get("phone"),
            email=data.get("email"),
        )


@dataclass
class Parcel:
    length: float
    width: float
    height: float
    weight: float
    dimension_unit: str = "in"
    weight_unit: str = "lb"


@dataclass
class CreateLabelRequest:
    ship_to_address: ShippingAddress
    parcels: List[Parcel]
    ship_from_address: Optional[ShippingAddress] = None
    carrier: Optional[str] = None
    service: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LabelResult:
    """A purchased label as reported by the provider."""

    label_id: str
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    label_url: Optional[str] = None
    carrier: Optional[str] = None
    service: Optional[str] = None
    cost: Optional[Decimal] = None
    currency: str = "USD"
    provider_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VoidResult:
    success: bool
    refund_amount: Optional[Decimal] = None
    error: Optional[str] = None
