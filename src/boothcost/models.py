"""Typed representation of an exhibit estimate and its fixed vocabularies."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"
STORAGE_KEY = "booth_estimates"

TIER_KEYS: Tuple[str, ...] = ("affordable", "mid_tier", "high_end")
TIER_LABELS: Dict[str, str] = {
    "affordable": "Affordable",
    "mid_tier": "Mid-Tier",
    "high_end": "High-End",
}
DEFAULT_SELECTED_TIER = "mid_tier"

LOGISTICS_KEYS: Tuple[str, ...] = (
    "warehouse_outbound",
    "packing_materials",
    "transportation_to_show",
    "installation_dismantle_labor",
    "labor_travel_expenses",
    "freight_return",
    "warehouse_inbound",
    "sundries",
    "preshow_pm",
)
LOGISTICS_LABELS: Dict[str, str] = {
    "warehouse_outbound": "Warehouse Outbound",
    "packing_materials": "Packing Materials",
    "transportation_to_show": "Transportation to Show",
    "installation_dismantle_labor": "Install & Dismantle Labor",
    "labor_travel_expenses": "Labor Travel & Expenses",
    "freight_return": "Freight Return",
    "warehouse_inbound": "Warehouse Inbound",
    "sundries": "Sundries & Incidentals",
    "preshow_pm": "Pre-Show / Project Management",
}

STATUSES: Tuple[str, ...] = ("draft", "sent", "accepted", "revised")
LOCATION_TYPES: Tuple[str, ...] = ("indoor", "outdoor")
BOOTH_SIZES: Dict[str, Optional[int]] = {
    "10x20": 200,
    "20x20": 400,
    "30x30": 900,
    "40x40": 1600,
    "custom": None,
}


def timestamp(now: datetime | None = None) -> str:
    ts = now or datetime.now(timezone.utc)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.strftime(ISO_FORMAT)


def parse_timestamp(value: str) -> datetime:
    try:
        parsed = datetime.strptime(value, ISO_FORMAT)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def empty_logistics() -> Dict[str, float]:
    return {key: 0.0 for key in LOGISTICS_KEYS}


@dataclass(frozen=True)
class BoothRequest:
    """Booth parameters supplied with the original estimate request."""

    location_type: str
    booth_size_key: str
    square_footage: Optional[float] = None

    @classmethod
    def create(
        cls,
        location: str,
        booth_size: str,
        custom_sqft: Optional[float] = None,
    ) -> "BoothRequest":
        location = (location or "").strip().lower()
        if location not in LOCATION_TYPES:
            raise ValueError(f"Unknown location type: {location!r}")
        if booth_size not in BOOTH_SIZES:
            raise ValueError(f"Unknown booth size: {booth_size!r}")
        sqft = BOOTH_SIZES[booth_size]
        if sqft is None and custom_sqft:
            sqft = custom_sqft
        return cls(location_type=location, booth_size_key=booth_size, square_footage=sqft)

    def to_dict(self) -> dict:
        return {
            "location_type": self.location_type,
            "booth_size_key": self.booth_size_key,
            "square_footage": self.square_footage,
        }


@dataclass(frozen=True)
class ImagePayload:
    payload: str
    mime_type: str = "image/jpeg"
    display_name: str = "render.jpg"

    def to_dict(self) -> dict:
        return {
            "payload": self.payload,
            "mime_type": self.mime_type,
            "display_name": self.display_name,
        }


@dataclass(frozen=True)
class Analysis:
    detected_elements: Tuple[str, ...] = ()
    assumptions: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "detected_elements": list(self.detected_elements),
            "assumptions": list(self.assumptions),
        }


@dataclass(frozen=True)
class ClarifyingQuestion:
    id: str
    question: str
    rationale: str = ""
    options: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "question": self.question,
            "rationale": self.rationale,
            "options": list(self.options),
        }


@dataclass(frozen=True)
class FabricationItem:
    """A single buildable line item."""

    description: str
    quantity: str = "1"
    unit_cost: float = 0.0
    subtotal: float = 0.0

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "quantity": self.quantity,
            "unit_cost": self.unit_cost,
            "subtotal": self.subtotal,
        }


@dataclass(frozen=True)
class Tier:
    """One pricing scenario.

    The three totals are derived by :func:`boothcost.pricing.recompute`; build
    tiers through that function rather than setting them by hand.
    """

    label: str
    description: str = ""
    notes: str = ""
    fabrication_items: Tuple[FabricationItem, ...] = ()
    logistics: Mapping[str, float] = field(default_factory=empty_logistics)
    fabrication_subtotal: float = 0.0
    logistics_subtotal: float = 0.0
    grand_total: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "logistics", MappingProxyType(dict(self.logistics)))

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "description": self.description,
            "notes": self.notes,
            "fabrication_items": [item.to_dict() for item in self.fabrication_items],
            "logistics": {key: self.logistics.get(key, 0.0) for key in LOGISTICS_KEYS},
            "fabrication_subtotal": self.fabrication_subtotal,
            "logistics_subtotal": self.logistics_subtotal,
            "grand_total": self.grand_total,
        }


@dataclass(frozen=True)
class TimeEstimate:
    fabrication_weeks: str = ""
    install_days: str = ""
    dismantle_days: str = ""

    def to_dict(self) -> dict:
        return {
            "fabrication_weeks": self.fabrication_weeks,
            "install_days": self.install_days,
            "dismantle_days": self.dismantle_days,
        }


@dataclass(frozen=True)
class GeneratedEstimate:
    """Validated content of a single generator run."""

    analysis: Analysis
    clarifying_questions: Tuple[ClarifyingQuestion, ...]
    tiers: Mapping[str, Tier]
    time_estimate: TimeEstimate

    def __post_init__(self) -> None:
        object.__setattr__(self, "tiers", MappingProxyType(dict(self.tiers)))


@dataclass(frozen=True)
class EstimateDocument:
    """Unit of persistence: one booth request and its three priced tiers.

    ``tiers`` and each tier's ``logistics`` are stored as read-only mapping views.
    """

    id: str
    request: BoothRequest
    tiers: Mapping[str, Tier]
    created_at: str
    updated_at: str
    images: Tuple[ImagePayload, ...] = ()
    analysis: Analysis = field(default_factory=Analysis)
    clarifying_questions: Tuple[ClarifyingQuestion, ...] = ()
    time_estimate: TimeEstimate = field(default_factory=TimeEstimate)
    status: str = "draft"
    client_name: str = ""
    project_name: str = ""
    quote_number: str = ""
    selected_tier: str = DEFAULT_SELECTED_TIER

    def __post_init__(self) -> None:
        object.__setattr__(self, "tiers", MappingProxyType(dict(self.tiers)))

    def tier(self, key: str) -> Tier:
        return self.tiers[key]

    def touch(self, now: datetime | None = None) -> "EstimateDocument":
        return replace(self, updated_at=timestamp(now))

    def with_generated(
        self,
        generated: GeneratedEstimate,
        status: str,
        now: datetime | None = None,
    ) -> "EstimateDocument":
        """Swap in a full generator result, keeping identity, request, and images."""
        return replace(
            self,
            analysis=generated.analysis,
            clarifying_questions=generated.clarifying_questions,
            tiers=dict(generated.tiers),
            time_estimate=generated.time_estimate,
            status=status,
            updated_at=timestamp(now),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "client_name": self.client_name,
            "project_name": self.project_name,
            "quote_number": self.quote_number,
            "selected_tier": self.selected_tier,
            "request": self.request.to_dict(),
            "images": [image.to_dict() for image in self.images],
            "analysis": self.analysis.to_dict(),
            "clarifying_questions": [q.to_dict() for q in self.clarifying_questions],
            "tiers": {key: self.tiers[key].to_dict() for key in TIER_KEYS},
            "time_estimate": self.time_estimate.to_dict(),
        }

    @classmethod
    def from_dict(cls, raw: Mapping) -> "EstimateDocument":
        """Build a document from its persisted shape; see :func:`validation.validate_stored`."""
        from .validation import validate_stored

        return validate_stored(raw)


__all__ = [
    "ISO_FORMAT",
    "STORAGE_KEY",
    "TIER_KEYS",
    "TIER_LABELS",
    "DEFAULT_SELECTED_TIER",
    "LOGISTICS_KEYS",
    "LOGISTICS_LABELS",
    "STATUSES",
    "LOCATION_TYPES",
    "BOOTH_SIZES",
    "BoothRequest",
    "ImagePayload",
    "Analysis",
    "ClarifyingQuestion",
    "FabricationItem",
    "Tier",
    "TimeEstimate",
    "GeneratedEstimate",
    "EstimateDocument",
    "timestamp",
    "parse_timestamp",
    "empty_logistics",
]
