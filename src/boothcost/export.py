"""Handoff payload for the external quote renderer."""
from __future__ import annotations

import math
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Tuple

from .errors import EditError
from .models import LOGISTICS_LABELS, EstimateDocument, ImagePayload, Tier, TimeEstimate
from .pricing import recompute

QUOTE_VALIDITY_DAYS = 14


@dataclass(frozen=True)
class ExportPayload:
    quote_number: str
    client_name: str
    project_name: str
    tier_key: str
    tier: Tier
    logistics_rows: Tuple[Tuple[str, float], ...]
    time_estimate: TimeEstimate
    images: Tuple[ImagePayload, ...]
    issued_on: date
    expires_on: date


def _check_finite(tier: Tier) -> None:
    numbers: List[float] = [tier.fabrication_subtotal, tier.logistics_subtotal, tier.grand_total]
    numbers.extend(tier.logistics.values())
    for item in tier.fabrication_items:
        numbers.extend((item.unit_cost, item.subtotal))
    if not all(isinstance(n, float) and math.isfinite(n) for n in numbers):
        raise ValueError("Tier contains non-finite amounts after recompute")


def prepare_export(
    document: EstimateDocument,
    tier_key: Optional[str] = None,
    today: Optional[date] = None,
) -> ExportPayload:
    """Recompute the chosen tier and bundle it with the quote metadata."""

    key = tier_key or document.selected_tier
    if key not in document.tiers:
        raise EditError(f"Unknown tier: {key}")
    tier = recompute(document.tiers[key])
    _check_finite(tier)
    issued = today or datetime.now(timezone.utc).date()
    return ExportPayload(
        quote_number=document.quote_number or f"DCE-{str(int(time.time()))[-5:]}",
        client_name=document.client_name or "CLIENT",
        project_name=document.project_name or "PROJECT",
        tier_key=key,
        tier=tier,
        logistics_rows=tuple(
            (LOGISTICS_LABELS[name], value) for name, value in tier.logistics.items() if value > 0
        ),
        time_estimate=document.time_estimate,
        images=document.images,
        issued_on=issued,
        expires_on=issued + timedelta(days=QUOTE_VALIDITY_DAYS),
    )


__all__ = ["ExportPayload", "prepare_export", "QUOTE_VALIDITY_DAYS"]
