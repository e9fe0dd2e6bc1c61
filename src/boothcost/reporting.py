from __future__ import annotations

from typing import Iterable

import pandas as pd

from .models import TIER_KEYS, EstimateDocument

FRAME_COLUMNS = [
    "ID",
    "QUOTE",
    "CLIENT",
    "STATUS",
    "LOCATION",
    "BOOTH_SIZE",
    "SELECTED_TIER",
    "GRAND_TOTAL",
    "UPDATED_AT",
]


def estimates_frame(documents: Iterable[EstimateDocument]) -> pd.DataFrame:
    rows = []
    for doc in documents:
        tier = doc.tiers[doc.selected_tier]
        rows.append(
            {
                "ID": doc.id,
                "QUOTE": doc.quote_number,
                "CLIENT": doc.client_name,
                "STATUS": doc.status,
                "LOCATION": doc.request.location_type,
                "BOOTH_SIZE": doc.request.booth_size_key,
                "SELECTED_TIER": doc.selected_tier,
                "GRAND_TOTAL": tier.grand_total,
                "UPDATED_AT": doc.updated_at,
            }
        )
    return pd.DataFrame(rows, columns=FRAME_COLUMNS)


def make_summary_text(document: EstimateDocument, top: int = 5) -> str:
    tiers = pd.DataFrame(
        [
            {
                "TIER": document.tiers[key].label,
                "FABRICATION": document.tiers[key].fabrication_subtotal,
                "LOGISTICS": document.tiers[key].logistics_subtotal,
                "GRAND_TOTAL": document.tiers[key].grand_total,
            }
            for key in TIER_KEYS
        ]
    )
    selected = document.tiers[document.selected_tier]
    items = pd.DataFrame(
        [
            {"DESCRIPTION": item.description, "QTY": item.quantity, "SUBTOTAL": item.subtotal}
            for item in selected.fabrication_items
        ],
        columns=["DESCRIPTION", "QTY", "SUBTOTAL"],
    )
    drivers = items.sort_values("SUBTOTAL", ascending=False).head(top)
    driver_text = drivers.to_string(index=False) if not drivers.empty else "(no fabrication items)"
    return (
        f"Estimate {document.id} [{document.status}] "
        f"{document.request.location_type} {document.request.booth_size_key}\n"
        f"{tiers.to_string(index=False, float_format=lambda v: f'${v:,.0f}')}\n"
        f"Top cost drivers ({selected.label}):\n{driver_text}\n"
    )
