"""Derived totals and manual edit commands for estimate tiers.

Generator output is non-deterministic, so every numeric field is coerced here
rather than trusted: anything that is not a finite number counts as 0. All
edits go through :func:`apply_edit`, which returns a new document whose tier
totals have already been recomputed.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Mapping, Optional, Union

from .errors import EditError
from .models import (
    LOGISTICS_KEYS,
    TIER_KEYS,
    EstimateDocument,
    FabricationItem,
    Tier,
    timestamp,
)

LOGGER = logging.getLogger(__name__)

_LEADING_NUMBER = re.compile(r"^\s*[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?")
_DETAIL_FIELDS = {"client_name", "project_name", "quote_number", "selected_tier"}


def coerce_number(value: object) -> float:
    """Return ``value`` as a finite float, or 0.0 when it is not numeric."""

    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return 0.0
    else:
        text = str(value).replace("$", "").replace(",", "").strip()
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


def coerce_amount(value: object) -> float:
    """Coerce a logistics figure; these are never negative."""
    return max(0.0, coerce_number(value))


def parse_quantity(text: object) -> Optional[float]:
    """Read the leading number of a free-text quantity such as ``"120 sqft"``."""

    if isinstance(text, bool) or text is None:
        return None
    if isinstance(text, (int, float)):
        try:
            number = float(text)
        except OverflowError:
            return None
        return number if math.isfinite(number) else None
    match = _LEADING_NUMBER.match(str(text).replace(",", ""))
    if not match:
        return None
    number = float(match.group(0))
    return number if math.isfinite(number) else None


def _is_numeric(value: object) -> bool:
    if isinstance(value, bool) or value is None:
        return False
    if isinstance(value, (int, float)):
        text = value
    else:
        text = str(value).replace("$", "").replace(",", "").strip()
    try:
        return math.isfinite(float(text))
    except (ValueError, OverflowError):
        return False


def normalize_logistics(logistics: Optional[Mapping[str, object]]) -> dict:
    source = logistics or {}
    return {key: coerce_amount(source.get(key)) for key in LOGISTICS_KEYS}


def recompute(tier: Tier) -> Tier:
    """Rebuild the derived totals of ``tier`` from its items and logistics."""

    items = tuple(
        replace(
            item,
            quantity=str(item.quantity),
            unit_cost=coerce_number(item.unit_cost),
            subtotal=coerce_number(item.subtotal),
        )
        for item in tier.fabrication_items
    )
    logistics = normalize_logistics(tier.logistics)
    fabrication_subtotal = coerce_number(sum(item.subtotal for item in items))
    logistics_subtotal = coerce_number(sum(logistics.values()))
    return replace(
        tier,
        fabrication_items=items,
        logistics=logistics,
        fabrication_subtotal=fabrication_subtotal,
        logistics_subtotal=logistics_subtotal,
        grand_total=coerce_number(fabrication_subtotal + logistics_subtotal),
    )


def recompute_document(document: EstimateDocument) -> EstimateDocument:
    return replace(document, tiers={key: recompute(document.tiers[key]) for key in TIER_KEYS})


@dataclass(frozen=True)
class AddLineItem:
    description: str = "New Line Item"
    quantity: str = "1"
    unit_cost: object = 0
    subtotal: object = None


@dataclass(frozen=True)
class UpdateLineItem:
    index: int
    description: str
    quantity: str
    unit_cost: object
    subtotal: object = None


@dataclass(frozen=True)
class DeleteLineItem:
    index: int


@dataclass(frozen=True)
class UpdateLogistics:
    category: str
    value: object


Edit = Union[AddLineItem, UpdateLineItem, DeleteLineItem, UpdateLogistics]


def _added_item(edit: AddLineItem) -> FabricationItem:
    unit_cost = coerce_number(edit.unit_cost)
    qty = parse_quantity(edit.quantity)
    subtotal = unit_cost * qty if qty is not None else coerce_number(edit.subtotal)
    return FabricationItem(
        description=edit.description,
        quantity=str(edit.quantity),
        unit_cost=unit_cost,
        subtotal=subtotal,
    )


def _updated_item(edit: UpdateLineItem) -> FabricationItem:
    qty = parse_quantity(edit.quantity)
    unit_cost = coerce_number(edit.unit_cost)
    if qty is not None and _is_numeric(edit.unit_cost):
        subtotal = unit_cost * qty
    else:
        subtotal = coerce_number(edit.subtotal)
    return FabricationItem(
        description=edit.description,
        quantity=str(edit.quantity),
        unit_cost=unit_cost,
        subtotal=subtotal,
    )


def _check_index(tier_key: str, tier: Tier, index: int) -> None:
    if not 0 <= index < len(tier.fabrication_items):
        raise EditError(
            f"Line item {index} does not exist in tier {tier_key} "
            f"({len(tier.fabrication_items)} items)"
        )


def _edit_tier(tier_key: str, tier: Tier, edit: Edit) -> Tier:
    items = list(tier.fabrication_items)
    if isinstance(edit, AddLineItem):
        items.append(_added_item(edit))
        return replace(tier, fabrication_items=tuple(items))
    if isinstance(edit, UpdateLineItem):
        _check_index(tier_key, tier, edit.index)
        items[edit.index] = _updated_item(edit)
        return replace(tier, fabrication_items=tuple(items))
    if isinstance(edit, DeleteLineItem):
        _check_index(tier_key, tier, edit.index)
        del items[edit.index]
        return replace(tier, fabrication_items=tuple(items))
    if isinstance(edit, UpdateLogistics):
        if edit.category not in LOGISTICS_KEYS:
            raise EditError(f"Unknown logistics category: {edit.category}")
        logistics = dict(tier.logistics)
        logistics[edit.category] = coerce_amount(edit.value)
        return replace(tier, logistics=logistics)
    raise EditError(f"Unsupported edit: {type(edit).__name__}")


def apply_edit(
    document: EstimateDocument,
    tier_key: str,
    edit: Edit,
    now: datetime | None = None,
) -> EstimateDocument:
    """Apply ``edit`` to one tier and return the recomputed document."""

    if tier_key not in document.tiers:
        raise EditError(f"Unknown tier: {tier_key}")
    tier = recompute(_edit_tier(tier_key, document.tiers[tier_key], edit))
    tiers = dict(document.tiers)
    tiers[tier_key] = tier
    LOGGER.debug(
        "Applied %s to %s/%s; grand total now %.2f",
        type(edit).__name__,
        document.id,
        tier_key,
        tier.grand_total,
    )
    return replace(document, tiers=tiers, updated_at=timestamp(now))


def update_details(
    document: EstimateDocument,
    now: datetime | None = None,
    **fields: str,
) -> EstimateDocument:
    unknown = set(fields) - _DETAIL_FIELDS
    if unknown:
        raise EditError(f"Cannot edit fields: {', '.join(sorted(unknown))}")
    if "selected_tier" in fields and fields["selected_tier"] not in TIER_KEYS:
        raise EditError(f"Unknown tier: {fields['selected_tier']}")
    return replace(document, updated_at=timestamp(now), **fields)


__all__ = [
    "coerce_number",
    "coerce_amount",
    "parse_quantity",
    "normalize_logistics",
    "recompute",
    "recompute_document",
    "AddLineItem",
    "UpdateLineItem",
    "DeleteLineItem",
    "UpdateLogistics",
    "Edit",
    "apply_edit",
    "update_details",
]
