"""
Repair Item Aggregator

Rolls the repair item tree of each health check up into financial and RAG
totals.

Rules:
- Top-level items (no parent) are the unit for money and outcomes. A group's
  children are already priced into the group and are never summed again.
- Non-group items (standalone or child) are the unit for labour/parts status.
- Authorised = outcome_status 'authorised' OR customer_approved True.
- A group that is not itself authorised counts as authorised when any of its
  children are, valued at the sum of those children only.
- Effective total: selected option totals, else item totals, else
  (labour + parts) * (1 + VAT) when total_inc_vat is 0.

All monetary values are pounds (inc. VAT), rounded only at output.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from app import settings
from app.models.enums import RAG_PRECEDENCE, OutcomeStatus, RagStatus
from app.models.records import RepairItem, RepairOption

logger = logging.getLogger(__name__)

RAG_KEYS = [RagStatus.RED.value, RagStatus.AMBER.value, RagStatus.GREEN.value]


# ============== Dataclasses ==============

@dataclass
class RagTally:
    """Identified vs authorised figures for one severity"""
    identified_count: int = 0
    authorised_count: int = 0
    identified_value: float = 0.0
    authorised_value: float = 0.0


@dataclass
class HealthCheckRollup:
    """Per health check repair item rollup"""
    health_check_id: str
    identified_total: float = 0.0
    authorised_total: float = 0.0
    declined_total: float = 0.0
    deferred_total: float = 0.0
    pending_total: float = 0.0
    authorised_item_count: int = 0
    rag: Dict[str, RagTally] = field(default_factory=lambda: {k: RagTally() for k in RAG_KEYS})
    authorised_item_ids: Set[str] = field(default_factory=set)
    non_group_items: List[RepairItem] = field(default_factory=list)
    top_level_items: List[RepairItem] = field(default_factory=list)

    @property
    def has_authorised_items(self) -> bool:
        return bool(self.authorised_item_ids)


# ============== Item Helpers ==============

def is_item_authorised(item: RepairItem) -> bool:
    """Canonical authorisation predicate"""
    return item.outcome_status == OutcomeStatus.AUTHORISED.value or item.customer_approved is True


def derive_rag_status(rag_statuses: Iterable[Optional[str]]) -> Optional[str]:
    """Worst linked result wins: red > amber > green. No links gives None."""
    derived = None
    for rag in rag_statuses:
        if RAG_PRECEDENCE.get(rag, 0) > RAG_PRECEDENCE.get(derived, 0):
            derived = rag
    return derived


def effective_total(
    item: RepairItem,
    option: Optional[RepairOption] = None,
    vat_rate: float = settings.VAT_RATE
) -> float:
    """Item total inc. VAT, preferring the selected option's figures."""
    total_inc_vat = item.total_inc_vat
    labour_total = item.labour_total
    parts_total = item.parts_total
    if option is not None:
        if option.total_inc_vat is not None:
            total_inc_vat = option.total_inc_vat
        if option.labour_total is not None:
            labour_total = option.labour_total
        if option.parts_total is not None:
            parts_total = option.parts_total

    total = total_inc_vat or 0.0
    if total == 0:
        subtotal = (labour_total or 0.0) + (parts_total or 0.0)
        if subtotal != 0:
            total = subtotal * (1 + vat_rate)
    return total


def empty_rollup(health_check_id: str) -> HealthCheckRollup:
    return HealthCheckRollup(health_check_id=health_check_id)


def rollup_for(rollups: Dict[str, HealthCheckRollup], health_check_id: str) -> HealthCheckRollup:
    """Rollup for a health check, empty when it had no repair items."""
    return rollups.get(health_check_id) or empty_rollup(health_check_id)


# ============== Aggregation ==============

def _dedupe(items: Iterable[RepairItem]) -> List[RepairItem]:
    seen: Set[str] = set()
    result = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        result.append(item)
    return result


def aggregate_repair_items(
    items: Iterable[RepairItem],
    options: Optional[Iterable[RepairOption]] = None,
    vat_rate: float = settings.VAT_RATE
) -> Dict[str, HealthCheckRollup]:
    """
    Build per health check rollups from a flat list of repair items.

    Items without a health check, and children whose parent is not in the
    supplied set, are skipped. Never raises on incomplete data.
    """
    options_by_id = {opt.id: opt for opt in (options or [])}
    records = [item for item in _dedupe(items) if item.health_check_id]

    skipped = 0
    by_id = {item.id: item for item in records}
    children_by_parent: Dict[str, List[RepairItem]] = {}
    valid: List[RepairItem] = []
    for item in records:
        if item.parent_id:
            if item.parent_id not in by_id:
                skipped += 1
                logger.debug(f"[Aggregator] Skipping orphaned repair item {item.id} (parent {item.parent_id})")
                continue
            children_by_parent.setdefault(item.parent_id, []).append(item)
        valid.append(item)

    if skipped:
        logger.debug(f"[Aggregator] Skipped {skipped} orphaned repair items")

    def _total(item: RepairItem) -> float:
        option = options_by_id.get(item.selected_option_id) if item.selected_option_id else None
        return effective_total(item, option, vat_rate)

    rollups: Dict[str, HealthCheckRollup] = {}

    for item in valid:
        rollup = rollups.get(item.health_check_id)
        if rollup is None:
            rollup = rollups[item.health_check_id] = empty_rollup(item.health_check_id)

        if item.is_deleted:
            continue
        if item.parent_id and by_id[item.parent_id].is_deleted:
            continue

        if not item.is_group:
            rollup.non_group_items.append(item)

        # Only top-level items carry money
        if item.parent_id:
            continue

        rollup.top_level_items.append(item)
        value = _total(item)
        rag = derive_rag_status(item.rag_statuses)

        authorised = is_item_authorised(item)
        authorised_value = value

        # Partially authorised group: value is the authorised children only
        if item.is_group and not authorised:
            authorised_children = [
                child for child in children_by_parent.get(item.id, [])
                if not child.is_deleted and is_item_authorised(child)
            ]
            if authorised_children:
                authorised = True
                authorised_value = sum(_total(child) for child in authorised_children)

        rollup.identified_total += value
        if rag in rollup.rag:
            rollup.rag[rag].identified_count += 1
            rollup.rag[rag].identified_value += value

        if authorised:
            rollup.authorised_total += authorised_value
            rollup.authorised_item_count += 1
            rollup.authorised_item_ids.add(item.id)
            if rag in rollup.rag:
                rollup.rag[rag].authorised_count += 1
                rollup.rag[rag].authorised_value += authorised_value
        elif item.outcome_status == OutcomeStatus.DECLINED.value:
            rollup.declined_total += value
        elif item.outcome_status == OutcomeStatus.DEFERRED.value:
            rollup.deferred_total += value
        else:
            rollup.pending_total += value

    return rollups


def sum_rollups(rollups: Iterable[HealthCheckRollup]) -> HealthCheckRollup:
    """Combine several rollups into one (items are not carried over)."""
    combined = empty_rollup("*")
    for r in rollups:
        combined.identified_total += r.identified_total
        combined.authorised_total += r.authorised_total
        combined.declined_total += r.declined_total
        combined.deferred_total += r.deferred_total
        combined.pending_total += r.pending_total
        combined.authorised_item_count += r.authorised_item_count
        for key in RAG_KEYS:
            tally = combined.rag[key]
            tally.identified_count += r.rag[key].identified_count
            tally.authorised_count += r.rag[key].authorised_count
            tally.identified_value += r.rag[key].identified_value
            tally.authorised_value += r.rag[key].authorised_value
    return combined


def rag_breakdown_dict(rollup: HealthCheckRollup) -> Dict[str, Dict]:
    """Serialize RAG tallies with currency rounding."""
    return {
        key: {
            "identified_value": round(tally.identified_value, 2),
            "authorised_value": round(tally.authorised_value, 2),
            "item_count": tally.identified_count,
            "authorised_count": tally.authorised_count,
        }
        for key, tally in rollup.rag.items()
    }


# ============== Loading ==============

async def load_rollups(store, health_check_ids: List[str]) -> Dict[str, HealthCheckRollup]:
    """
    Fetch repair items (and selected options) for health checks and aggregate.

    Ids without rows simply have no rollup; use rollup_for() to read.
    """
    if not health_check_ids:
        return {}
    items = await store.list_repair_items(health_check_ids)
    option_ids = [item.selected_option_id for item in items if item.selected_option_id]
    options = await store.list_repair_options(option_ids) if option_ids else []
    return aggregate_repair_items(items, options)
