"""Transition tables for location cascades and the checkout phase machine."""

from typing import Optional

from services.checkout_service.errors import InvalidTransitionError
from services.checkout_service.models import CheckoutPhase, LocationLevel
from services.checkout_service.schemas.checkout import GeoNode, LocationSelection

# Levels cleared when a given level changes
CASCADE_RESETS: dict[LocationLevel, tuple[LocationLevel, ...]] = {
    LocationLevel.PROVINCE: (LocationLevel.DISTRICT, LocationLevel.WARD),
    LocationLevel.DISTRICT: (LocationLevel.WARD,),
    LocationLevel.WARD: (),
}

_LEVEL_FIELDS: dict[LocationLevel, tuple[str, str]] = {
    LocationLevel.PROVINCE: ("province_id", "province_name"),
    LocationLevel.DISTRICT: ("district_id", "district_name"),
    LocationLevel.WARD: ("ward_code", "ward_name"),
}

PHASE_TRANSITIONS: dict[CheckoutPhase, frozenset[CheckoutPhase]] = {
    CheckoutPhase.IDLE: frozenset({CheckoutPhase.VALIDATING}),
    CheckoutPhase.VALIDATING: frozenset({CheckoutPhase.SUBMITTING, CheckoutPhase.IDLE}),
    CheckoutPhase.SUBMITTING: frozenset({CheckoutPhase.SUCCESS, CheckoutPhase.FAILED}),
    CheckoutPhase.FAILED: frozenset({CheckoutPhase.IDLE}),
    CheckoutPhase.SUCCESS: frozenset({CheckoutPhase.IDLE}),
}


def select_level(
    selection: LocationSelection,
    level: LocationLevel,
    node: Optional[GeoNode],
) -> LocationSelection:
    """Return a new selection with ``level`` set to ``node`` and its descendants cleared."""
    update: dict = {}
    for cleared in (level, *CASCADE_RESETS[level]):
        id_field, name_field = _LEVEL_FIELDS[cleared]
        update[id_field] = None
        update[name_field] = ""
    if node is not None:
        id_field, name_field = _LEVEL_FIELDS[level]
        update[id_field] = node.id
        update[name_field] = node.name
    return selection.model_copy(update=update)


def advance(current: CheckoutPhase, target: CheckoutPhase) -> CheckoutPhase:
    if target not in PHASE_TRANSITIONS[current]:
        raise InvalidTransitionError(current, target)
    return target
