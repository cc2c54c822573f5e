"""Compatibility Resolver — which blood groups may supply a recipient group.

Invariants:
    - compatible_sources is total: unknown input yields () — never a wildcard
    - Order is preference order: identical group first, O- (universal source) last
    - AB+ (universal recipient) accepts all 8 groups

Design Decisions:
    - Static table keyed by BloodGroup: transfusion rules are fixed, not configuration
    - parse_blood_group normalizes whitespace and case before lookup
"""

from bloodmatch.core.domain_types import BloodGroup
from bloodmatch.core.errors import FieldValidationError

_O_NEG, _O_POS = BloodGroup.O_NEG, BloodGroup.O_POS
_A_NEG, _A_POS = BloodGroup.A_NEG, BloodGroup.A_POS
_B_NEG, _B_POS = BloodGroup.B_NEG, BloodGroup.B_POS
_AB_NEG, _AB_POS = BloodGroup.AB_NEG, BloodGroup.AB_POS

SOURCES_BY_RECIPIENT: dict[BloodGroup, tuple[BloodGroup, ...]] = {
    _O_NEG: (_O_NEG,),
    _O_POS: (_O_POS, _O_NEG),
    _A_NEG: (_A_NEG, _O_NEG),
    _A_POS: (_A_POS, _A_NEG, _O_POS, _O_NEG),
    _B_NEG: (_B_NEG, _O_NEG),
    _B_POS: (_B_POS, _B_NEG, _O_POS, _O_NEG),
    _AB_NEG: (_AB_NEG, _A_NEG, _B_NEG, _O_NEG),
    _AB_POS: (_AB_POS, _AB_NEG, _A_POS, _A_NEG, _B_POS, _B_NEG, _O_POS, _O_NEG),
}


def compatible_sources(recipient: BloodGroup | str) -> tuple[BloodGroup, ...]:
    """Ordered groups permitted to supply `recipient`; () if unknown."""
    try:
        group = BloodGroup(recipient)
    except ValueError:
        return ()
    return SOURCES_BY_RECIPIENT[group]


def can_supply(source: BloodGroup | str, recipient: BloodGroup | str) -> bool:
    try:
        return BloodGroup(source) in compatible_sources(recipient)
    except ValueError:
        return False


def parse_blood_group(raw: str | None, field: str = "blood_group") -> BloodGroup:
    """Normalize user input (' o- ' -> O-). Raises FieldValidationError if unknown."""
    value = (raw or "").strip().upper()
    try:
        return BloodGroup(value)
    except ValueError:
        raise FieldValidationError(
            f"Unknown blood group '{raw}'", field,
        ) from None
