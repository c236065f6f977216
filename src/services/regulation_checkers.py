"""Regulation checker registry.

Each checker inspects exactly one declaration family on a product and
returns a gap when the family is not declared as compliant. The registry is
a fixed lookup table keyed by lower-cased regulation name; build it once with
``build_default_registry`` and hand it to the rule evaluator.

Only families backed by the product schema are registered. Battery, PFAS,
conflict-minerals and ESPR checks have no declaration fields to inspect and
are left out until the schema defines them.
"""

from collections.abc import Callable, Iterator, Mapping
from types import MappingProxyType
from typing import Optional

from ..models.passport import ComplianceDeclarations, ComplianceGap


RegulationChecker = Callable[[ComplianceDeclarations], Optional[ComplianceGap]]


def check_rohs(compliance: ComplianceDeclarations) -> Optional[ComplianceGap]:
    """RoHS: restricted substances declaration."""
    if compliance.rohs is not None and compliance.rohs.compliant is True:
        return None
    return ComplianceGap(
        regulation="RoHS",
        issue="RoHS is not declared as compliant: no restricted substances declaration.",
    )


def check_reach(compliance: ComplianceDeclarations) -> Optional[ComplianceGap]:
    """REACH: Substances of Very High Concern declaration."""
    if compliance.reach is not None and compliance.reach.svhc_declared is True:
        return None
    return ComplianceGap(
        regulation="REACH",
        issue=(
            "REACH is not declared as compliant: Substances of Very High "
            "Concern (SVHC) have not been declared."
        ),
    )


def check_weee(compliance: ComplianceDeclarations) -> Optional[ComplianceGap]:
    """WEEE: registration with a compliance scheme."""
    if compliance.weee is not None and compliance.weee.registered is True:
        return None
    return ComplianceGap(
        regulation="WEEE",
        issue="WEEE is not declared as compliant: product is not registered with a WEEE scheme.",
    )


def check_eudr(compliance: ComplianceDeclarations) -> Optional[ComplianceGap]:
    """EUDR: deforestation-free declaration."""
    if compliance.eudr is not None and compliance.eudr.compliant is True:
        return None
    return ComplianceGap(
        regulation="EUDR",
        issue=(
            "EUDR is not declared as compliant: no valid EU Deforestation-Free "
            "Regulation declaration."
        ),
    )


class RegulationCheckerRegistry(Mapping):
    """Read-only mapping of lower-cased regulation name to checker."""

    def __init__(self, checkers: Mapping[str, RegulationChecker]):
        """Initialize the registry.

        Args:
            checkers: Regulation name to checker. Names are lower-cased.
        """
        self._checkers = MappingProxyType(
            {name.lower(): checker for name, checker in checkers.items()}
        )

    def __getitem__(self, name: str) -> RegulationChecker:
        return self._checkers[name.lower()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._checkers)

    def __len__(self) -> int:
        return len(self._checkers)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._checkers

    def get(self, name: str, default: Optional[RegulationChecker] = None) -> Optional[RegulationChecker]:
        """Look up a checker by regulation name, ignoring case."""
        return self._checkers.get(name.lower(), default)


DEFAULT_CHECKERS: dict[str, RegulationChecker] = {
    "RoHS": check_rohs,
    "REACH": check_reach,
    "WEEE": check_weee,
    "EUDR": check_eudr,
}

# Display names for reference listings
REGULATION_NAMES = tuple(DEFAULT_CHECKERS)


def build_default_registry() -> RegulationCheckerRegistry:
    """Build the registry of schema-backed regulation checkers."""
    return RegulationCheckerRegistry(DEFAULT_CHECKERS)
