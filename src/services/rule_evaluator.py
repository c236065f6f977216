"""Deterministic rule evaluation of a product against a compliance profile."""

from typing import Optional

from ..models.passport import (
    ComplianceGap,
    ComplianceProfile,
    EvaluationResult,
    Product,
)
from .regulation_checkers import RegulationCheckerRegistry, build_default_registry


class RuleEvaluator:
    """Scores products against compliance profiles without any I/O."""

    def __init__(self, registry: Optional[RegulationCheckerRegistry] = None):
        """Initialize the evaluator.

        Args:
            registry: Regulation checkers to consult. Defaults to the
                schema-backed set.
        """
        self.registry = registry if registry is not None else build_default_registry()

    def evaluate(self, product: Product, profile: ComplianceProfile) -> EvaluationResult:
        """Evaluate every applicable rule and collect all gaps.

        Rules are independent: a failing rule never prevents the others from
        being checked, so a product violating N rules yields N gaps.

        Args:
            product: Product to evaluate.
            profile: Compliance profile providing the rules.

        Returns:
            EvaluationResult; compliant iff no gaps were found.
        """
        gaps: list[ComplianceGap] = []
        gaps.extend(self._check_score_floor(product, profile))
        gaps.extend(self._check_banned_materials(product, profile))
        gaps.extend(self._check_required_materials(product, profile))
        gaps.extend(self._check_regulations(product, profile))
        return EvaluationResult(gaps=tuple(gaps))

    def _check_score_floor(
        self,
        product: Product,
        profile: ComplianceProfile,
    ) -> list[ComplianceGap]:
        minimum = profile.rules.min_sustainability_score
        if minimum is None:
            return []

        score = product.sustainability_score
        if score is not None and score >= minimum:
            return []

        actual = score if score is not None else "N/A"
        return [
            ComplianceGap(
                regulation=profile.name,
                issue=(
                    f"Product sustainability score of {actual} is below the "
                    f"required minimum of {minimum}."
                ),
            )
        ]

    def _check_banned_materials(
        self,
        product: Product,
        profile: ComplianceProfile,
    ) -> list[ComplianceGap]:
        banned = [k.lower() for k in profile.rules.banned_keywords]
        if not banned:
            return []

        # One gap per offending material, however many keywords it matches
        return [
            ComplianceGap(
                regulation=profile.name,
                issue=f"Product contains a banned material: '{material.name}'.",
            )
            for material in product.materials
            if any(keyword in material.name.lower() for keyword in banned)
        ]

    def _check_required_materials(
        self,
        product: Product,
        profile: ComplianceProfile,
    ) -> list[ComplianceGap]:
        required = profile.rules.required_keywords
        if not required:
            return []

        lowered = [k.lower() for k in required]
        has_required = any(
            keyword in material.name.lower()
            for material in product.materials
            for keyword in lowered
        )
        if has_required:
            return []

        return [
            ComplianceGap(
                regulation=profile.name,
                issue=(
                    "Product is missing a required material. "
                    f"Must include one of: {', '.join(required)}."
                ),
            )
        ]

    def _check_regulations(
        self,
        product: Product,
        profile: ComplianceProfile,
    ) -> list[ComplianceGap]:
        gaps = []
        # Each regulation is checked once, however often or in whatever case it is listed
        for regulation in dict.fromkeys(r.lower() for r in profile.regulations):
            checker = self.registry.get(regulation)
            if checker is None:
                # No checker registered (e.g. GOTS, GPSR)
                continue
            gap = checker(product.compliance)
            if gap is not None:
                gaps.append(gap)
        return gaps
