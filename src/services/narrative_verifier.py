"""Narrative verification contract.

The narrative verifier is an external text-generation service that reads a
product record and a profile's rules and answers with a verdict plus a short
human-readable summary. This module holds the request/response types, the
abstract service, the explicit result type the orchestrator works with, and
an offline implementation used when no service is configured.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from ..models.passport import ComplianceGap, ComplianceProfile, Product
from .rule_evaluator import RuleEvaluator


@dataclass(frozen=True)
class NarrativeRequest:
    """Input sent to the narrative verifier."""
    product_name: str
    product_information: str  # JSON of the product record
    compliance_path_name: str
    compliance_rules: str  # JSON of the profile rules and regulations

    @classmethod
    def for_product(cls, product: Product, profile: ComplianceProfile) -> "NarrativeRequest":
        """Build the request for a product and its resolved profile."""
        rules = profile.rules.to_dict()
        rules["regulations"] = list(profile.regulations)
        return cls(
            product_name=product.name,
            product_information=json.dumps(product.to_dict(), sort_keys=True),
            compliance_path_name=profile.name,
            compliance_rules=json.dumps(rules, sort_keys=True),
        )

    def to_dict(self) -> dict:
        """Convert to the service's wire format."""
        return {
            "productName": self.product_name,
            "productInformation": self.product_information,
            "compliancePathName": self.compliance_path_name,
            "complianceRules": self.compliance_rules,
        }


@dataclass(frozen=True)
class NarrativeVerdict:
    """Verdict returned by the narrative verifier."""
    is_compliant: bool
    compliance_summary: str
    gaps: tuple[ComplianceGap, ...] = ()

    def to_dict(self) -> dict:
        """Convert to the service's wire format."""
        return {
            "isCompliant": self.is_compliant,
            "complianceSummary": self.compliance_summary,
            "gaps": [g.to_dict() for g in self.gaps],
        }


@dataclass(frozen=True)
class VerifierOutcome:
    """Result of consulting the narrative verifier: a verdict or a failure."""
    verdict: Optional[NarrativeVerdict] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.verdict is not None

    @classmethod
    def success(cls, verdict: NarrativeVerdict) -> "VerifierOutcome":
        return cls(verdict=verdict)

    @classmethod
    def failure(cls, error: str) -> "VerifierOutcome":
        return cls(error=error)


class NarrativeVerifier(ABC):
    """Service producing a compliance verdict and summary from free text."""

    @abstractmethod
    def verify(self, request: NarrativeRequest) -> NarrativeVerdict:
        """Verify one product.

        Raises:
            NarrativeVerifierError: If the service fails or answers with
                output that cannot be parsed.
        """


@dataclass
class LocalNarrativeVerifier(NarrativeVerifier):
    """Offline verifier that phrases the deterministic evaluation as text.

    Used in development and whenever no text-generation service is
    configured. It re-reads the product and rules from the request so it
    honours the same contract as a remote service.
    """
    evaluator: RuleEvaluator = field(default_factory=RuleEvaluator)

    def verify(self, request: NarrativeRequest) -> NarrativeVerdict:
        product = Product.from_dict(json.loads(request.product_information))
        rules = json.loads(request.compliance_rules)
        profile = ComplianceProfile.from_dict({
            "id": request.compliance_path_name,
            "name": request.compliance_path_name,
            "category": product.category,
            "regulations": rules.pop("regulations", []),
            "rules": rules,
        })
        result = self.evaluator.evaluate(product, profile)
        return NarrativeVerdict(
            is_compliant=result.is_compliant,
            compliance_summary=summarize_gaps(
                request.product_name, request.compliance_path_name, result.gaps
            ),
            gaps=result.gaps,
        )


def summarize_gaps(
    product_name: str,
    profile_name: str,
    gaps: tuple[ComplianceGap, ...],
) -> str:
    """Render a short summary of a rule evaluation."""
    if not gaps:
        return f"{product_name} meets all rules of '{profile_name}'."
    noun = "gap" if len(gaps) == 1 else "gaps"
    issues = " ".join(g.issue for g in gaps)
    return (
        f"{product_name} does not meet '{profile_name}': "
        f"{len(gaps)} compliance {noun} found. {issues}"
    )
