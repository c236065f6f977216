"""Business logic services for product passport verification."""

from .regulation_checkers import RegulationCheckerRegistry, build_default_registry
from .rule_evaluator import RuleEvaluator
from .narrative_verifier import (
    NarrativeRequest,
    NarrativeVerdict,
    NarrativeVerifier,
    LocalNarrativeVerifier,
    VerifierOutcome,
)
from .verification_orchestrator import (
    VerificationOrchestrator,
    VerificationStrategy,
    VerificationDecision,
    WriteBatch,
)

__all__ = [
    "RegulationCheckerRegistry",
    "build_default_registry",
    "RuleEvaluator",
    "NarrativeRequest",
    "NarrativeVerdict",
    "NarrativeVerifier",
    "LocalNarrativeVerifier",
    "VerifierOutcome",
    "VerificationOrchestrator",
    "VerificationStrategy",
    "VerificationDecision",
    "WriteBatch",
]
