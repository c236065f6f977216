"""Data models for product passport verification."""

from .passport import (
    VerificationStatus,
    Material,
    RohsDeclaration,
    ReachDeclaration,
    WeeeDeclaration,
    EudrDeclaration,
    ComplianceDeclarations,
    Product,
    ProfileRules,
    ComplianceProfile,
    ComplianceGap,
    EvaluationResult,
    ProductUpdate,
    AuditEvent,
    VerificationRunSummary,
)

__all__ = [
    "VerificationStatus",
    "Material",
    "RohsDeclaration",
    "ReachDeclaration",
    "WeeeDeclaration",
    "EudrDeclaration",
    "ComplianceDeclarations",
    "Product",
    "ProfileRules",
    "ComplianceProfile",
    "ComplianceGap",
    "EvaluationResult",
    "ProductUpdate",
    "AuditEvent",
    "VerificationRunSummary",
]
