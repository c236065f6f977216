"""Digital Product Passport data models used by compliance verification."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class VerificationStatus(Enum):
    """Verification state of a product passport."""
    NOT_SUBMITTED = "Not Submitted"
    PENDING = "Pending"
    VERIFIED = "Verified"
    FAILED = "Failed"

    @property
    def awaits_verification(self) -> bool:
        """True if an automated run may finalize a product in this state."""
        return self in ALLOWED_TRANSITIONS


# Automated transitions only. Resubmission back to Pending happens elsewhere.
ALLOWED_TRANSITIONS = {
    VerificationStatus.PENDING: frozenset(
        {VerificationStatus.VERIFIED, VerificationStatus.FAILED}
    ),
}


@dataclass(frozen=True)
class Material:
    """A material entry in a product's bill of materials."""
    name: str
    percentage: Optional[float] = None
    recycled_content: Optional[float] = None  # % recycled
    origin: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "percentage": self.percentage,
            "recycled_content": self.recycled_content,
            "origin": self.origin,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Material":
        """Create from dictionary."""
        return cls(
            name=data.get("name", ""),
            percentage=data.get("percentage"),
            recycled_content=data.get("recycled_content"),
            origin=data.get("origin"),
        )


@dataclass(frozen=True)
class RohsDeclaration:
    """Restriction of Hazardous Substances declaration."""
    compliant: Optional[bool] = None
    exemption: Optional[str] = None


@dataclass(frozen=True)
class ReachDeclaration:
    """REACH Substances of Very High Concern declaration."""
    svhc_declared: Optional[bool] = None


@dataclass(frozen=True)
class WeeeDeclaration:
    """Waste Electrical and Electronic Equipment scheme registration."""
    registered: Optional[bool] = None
    registration_number: Optional[str] = None


@dataclass(frozen=True)
class EudrDeclaration:
    """EU Deforestation Regulation due-diligence declaration."""
    compliant: Optional[bool] = None
    due_diligence_reference: Optional[str] = None


@dataclass(frozen=True)
class ComplianceDeclarations:
    """Sparse set of per-regulation declarations carried by a product.

    Only families backed by the product schema are modelled. A family that
    has not been declared at all is ``None``.
    """
    rohs: Optional[RohsDeclaration] = None
    reach: Optional[ReachDeclaration] = None
    weee: Optional[WeeeDeclaration] = None
    eudr: Optional[EudrDeclaration] = None

    def to_dict(self) -> dict:
        """Convert to dictionary, omitting undeclared families."""
        families = {
            "rohs": self.rohs,
            "reach": self.reach,
            "weee": self.weee,
            "eudr": self.eudr,
        }
        return {
            key: asdict(value)
            for key, value in families.items()
            if value is not None
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ComplianceDeclarations":
        """Create from dictionary."""
        data = data or {}
        rohs = data.get("rohs")
        reach = data.get("reach")
        weee = data.get("weee")
        eudr = data.get("eudr")
        return cls(
            rohs=RohsDeclaration(
                compliant=rohs.get("compliant"),
                exemption=rohs.get("exemption"),
            ) if rohs is not None else None,
            reach=ReachDeclaration(
                svhc_declared=reach.get("svhc_declared"),
            ) if reach is not None else None,
            weee=WeeeDeclaration(
                registered=weee.get("registered"),
                registration_number=weee.get("registration_number"),
            ) if weee is not None else None,
            eudr=EudrDeclaration(
                compliant=eudr.get("compliant"),
                due_diligence_reference=eudr.get("due_diligence_reference"),
            ) if eudr is not None else None,
        )


@dataclass
class Product:
    """Product passport fields relevant to compliance verification."""
    id: str
    name: str
    category: str
    description: str = ""
    materials: list[Material] = field(default_factory=list)
    sustainability_score: Optional[int] = None  # 0-100
    compliance: ComplianceDeclarations = field(default_factory=ComplianceDeclarations)
    verification_status: VerificationStatus = VerificationStatus.NOT_SUBMITTED

    # Written only by the verification orchestrator
    last_verification_date: Optional[datetime] = None
    compliance_summary: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "materials": [m.to_dict() for m in self.materials],
            "sustainability_score": self.sustainability_score,
            "compliance": self.compliance.to_dict(),
            "verification_status": self.verification_status.value,
            "last_verification_date": (
                self.last_verification_date.isoformat()
                if self.last_verification_date else None
            ),
            "compliance_summary": self.compliance_summary,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Product":
        """Create from dictionary."""
        last_verified = data.get("last_verification_date")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            category=data.get("category", ""),
            description=data.get("description", ""),
            materials=[Material.from_dict(m) for m in data.get("materials", [])],
            sustainability_score=data.get("sustainability_score"),
            compliance=ComplianceDeclarations.from_dict(data.get("compliance")),
            verification_status=VerificationStatus(
                data.get("verification_status", VerificationStatus.NOT_SUBMITTED.value)
            ),
            last_verification_date=(
                datetime.fromisoformat(last_verified) if last_verified else None
            ),
            compliance_summary=data.get("compliance_summary"),
        )


@dataclass(frozen=True)
class ProfileRules:
    """Fixed rule shapes a compliance profile can enforce."""
    min_sustainability_score: Optional[int] = None
    required_keywords: tuple[str, ...] = ()
    banned_keywords: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        """Convert to dictionary, omitting unset rules."""
        rules: dict[str, Any] = {}
        if self.min_sustainability_score is not None:
            rules["min_sustainability_score"] = self.min_sustainability_score
        if self.required_keywords:
            rules["required_keywords"] = list(self.required_keywords)
        if self.banned_keywords:
            rules["banned_keywords"] = list(self.banned_keywords)
        return rules

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ProfileRules":
        """Create from dictionary."""
        data = data or {}
        return cls(
            min_sustainability_score=data.get("min_sustainability_score"),
            required_keywords=tuple(data.get("required_keywords") or ()),
            banned_keywords=tuple(data.get("banned_keywords") or ()),
        )


@dataclass(frozen=True)
class ComplianceProfile:
    """Named, category-scoped rule set a product is verified against."""
    id: str
    name: str
    category: str  # Joins to Product.category
    regulations: tuple[str, ...] = ()  # e.g., ("RoHS", "REACH")
    rules: ProfileRules = field(default_factory=ProfileRules)
    description: str = ""
    jurisdiction: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "regulations": list(self.regulations),
            "rules": self.rules.to_dict(),
            "description": self.description,
            "jurisdiction": self.jurisdiction,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ComplianceProfile":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            category=data.get("category", ""),
            regulations=tuple(data.get("regulations") or ()),
            rules=ProfileRules.from_dict(data.get("rules")),
            description=data.get("description", ""),
            jurisdiction=data.get("jurisdiction"),
        )


@dataclass(frozen=True)
class ComplianceGap:
    """A single violated rule."""
    regulation: str
    issue: str

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {"regulation": self.regulation, "issue": self.issue}

    @classmethod
    def from_dict(cls, data: dict) -> "ComplianceGap":
        """Create from dictionary."""
        return cls(regulation=data.get("regulation", ""), issue=data.get("issue", ""))


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of evaluating one product against one profile."""
    gaps: tuple[ComplianceGap, ...] = ()

    @property
    def is_compliant(self) -> bool:
        """A product is compliant iff no gaps were found."""
        return not self.gaps

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "is_compliant": self.is_compliant,
            "gaps": [g.to_dict() for g in self.gaps],
        }


@dataclass(frozen=True)
class ProductUpdate:
    """Staged state change for one product, committed in a batch."""
    product_id: str
    verification_status: VerificationStatus
    last_verification_date: datetime
    compliance_summary: str

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "verification_status": self.verification_status.value,
            "last_verification_date": self.last_verification_date.isoformat(),
            "compliance_summary": self.compliance_summary,
        }


@dataclass(frozen=True)
class AuditEvent:
    """Immutable record of a single decision."""
    action: str  # e.g., "product.verify"
    entity_id: str
    user_id: str  # "system" for automated runs
    details: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "action": self.action,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuditEvent":
        """Create from dictionary."""
        return cls(
            action=data["action"],
            entity_id=data["entity_id"],
            user_id=data["user_id"],
            details=data.get("details", {}),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass
class VerificationRunSummary:
    """Counts returned by a verification run."""
    processed: int = 0
    passed: int = 0
    failed: int = 0

    def record(self, status: VerificationStatus) -> None:
        """Count one finalized product."""
        self.processed += 1
        if status == VerificationStatus.VERIFIED:
            self.passed += 1
        else:
            self.failed += 1

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "processed": self.processed,
            "passed": self.passed,
            "failed": self.failed,
        }
