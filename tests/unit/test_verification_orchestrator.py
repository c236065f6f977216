"""Tests for the scheduled verification orchestrator."""

import threading
from datetime import datetime, timezone

import pytest
from src.data.memory import InMemoryAuditLog, InMemoryPassportStore
from src.exceptions import ConfigurationError, NarrativeVerifierError, PersistenceError
from src.models.passport import (
    ComplianceDeclarations,
    ComplianceProfile,
    Material,
    Product,
    ProfileRules,
    RohsDeclaration,
    VerificationStatus,
)
from src.services.narrative_verifier import NarrativeVerdict, NarrativeVerifier
from src.services.verification_orchestrator import (
    AUTOMATED_CHECK_FAILED,
    VERIFY_ACTION,
    VerificationOrchestrator,
    VerificationStrategy,
)


NOW = datetime(2026, 10, 19, 2, 0, tzinfo=timezone.utc)


class ScriptedVerifier(NarrativeVerifier):
    """Verifier that approves everything except scripted failures."""

    def __init__(self, raise_for=(), reject=(), block_for=()):
        self.raise_for = set(raise_for)
        self.reject = set(reject)
        self.block_for = set(block_for)
        self.release = threading.Event()
        self.calls = []

    def verify(self, request):
        self.calls.append(request.product_name)
        if request.product_name in self.block_for:
            self.release.wait(5)
        if request.product_name in self.raise_for:
            raise NarrativeVerifierError("service unavailable")
        compliant = request.product_name not in self.reject
        return NarrativeVerdict(
            is_compliant=compliant,
            compliance_summary=f"{request.product_name}: {'ok' if compliant else 'gaps found'}",
        )


class FailingCommitStore(InMemoryPassportStore):
    """Store whose batch commit always fails."""

    def batch_update(self, updates):
        raise OSError("disk full")


class FailingAuditLog(InMemoryAuditLog):
    """Audit log that rejects every event."""

    def append(self, event):
        raise ConnectionError("audit store offline")


def make_product(index, category="Electronics", status=VerificationStatus.PENDING):
    return Product(
        id=f"prod-{index:03d}",
        name=f"Product {index}",
        category=category,
        materials=[Material(name="Recycled Steel")],
        sustainability_score=80,
        compliance=ComplianceDeclarations(rohs=RohsDeclaration(compliant=True)),
        verification_status=status,
    )


@pytest.fixture
def profiles():
    """Profiles for two categories."""
    return [
        ComplianceProfile(
            id="cp-electronics",
            name="EU Electronics",
            category="Electronics",
            regulations=("RoHS",),
            rules=ProfileRules(min_sustainability_score=60, banned_keywords=("Lead",)),
        ),
        ComplianceProfile(
            id="cp-fashion",
            name="Organic Textiles",
            category="Fashion",
            rules=ProfileRules(required_keywords=("Organic Cotton",)),
        ),
    ]


@pytest.fixture
def audit_log():
    return InMemoryAuditLog()


def make_orchestrator(store, audit_log, verifier, **kwargs):
    return VerificationOrchestrator(
        profile_store=store,
        product_store=store,
        audit_sink=audit_log,
        narrative_verifier=verifier,
        clock=lambda: NOW,
        **kwargs,
    )


class TestVerificationRun:
    """Test cases for a full verification run."""

    def test_all_products_verified(self, profiles, audit_log):
        """Test a clean run verifies and commits every product."""
        store = InMemoryPassportStore(profiles, [make_product(i) for i in range(3)])
        summary = make_orchestrator(store, audit_log, ScriptedVerifier()).run()

        assert summary.to_dict() == {"processed": 3, "passed": 3, "failed": 0}
        assert store.commit_count == 1
        product = store.get_product("prod-000")
        assert product.verification_status == VerificationStatus.VERIFIED
        assert product.last_verification_date == NOW
        assert product.compliance_summary == "Product 0: ok"

    def test_missing_profile_fails_only_that_product(self, profiles, audit_log):
        """Test a product with an unknown category fails without the verifier."""
        products = [make_product(i) for i in range(9)] + [make_product(9, category="Toys")]
        store = InMemoryPassportStore(profiles, products)
        verifier = ScriptedVerifier()

        summary = make_orchestrator(store, audit_log, verifier).run()

        assert summary.processed == 10
        assert summary.passed == 9
        assert summary.failed == 1
        assert store.commit_count == 1
        toy = store.get_product("prod-009")
        assert toy.verification_status == VerificationStatus.FAILED
        assert "Toys" in toy.compliance_summary
        assert "Product 9" not in verifier.calls
        assert len(verifier.calls) == 9

    def test_verifier_error_is_isolated(self, profiles, audit_log):
        """Test a throwing verifier fails one product and the run continues."""
        store = InMemoryPassportStore(profiles, [make_product(i) for i in range(10)])
        verifier = ScriptedVerifier(raise_for={"Product 4"})

        summary = make_orchestrator(store, audit_log, verifier).run()

        assert summary.to_dict() == {"processed": 10, "passed": 9, "failed": 1}
        assert store.commit_count == 1
        failed = store.get_product("prod-004")
        assert failed.verification_status == VerificationStatus.FAILED
        assert failed.compliance_summary == AUTOMATED_CHECK_FAILED
        for i in (0, 3, 5, 9):
            assert store.get_product(f"prod-{i:03d}").verification_status == VerificationStatus.VERIFIED

    def test_verifier_timeout_is_isolated(self, profiles, audit_log):
        """Test a hung verifier call times out without blocking later products."""
        store = InMemoryPassportStore(profiles, [make_product(i) for i in range(3)])
        verifier = ScriptedVerifier(block_for={"Product 0"})

        try:
            summary = make_orchestrator(
                store, audit_log, verifier, verifier_timeout=0.05
            ).run()
        finally:
            verifier.release.set()

        assert summary.to_dict() == {"processed": 3, "passed": 2, "failed": 1}
        assert store.get_product("prod-000").compliance_summary == AUTOMATED_CHECK_FAILED
        assert store.get_product("prod-001").verification_status == VerificationStatus.VERIFIED

    def test_malformed_product_is_isolated(self, profiles, audit_log):
        """Test a product that breaks evaluation fails alone and the batch commits."""
        broken = make_product(1)
        broken.materials.append(Material(name=None))
        store = InMemoryPassportStore(profiles, [make_product(0), broken, make_product(2)])

        summary = make_orchestrator(store, audit_log, ScriptedVerifier()).run()

        assert summary.to_dict() == {"processed": 3, "passed": 2, "failed": 1}
        assert store.commit_count == 1
        product = store.get_product("prod-001")
        assert product.verification_status == VerificationStatus.FAILED
        assert product.compliance_summary == AUTOMATED_CHECK_FAILED
        assert [e.entity_id for e in audit_log.list_events()] == ["prod-000", "prod-001", "prod-002"]

    def test_narrative_verdict_is_final(self, profiles, audit_log):
        """Test the narrative verdict decides under the default strategy."""
        store = InMemoryPassportStore(profiles, [make_product(1)])
        summary = make_orchestrator(
            store, audit_log, ScriptedVerifier(reject={"Product 1"})
        ).run()

        assert summary.failed == 1
        product = store.get_product("prod-001")
        assert product.verification_status == VerificationStatus.FAILED
        assert product.compliance_summary == "Product 1: gaps found"

    def test_no_profiles_is_fatal(self, audit_log):
        """Test a run without profiles aborts before touching products."""
        store = InMemoryPassportStore([], [make_product(1)])

        with pytest.raises(ConfigurationError):
            make_orchestrator(store, audit_log, ScriptedVerifier()).run()

        assert store.commit_count == 0
        assert audit_log.list_events() == []
        assert store.get_product("prod-001").verification_status == VerificationStatus.PENDING

    def test_no_pending_products(self, profiles, audit_log):
        """Test an empty queue returns zero counts."""
        store = InMemoryPassportStore(
            profiles, [make_product(1, status=VerificationStatus.VERIFIED)]
        )
        summary = make_orchestrator(store, audit_log, ScriptedVerifier()).run()

        assert summary.to_dict() == {"processed": 0, "passed": 0, "failed": 0}
        assert audit_log.list_events() == []

    def test_non_pending_product_is_skipped(self, profiles, audit_log):
        """Test finalized products handed over by the store are not re-decided."""

        class LeakyStore(InMemoryPassportStore):
            def list_pending_products(self):
                return [make_product(1), make_product(2, status=VerificationStatus.VERIFIED)]

        store = LeakyStore(profiles, [make_product(1), make_product(2, status=VerificationStatus.VERIFIED)])
        summary = make_orchestrator(store, audit_log, ScriptedVerifier()).run()

        assert summary.processed == 1
        assert [e.entity_id for e in audit_log.list_events()] == ["prod-001"]

    def test_commit_failure_is_fatal(self, profiles, audit_log):
        """Test a failed commit raises and leaves products pending."""
        store = FailingCommitStore(profiles, [make_product(i) for i in range(2)])

        with pytest.raises(PersistenceError) as exc_info:
            make_orchestrator(store, audit_log, ScriptedVerifier()).run()

        assert isinstance(exc_info.value.__cause__, OSError)
        assert store.get_product("prod-000").verification_status == VerificationStatus.PENDING
        # Audit events are not part of the batch
        assert len(audit_log.list_events()) == 2

    def test_rerun_after_commit_failure(self, profiles, audit_log):
        """Test the same products are picked up again on the next run."""
        products = [make_product(i) for i in range(2)]
        failing = FailingCommitStore(profiles, products)
        with pytest.raises(PersistenceError):
            make_orchestrator(failing, audit_log, ScriptedVerifier()).run()

        store = InMemoryPassportStore(profiles, failing.list_pending_products())
        summary = make_orchestrator(store, audit_log, ScriptedVerifier()).run()
        assert summary.processed == 2

    def test_audit_failure_is_not_fatal(self, profiles, caplog):
        """Test audit write errors are logged and ignored."""
        store = InMemoryPassportStore(profiles, [make_product(i) for i in range(2)])

        summary = make_orchestrator(store, FailingAuditLog(), ScriptedVerifier()).run()

        assert summary.to_dict() == {"processed": 2, "passed": 2, "failed": 0}
        assert store.commit_count == 1
        assert "Failed to append audit event" in caplog.text


class TestAuditTrail:
    """Test cases for audit events written by a run."""

    def test_one_event_per_product(self, profiles, audit_log):
        """Test every decision yields exactly one audit event."""
        products = [make_product(i) for i in range(4)] + [make_product(4, category="Toys")]
        store = InMemoryPassportStore(profiles, products)
        make_orchestrator(store, audit_log, ScriptedVerifier(raise_for={"Product 2"})).run()

        events = audit_log.list_events()
        assert sorted(e.entity_id for e in events) == [p.id for p in products]
        assert all(e.action == VERIFY_ACTION for e in events)
        assert all(e.user_id == "system" for e in events)

    def test_event_matches_persisted_status(self, profiles, audit_log):
        """Test the audit details carry the same verdict as the update."""
        products = [make_product(1), make_product(2, category="Toys")]
        store = InMemoryPassportStore(profiles, products)
        make_orchestrator(store, audit_log, ScriptedVerifier(reject={"Product 1"})).run()

        for event in audit_log.list_events():
            product = store.get_product(event.entity_id)
            assert event.details["status"] == product.verification_status.value
            assert event.details["summary"] == product.compliance_summary
            assert event.timestamp == NOW

    def test_event_records_rule_gaps(self, profiles, audit_log):
        """Test deterministic gaps are kept in the audit details."""
        product = make_product(1)
        product.materials = [Material(name="Lead Frame")]
        store = InMemoryPassportStore(profiles, [product])
        make_orchestrator(store, audit_log, ScriptedVerifier()).run()

        gaps = audit_log.list_events()[0].details["gaps"]
        assert gaps == [
            {"regulation": "EU Electronics", "issue": "Product contains a banned material: 'Lead Frame'."}
        ]


class TestRulesGatedStrategy:
    """Test cases for the rules-gated strategy."""

    def test_rules_decide_status(self, profiles, audit_log):
        """Test rule gaps fail a product the narrative approved."""
        product = make_product(1)
        product.sustainability_score = 20
        store = InMemoryPassportStore(profiles, [product, make_product(2)])

        summary = make_orchestrator(
            store, audit_log, ScriptedVerifier(),
            strategy=VerificationStrategy.RULES_GATED,
        ).run()

        assert summary.to_dict() == {"processed": 2, "passed": 1, "failed": 1}
        failed = store.get_product("prod-001")
        assert failed.verification_status == VerificationStatus.FAILED
        assert failed.compliance_summary == "Product 1: ok"

    def test_rules_pass_despite_narrative_rejection(self, profiles, audit_log):
        """Test the narrative verdict does not override clean rules."""
        store = InMemoryPassportStore(profiles, [make_product(1)])
        make_orchestrator(
            store, audit_log, ScriptedVerifier(reject={"Product 1"}),
            strategy=VerificationStrategy.RULES_GATED,
        ).run()

        assert store.get_product("prod-001").verification_status == VerificationStatus.VERIFIED

    def test_narrative_failure_falls_back_to_rule_summary(self, profiles, audit_log):
        """Test the summary is rendered from gaps when the narrative fails."""
        product = make_product(1)
        product.sustainability_score = 20
        store = InMemoryPassportStore(profiles, [product])

        make_orchestrator(
            store, audit_log, ScriptedVerifier(raise_for={"Product 1"}),
            strategy=VerificationStrategy.RULES_GATED,
        ).run()

        result = store.get_product("prod-001")
        assert result.verification_status == VerificationStatus.FAILED
        assert "1 compliance gap found" in result.compliance_summary
        assert "score of 20 is below the required minimum of 60" in result.compliance_summary

    def test_missing_profile_still_fails(self, profiles, audit_log):
        """Test an unknown category fails under either strategy."""
        store = InMemoryPassportStore(profiles, [make_product(1, category="Toys")])
        summary = make_orchestrator(
            store, audit_log, ScriptedVerifier(),
            strategy=VerificationStrategy.RULES_GATED,
        ).run()
        assert summary.failed == 1


class TestDefaultVerifier:
    """Test cases for the offline verifier used by default."""

    def test_offline_verifier_follows_rules(self, profiles, audit_log):
        """Test the default verifier decides from the profile rules."""
        bad = make_product(2)
        bad.materials = [Material(name="Lead Frame")]
        store = InMemoryPassportStore(profiles, [make_product(1), bad])
        orchestrator = VerificationOrchestrator(
            profile_store=store, product_store=store, audit_sink=audit_log, clock=lambda: NOW,
        )

        summary = orchestrator.run()

        assert summary.to_dict() == {"processed": 2, "passed": 1, "failed": 1}
        assert "Lead Frame" in store.get_product("prod-002").compliance_summary
