"""Scheduled batch verification of pending product passports.

One run moves every ``Pending`` product to ``Verified`` or ``Failed``:

1. load all compliance profiles, keyed by category (none at all is fatal);
2. load all pending products;
3. per product, resolve the profile, evaluate, consult the narrative
   verifier, stage a product update and append one audit event;
4. commit all staged updates in one atomic batch.

Audit events are written eagerly and are not part of the batch: if the
commit fails, events for that run remain in the audit log while every
product stays ``Pending``. Re-running the job is the recovery path.

Pending products are not locked while a run is in progress. A product
resubmitted or edited between the read and the commit is overwritten by the
run's update (last writer wins).
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from ..data.repository import AuditSink, ProductStore, ProfileStore
from ..exceptions import ConfigurationError, PersistenceError
from ..models.passport import (
    AuditEvent,
    ComplianceGap,
    ComplianceProfile,
    EvaluationResult,
    Product,
    ProductUpdate,
    VerificationRunSummary,
    VerificationStatus,
)
from .narrative_verifier import (
    LocalNarrativeVerifier,
    NarrativeRequest,
    NarrativeVerifier,
    VerifierOutcome,
    summarize_gaps,
)
from .rule_evaluator import RuleEvaluator


logger = logging.getLogger(__name__)

VERIFY_ACTION = "product.verify"
SYSTEM_USER = "system"
DEFAULT_VERIFIER_TIMEOUT = 30.0

AUTOMATED_CHECK_FAILED = "Automated compliance check failed. Manual review is required."


class VerificationStrategy(Enum):
    """How the narrative verdict and the rule evaluation are combined."""
    # Narrative verdict and summary are final; rule gaps are kept for audit
    NARRATIVE = "narrative"
    # Rule evaluation decides; the narrative only supplies summary text
    RULES_GATED = "rules_gated"


@dataclass(frozen=True)
class VerificationDecision:
    """Final status and summary for one product."""
    product_id: str
    status: VerificationStatus
    summary: str
    gaps: tuple[ComplianceGap, ...] = ()


@dataclass
class WriteBatch:
    """Accumulates product updates for a single atomic commit."""
    updates: list[ProductUpdate] = field(default_factory=list)

    def stage(self, update: ProductUpdate) -> None:
        self.updates.append(update)

    def __len__(self) -> int:
        return len(self.updates)

    def commit(self, store: ProductStore) -> None:
        """Write all staged updates at once.

        Raises:
            PersistenceError: If the store rejects the batch.
        """
        try:
            store.batch_update(list(self.updates))
        except Exception as e:
            raise PersistenceError(
                f"Failed to commit {len(self.updates)} product update(s): {e}"
            ) from e


def missing_profile_summary(category: str) -> str:
    """Summary for a product whose category has no compliance profile."""
    return f"Verification failed: no compliance profile is configured for category '{category}'."


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _TimedCaller:
    """Runs calls on a worker thread and stops waiting after ``timeout``.

    A call that times out keeps its thread; the caller moves on to a fresh
    worker so later calls are not queued behind it.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        self._executor = self._new_executor()

    @staticmethod
    def _new_executor() -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=1, thread_name_prefix="narrative-verifier")

    def call(self, fn, *args):
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = self._new_executor()
            raise

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)


class VerificationOrchestrator:
    """Finalizes pending products into Verified or Failed."""

    def __init__(
        self,
        profile_store: ProfileStore,
        product_store: ProductStore,
        audit_sink: AuditSink,
        narrative_verifier: Optional[NarrativeVerifier] = None,
        evaluator: Optional[RuleEvaluator] = None,
        strategy: VerificationStrategy = VerificationStrategy.NARRATIVE,
        verifier_timeout: float = DEFAULT_VERIFIER_TIMEOUT,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """Initialize the orchestrator.

        Args:
            profile_store: Source of compliance profiles.
            product_store: Source of pending products and target of the batch.
            audit_sink: Append-only audit log.
            narrative_verifier: Text-generation verifier. Defaults to the
                offline verifier.
            evaluator: Deterministic rule evaluator.
            strategy: How narrative and rule verdicts are combined.
            verifier_timeout: Seconds to wait for one verifier call.
            clock: Source of the verification timestamp.
        """
        self.profile_store = profile_store
        self.product_store = product_store
        self.audit_sink = audit_sink
        self.evaluator = evaluator or RuleEvaluator()
        self.narrative_verifier = narrative_verifier or LocalNarrativeVerifier(self.evaluator)
        self.strategy = strategy
        self.verifier_timeout = verifier_timeout
        self.clock = clock

    def run(self) -> VerificationRunSummary:
        """Verify every pending product and commit the results.

        Returns:
            Counts of processed, passed and failed products.

        Raises:
            ConfigurationError: If no compliance profiles exist.
            PersistenceError: If the final batch commit fails. Audit events
                already appended are not rolled back.
        """
        profiles = self._load_profiles()
        products = self.product_store.list_pending_products()
        summary = VerificationRunSummary()
        if not products:
            logger.info("No pending products to verify")
            return summary

        logger.info(
            "Verifying %d pending product(s) against %d profile(s) [strategy=%s]",
            len(products), len(profiles), self.strategy.value,
        )

        batch = WriteBatch()
        caller = _TimedCaller(self.verifier_timeout)
        try:
            for product in products:
                if not product.verification_status.awaits_verification:
                    logger.warning(
                        "Skipping product %s in state %s", product.id, product.verification_status.value
                    )
                    continue

                try:
                    decision = self._decide(product, profiles, caller)
                except Exception:
                    logger.exception("Verification of product %s failed", product.id)
                    decision = VerificationDecision(
                        product_id=product.id,
                        status=VerificationStatus.FAILED,
                        summary=AUTOMATED_CHECK_FAILED,
                    )
                batch.stage(ProductUpdate(
                    product_id=product.id,
                    verification_status=decision.status,
                    last_verification_date=self.clock(),
                    compliance_summary=decision.summary,
                ))
                self._record_audit(decision)
                summary.record(decision.status)
                logger.debug("Product %s -> %s", product.id, decision.status.value)
        finally:
            caller.close()

        try:
            batch.commit(self.product_store)
        except PersistenceError:
            logger.error("Verification run not committed; %d product(s) remain pending", len(batch))
            raise

        logger.info(
            "Verification run complete: processed=%d passed=%d failed=%d",
            summary.processed, summary.passed, summary.failed,
        )
        return summary

    def _load_profiles(self) -> dict[str, ComplianceProfile]:
        profiles = {p.category: p for p in self.profile_store.list_profiles()}
        if not profiles:
            raise ConfigurationError("No compliance profiles are configured")
        return profiles

    def _decide(
        self,
        product: Product,
        profiles: dict[str, ComplianceProfile],
        caller: _TimedCaller,
    ) -> VerificationDecision:
        profile = profiles.get(product.category)
        if profile is None:
            return VerificationDecision(
                product_id=product.id,
                status=VerificationStatus.FAILED,
                summary=missing_profile_summary(product.category),
            )

        evaluation = self.evaluator.evaluate(product, profile)
        outcome = self._consult_verifier(NarrativeRequest.for_product(product, profile), caller)
        if not outcome.ok:
            logger.warning("Narrative verification failed for product %s: %s", product.id, outcome.error)

        if self.strategy == VerificationStrategy.RULES_GATED:
            return self._gated_decision(product, profile, evaluation, outcome)
        return self._narrative_decision(product, evaluation, outcome)

    def _narrative_decision(
        self,
        product: Product,
        evaluation: EvaluationResult,
        outcome: VerifierOutcome,
    ) -> VerificationDecision:
        if not outcome.ok:
            return VerificationDecision(
                product_id=product.id,
                status=VerificationStatus.FAILED,
                summary=AUTOMATED_CHECK_FAILED,
                gaps=evaluation.gaps,
            )
        verdict = outcome.verdict
        return VerificationDecision(
            product_id=product.id,
            status=VerificationStatus.VERIFIED if verdict.is_compliant else VerificationStatus.FAILED,
            summary=verdict.compliance_summary,
            gaps=evaluation.gaps,
        )

    def _gated_decision(
        self,
        product: Product,
        profile: ComplianceProfile,
        evaluation: EvaluationResult,
        outcome: VerifierOutcome,
    ) -> VerificationDecision:
        if outcome.ok:
            text = outcome.verdict.compliance_summary
        else:
            text = summarize_gaps(product.name, profile.name, evaluation.gaps)
        return VerificationDecision(
            product_id=product.id,
            status=VerificationStatus.VERIFIED if evaluation.is_compliant else VerificationStatus.FAILED,
            summary=text,
            gaps=evaluation.gaps,
        )

    def _consult_verifier(
        self,
        request: NarrativeRequest,
        caller: _TimedCaller,
    ) -> VerifierOutcome:
        """Call the narrative verifier, turning any failure into an outcome."""
        try:
            return VerifierOutcome.success(caller.call(self.narrative_verifier.verify, request))
        except FutureTimeoutError:
            return VerifierOutcome.failure(f"timed out after {self.verifier_timeout:g}s")
        except Exception as e:
            return VerifierOutcome.failure(f"{type(e).__name__}: {e}")

    def _record_audit(self, decision: VerificationDecision) -> None:
        event = AuditEvent(
            action=VERIFY_ACTION,
            entity_id=decision.product_id,
            user_id=SYSTEM_USER,
            details={
                "status": decision.status.value,
                "summary": decision.summary,
                "gaps": [g.to_dict() for g in decision.gaps],
            },
            timestamp=self.clock(),
        )
        try:
            self.audit_sink.append(event)
        except Exception:
            logger.exception("Failed to append audit event for product %s", decision.product_id)
