"""Scheduled compliance verification job.

Run with: python -m src.jobs.scheduled_verification
"""

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from ..config import Settings, configure_logging
from ..data.repository import JsonPassportRepository, JsonlAuditLog
from ..exceptions import VerificationError
from ..services.narrative_verifier import LocalNarrativeVerifier, NarrativeVerifier
from ..services.rule_evaluator import RuleEvaluator
from ..services.verification_orchestrator import (
    VerificationOrchestrator,
    VerificationStrategy,
)


logger = logging.getLogger(__name__)


def create_narrative_verifier(settings: Settings, evaluator: RuleEvaluator) -> NarrativeVerifier:
    """Pick the OpenAI verifier when a key is configured, else the offline one."""
    if not settings.openai_api_key:
        logger.info("OPENAI_API_KEY not set; using offline narrative verifier")
        return LocalNarrativeVerifier(evaluator)

    from ..integrations.openai_verifier import OpenAINarrativeVerifier
    return OpenAINarrativeVerifier(
        api_key=settings.openai_api_key,
        model=settings.llm_model,
        temperature=settings.llm_temperature,
        timeout=settings.narrative_timeout,
    )


def create_orchestrator(settings: Settings) -> VerificationOrchestrator:
    """Wire the orchestrator from settings."""
    repository = JsonPassportRepository(settings.data_dir)
    evaluator = RuleEvaluator()
    return VerificationOrchestrator(
        profile_store=repository,
        product_store=repository,
        audit_sink=JsonlAuditLog(settings.audit_log_file),
        narrative_verifier=create_narrative_verifier(settings, evaluator),
        evaluator=evaluator,
        strategy=settings.verification_strategy,
        verifier_timeout=settings.narrative_timeout,
    )


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Verify all pending product passports.")
    parser.add_argument("--data-dir", type=Path, help="Directory with profiles.json and products.json")
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in VerificationStrategy],
        help="How narrative and rule verdicts are combined",
    )
    args = parser.parse_args(argv)

    configure_logging()

    try:
        settings = Settings.from_env()
        overrides = {}
        if args.data_dir:
            overrides["data_dir"] = args.data_dir
        if args.strategy:
            overrides["verification_strategy"] = VerificationStrategy(args.strategy)
        if overrides:
            settings = replace(settings, **overrides)

        summary = create_orchestrator(settings).run()
    except VerificationError:
        logger.exception("Scheduled verification failed")
        return 1

    print(json.dumps(summary.to_dict()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
