"""Runtime settings read from the environment."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .data.repository import DEFAULT_DATA_DIR
from .exceptions import ConfigurationError
from .services.verification_orchestrator import VerificationStrategy


def parse_strategy(value: str) -> VerificationStrategy:
    """Parse a strategy name such as ``narrative`` or ``rules_gated``.

    Raises:
        ConfigurationError: If the name is not a known strategy.
    """
    try:
        return VerificationStrategy(value.strip().lower())
    except ValueError:
        choices = ", ".join(s.value for s in VerificationStrategy)
        raise ConfigurationError(
            f"Unknown verification strategy '{value}'; expected one of: {choices}"
        ) from None


def _env_float(name: str, default: str) -> float:
    value = os.getenv(name, default)
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got '{value}'") from None


@dataclass(frozen=True)
class Settings:
    """Settings for the verification job and API."""
    data_dir: Path = DEFAULT_DATA_DIR
    audit_log_path: Optional[Path] = None  # Defaults to <data_dir>/audit_log.jsonl
    openai_api_key: str = ""
    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.0
    narrative_timeout: float = 30.0
    verification_strategy: VerificationStrategy = VerificationStrategy.NARRATIVE
    cron_secret: str = ""

    @property
    def audit_log_file(self) -> Path:
        return self.audit_log_path or self.data_dir / "audit_log.jsonl"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        Raises:
            ConfigurationError: If a variable holds an invalid value.
        """
        data_dir = Path(os.getenv("DPP_DATA_DIR", str(DEFAULT_DATA_DIR)))
        audit_log = os.getenv("AUDIT_LOG_PATH")
        return cls(
            data_dir=data_dir,
            audit_log_path=Path(audit_log) if audit_log else None,
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            llm_model=os.getenv("LLM_MODEL", "gpt-4o-mini"),
            llm_temperature=_env_float("LLM_TEMPERATURE", "0.0"),
            narrative_timeout=_env_float("NARRATIVE_TIMEOUT_SECONDS", "30"),
            verification_strategy=parse_strategy(os.getenv("VERIFICATION_STRATEGY", "narrative")),
            cron_secret=os.getenv("CRON_SECRET", ""),
        )


def configure_logging() -> None:
    """Configure root logging for an entry point; level from LOG_LEVEL."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
