"""Errors raised by the verification pipeline."""


class VerificationError(Exception):
    """Base class for verification pipeline errors."""


class ConfigurationError(VerificationError):
    """The pipeline is misconfigured (bad settings or no profiles); a run cannot start."""


class PersistenceError(VerificationError):
    """The staged product updates could not be committed."""


class NarrativeVerifierError(VerificationError):
    """The narrative verification service failed or returned bad output."""
