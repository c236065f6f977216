"""Narrative verifier backed by the OpenAI chat completions API."""

import json
import logging
from typing import Optional

from openai import OpenAI, OpenAIError
from pydantic import BaseModel, Field, ValidationError

from ..exceptions import NarrativeVerifierError
from ..models.passport import ComplianceGap
from ..services.narrative_verifier import (
    NarrativeRequest,
    NarrativeVerdict,
    NarrativeVerifier,
)


logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert EU regulatory compliance auditor. Your output must be a "
    "JSON object with the keys isCompliant (boolean), complianceSummary "
    "(string, 2-4 sentences) and gaps (array of {regulation, issue}). Do not "
    "add any text outside of the JSON object.\n"
    "Analyze the product's data against the given compliance rules.\n"
    "- Identify every rule that is not met by the product data.\n"
    "- If data is insufficient to verify a rule, treat it as a gap.\n"
    "- isCompliant must be false if any gap is found.\n"
    "- Keep the summary neutral and factual; if non-compliant, mention the "
    "number of gaps found."
)

USER_TEMPLATE = """Product Name: {productName}
Compliance Path: {compliancePathName}

Product Passport Data (JSON):
```json
{productInformation}
```

Compliance Rules (JSON):
```json
{complianceRules}
```
"""


class _GapPayload(BaseModel):
    regulation: str
    issue: str


class _VerdictPayload(BaseModel):
    is_compliant: bool = Field(alias="isCompliant")
    compliance_summary: str = Field(alias="complianceSummary")
    gaps: list[_GapPayload] = Field(default_factory=list)


class OpenAINarrativeVerifier(NarrativeVerifier):
    """Asks a chat model for a compliance verdict in JSON mode."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        temperature: float = 0.0,
        timeout: float = 30.0,
        client: Optional[OpenAI] = None,
    ):
        """Initialize the verifier.

        Args:
            api_key: OpenAI API key.
            model: Chat model name.
            temperature: Sampling temperature.
            timeout: Request timeout in seconds; exceeding it is a failure.
            client: Pre-built client, mainly for tests.
        """
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self._client = client or OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    def verify(self, request: NarrativeRequest) -> NarrativeVerdict:
        try:
            rsp = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": USER_TEMPLATE.format(**request.to_dict())},
                ],
                temperature=self.temperature,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            raise NarrativeVerifierError(f"narrative service call failed: {e}") from e

        content = (rsp.choices[0].message.content or "").strip()
        return self._parse(content)

    def _parse(self, content: str) -> NarrativeVerdict:
        try:
            payload = _VerdictPayload.model_validate(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.debug("Unparseable narrative verdict: %s", content[:500])
            raise NarrativeVerifierError(f"narrative service returned invalid output: {e}") from e

        gaps = tuple(ComplianceGap(regulation=g.regulation, issue=g.issue) for g in payload.gaps)
        # A verdict that claims compliance while listing gaps is not trusted
        is_compliant = payload.is_compliant and not gaps
        return NarrativeVerdict(
            is_compliant=is_compliant,
            compliance_summary=payload.compliance_summary.strip(),
            gaps=gaps,
        )
