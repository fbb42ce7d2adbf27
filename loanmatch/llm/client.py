"""Gemini REST client for Stage 3 qualitative assessment.

Uses the native generateContent endpoint with a low temperature and a JSON
response mime type, so each call returns one AssessmentVerdict. Transport,
timeout and parsing failures are raised as AssessmentServiceError subclasses;
the assessor decides what to do with them.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Any

import httpx
from pydantic import ValidationError

from loanmatch.config import LLMSettings
from loanmatch.errors import AssessmentServiceError, AssessmentTimeoutError, MalformedAssessmentError
from loanmatch.events import emit
from loanmatch.llm.prompts import build_assessment_prompt
from loanmatch.schemas.events import EventType, SystemEvent
from loanmatch.schemas.matching import ApplicantProfile, AssessmentVerdict, ProductProfile

logger = logging.getLogger(__name__)


def parse_verdict(payload: dict[str, Any]) -> AssessmentVerdict:
    """Extract the JSON verdict from a generateContent response body."""
    try:
        text: str = payload["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        msg = "No candidate text in response"
        raise MalformedAssessmentError(msg) from exc

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        msg = "No JSON object found in response"
        raise MalformedAssessmentError(msg)

    try:
        return AssessmentVerdict.model_validate(json.loads(text[start : end + 1]))
    except (json.JSONDecodeError, ValidationError) as exc:
        msg = f"Invalid verdict JSON: {exc}"
        raise MalformedAssessmentError(msg) from exc


class GeminiClient:
    """Async client for Gemini's generateContent endpoint.

    One instance is shared by all concurrent assessments of a run; the
    underlying httpx client pools connections.
    """

    def __init__(self, llm: LLMSettings, http_client: httpx.AsyncClient | None = None) -> None:
        self._settings = llm
        self._model = llm.assessment_model
        self._client = http_client or httpx.AsyncClient(
            base_url=llm.gemini_base_url,
            timeout=httpx.Timeout(llm.assessment_timeout, connect=10.0),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.gemini_api_key)

    async def evaluate(self, applicant: ApplicantProfile, product: ProductProfile) -> AssessmentVerdict:
        """Ask for a verdict on one candidate pair.

        Raises:
            AssessmentTimeoutError: no answer within the configured timeout.
            AssessmentServiceError: transport error or non-2xx status.
            MalformedAssessmentError: the answer is not a valid verdict.
        """
        prompt = build_assessment_prompt(applicant, product)
        prompt_hash = hashlib.md5(prompt.encode()).hexdigest()[:8]

        await emit(SystemEvent(
            event_type=EventType.LLM_REQUEST,
            batch_tag=applicant.batch_tag,
            data={
                "model": self._model,
                "prompt_hash": prompt_hash,
                "applicant": applicant.external_id,
                "product": product.product_name,
            },
            source_module="llm.client",
        ))

        start = time.monotonic()
        try:
            response = await self._client.post(
                f"/models/{self._model}:generateContent",
                headers={"x-goog-api-key": self._settings.gemini_api_key},
                json={
                    "contents": [{"parts": [{"text": prompt}]}],
                    "generationConfig": {
                        "temperature": self._settings.assessment_temperature,
                        "topK": 1,
                        "topP": 1,
                        "maxOutputTokens": self._settings.assessment_max_tokens,
                        "responseMimeType": "application/json",
                    },
                },
                timeout=self._settings.assessment_timeout,
            )
            response.raise_for_status()
            data: dict[str, Any] = response.json()

        except httpx.TimeoutException as exc:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            await self._emit_error(applicant, "timeout", elapsed_ms)
            logger.error("Gemini timeout after %dms for model %s", elapsed_ms, self._model)
            msg = f"Reasoning service timed out after {elapsed_ms}ms"
            raise AssessmentTimeoutError(msg) from exc

        except httpx.HTTPError as exc:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            await self._emit_error(applicant, str(exc), elapsed_ms)
            logger.error("Gemini HTTP error for model %s: %s", self._model, exc)
            msg = f"Reasoning service request failed: {exc}"
            raise AssessmentServiceError(msg) from exc

        except ValueError as exc:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            await self._emit_error(applicant, "invalid json body", elapsed_ms)
            msg = "Reasoning service returned a non-JSON body"
            raise MalformedAssessmentError(msg) from exc

        elapsed_ms = int((time.monotonic() - start) * 1000)
        try:
            verdict = parse_verdict(data)
        except MalformedAssessmentError as exc:
            await self._emit_error(applicant, str(exc), elapsed_ms)
            raise

        usage = data.get("usageMetadata", {})
        await emit(SystemEvent(
            event_type=EventType.LLM_RESPONSE,
            batch_tag=applicant.batch_tag,
            data={
                "model": self._model,
                "latency_ms": elapsed_ms,
                "prompt_tokens": usage.get("promptTokenCount", 0),
                "completion_tokens": usage.get("candidatesTokenCount", 0),
                "qualified": verdict.qualified,
                "confidence": verdict.confidence,
            },
            source_module="llm.client",
        ))
        logger.info(
            "Gemini verdict: applicant=%s product=%s qualified=%s latency=%dms",
            applicant.external_id,
            product.product_name,
            verdict.qualified,
            elapsed_ms,
        )
        return verdict

    async def _emit_error(self, applicant: ApplicantProfile, error: str, elapsed_ms: int) -> None:
        await emit(SystemEvent(
            event_type=EventType.LLM_ERROR,
            batch_tag=applicant.batch_tag,
            data={"model": self._model, "error": error, "latency_ms": elapsed_ms},
            source_module="llm.client",
        ))

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
