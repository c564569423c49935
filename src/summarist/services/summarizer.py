from __future__ import annotations

import logging
import time
from typing import Callable, Sequence

from ..llm.providers import GenerationRequest, ProviderError, TextProvider
from ..models import DEFAULT_SUMMARY_TYPE, SummaryRequest, SummaryResponse
from ..utils import log_event, utc_now_iso

MIN_CONFIDENT_LENGTH = 50
LOW_CONFIDENCE = 0.6
OVERLONG_CONFIDENCE = 0.4
DEFAULT_CONFIDENCE = 0.8

_SYSTEM_PREFIX = "You are an expert at writing article summaries. "

SYSTEM_PROMPTS = {
    "short": _SYSTEM_PREFIX
    + "Summarize the main points of the article concisely in 50-100 characters "
    "so readers can grasp what it is about at a glance.",
    "medium": _SYSTEM_PREFIX
    + "Summarize the main points of the article in 200-300 characters. "
    "Keep the important information while staying easy to read.",
    "long": _SYSTEM_PREFIX
    + "Summarize the article comprehensively in 500-800 characters. "
    "Cover the key points, supporting details and conclusions so readers "
    "understand the content without reading the article itself.",
}

SUMMARY_TYPE_DESCRIPTIONS = {
    "short": "a short summary of 50-100 characters",
    "medium": "a standard summary of 200-300 characters",
    "long": "a detailed summary of 500-800 characters",
}


class AllProvidersFailedError(ValueError):
    pass


def get_system_prompt(summary_type: str) -> str:
    return SYSTEM_PROMPTS.get(summary_type, SYSTEM_PROMPTS[DEFAULT_SUMMARY_TYPE])


def get_summary_type_description(summary_type: str) -> str:
    return SUMMARY_TYPE_DESCRIPTIONS.get(
        summary_type, SUMMARY_TYPE_DESCRIPTIONS[DEFAULT_SUMMARY_TYPE]
    )


def build_prompt(request: SummaryRequest) -> str:
    prompt = (
        f"Article title: {request.title}\n\n"
        f"Article URL: {request.url}\n\n"
        f"Article content:\n{request.content}\n\n"
        f"Summarize the article above as {get_summary_type_description(request.summary_type)}."
    )
    if request.language:
        prompt += f" Write the summary in the article's language ({request.language})."
    return prompt


def calculate_confidence(summary: str, original_content: str) -> float:
    # Heuristic only; lengths are in characters.
    if len(summary) < MIN_CONFIDENT_LENGTH:
        return LOW_CONFIDENCE
    if len(summary) > len(original_content):
        return OVERLONG_CONFIDENCE
    return DEFAULT_CONFIDENCE


class SummarizationEngine:
    """Produces summaries from an ordered provider chain.

    Each provider gets a single attempt per call. The first one that returns a
    non-empty summary wins; failures are logged and the next provider is tried.
    Retrying the whole call is left to the job layer.
    """

    def __init__(
        self,
        providers: Sequence[TextProvider],
        *,
        max_tokens: int = 500,
        temperature: float = 0.3,
        logger: logging.Logger | None = None,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self.providers = list(providers)
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.logger = logger or logging.getLogger("summarist.summarizer")
        self.clock = clock

    def generate_summary(self, request: SummaryRequest) -> SummaryResponse:
        generation = GenerationRequest(
            messages=[{"role": "user", "content": build_prompt(request)}],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system=get_system_prompt(request.summary_type),
        )
        errors: list[str] = []
        for provider in self.providers:
            start = time.monotonic()
            try:
                result = provider.generate(generation)
                summary = result.text.strip()
                if not summary:
                    raise ProviderError("empty_summary")
            except Exception as exc:  # noqa: BLE001
                errors.append(f"{provider.name}: {exc}")
                log_event(
                    self.logger,
                    logging.WARNING,
                    "provider_failed",
                    provider=provider.name,
                    error=str(exc),
                )
                continue
            log_event(
                self.logger,
                logging.INFO,
                "summary_generated",
                provider=provider.name,
                model=result.model,
                input_tokens=result.input_tokens,
                output_tokens=result.output_tokens,
                latency_ms=int((time.monotonic() - start) * 1000),
            )
            return SummaryResponse(
                summary=summary,
                confidence=calculate_confidence(summary, request.content),
                provider=provider.name,
                model_version=result.model,
                generated_at=self.clock(),
                word_count=len(summary.split()),
            )
        if not errors:
            errors.append("no providers configured")
        raise AllProvidersFailedError("all_providers_failed: " + "; ".join(errors))
