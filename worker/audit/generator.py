"""Audit generation - LLM providers and response parsing."""

import json
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import httpx
import structlog

from api.config import Settings
from api.exceptions import AnalysisError, ExternalServiceError
from worker.audit.prompt import SYSTEM_PROMPT, build_audit_prompt

logger = structlog.get_logger(__name__)

# Markdown code fence some models wrap around JSON despite instructions
_OPENING_FENCE = re.compile(r"^\s*```(?:json)?\s*")
_CLOSING_FENCE = re.compile(r"\s*```\s*$")


class ProviderType(StrEnum):
    """Supported audit providers."""

    OPENAI = "openai"
    MOCK = "mock"


@dataclass
class ProviderConfig:
    """Configuration for an audit provider."""

    api_key: str = ""
    base_url: str = ""
    model: str = "gpt-4o"
    timeout_seconds: float = 120.0
    temperature: float = 0.3
    max_tokens: int = 8000

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderConfig":
        """Build a provider config from application settings."""
        return cls(
            api_key=settings.openai_api_key or "",
            base_url=settings.openai_base_url,
            model=settings.openai_model,
            timeout_seconds=settings.generator_timeout_seconds,
            temperature=settings.generator_temperature,
            max_tokens=settings.generator_max_tokens,
        )


class AuditProvider(ABC):
    """Abstract base class for audit providers."""

    provider_type: ProviderType

    def __init__(self, config: ProviderConfig):
        self.config = config

    @property
    def model(self) -> str:
        return self.config.model

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Send one prompt and return the raw text of the reply.

        Raises:
            ExternalServiceError: If the provider cannot be reached or fails
        """
        ...


class OpenAIProvider(AuditProvider):
    """OpenAI chat completions provider."""

    provider_type = ProviderType.OPENAI

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        if not config.base_url:
            config.base_url = "https://api.openai.com/v1"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    async def complete(self, prompt: str) -> str:
        """Run the audit prompt via OpenAI in JSON mode."""
        start_time = time.perf_counter()

        payload = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "response_format": {"type": "json_object"},
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }

        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                response = await client.post(
                    f"{self.config.base_url}/chat/completions",
                    headers=self._headers(),
                    json=payload,
                )
        except httpx.TimeoutException as e:
            raise ExternalServiceError(
                "openai", f"Request timed out after {self.config.timeout_seconds}s"
            ) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError("openai", str(e)) from e

        latency_ms = (time.perf_counter() - start_time) * 1000

        if response.status_code != 200:
            logger.warning(
                "provider_request_failed",
                provider=self.provider_type.value,
                status_code=response.status_code,
                latency_ms=round(latency_ms),
            )
            raise ExternalServiceError("openai", f"HTTP {response.status_code}: {response.text}")

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ExternalServiceError("openai", "Malformed completion payload") from e

        usage = data.get("usage") or {}
        logger.info(
            "provider_request_completed",
            provider=self.provider_type.value,
            model=self.config.model,
            latency_ms=round(latency_ms),
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
        )
        return content or ""


class MockProvider(AuditProvider):
    """Mock provider for testing.

    Replies are taken from ``responses`` in order; once they run out an
    empty JSON object is returned.
    """

    provider_type = ProviderType.MOCK

    def __init__(self, config: ProviderConfig | None = None, responses: list[str] | None = None):
        super().__init__(config or ProviderConfig(model="mock"))
        self.responses: list[str] = list(responses or [])
        self.should_fail: bool = False
        self.calls: list[str] = []

    def queue_response(self, content: str | dict) -> None:
        """Queue a reply; dicts are serialized to JSON."""
        self.responses.append(content if isinstance(content, str) else json.dumps(content))

    def set_failure_mode(self, should_fail: bool) -> None:
        """Make every call raise ExternalServiceError."""
        self.should_fail = should_fail

    async def complete(self, prompt: str) -> str:
        """Return the next queued reply."""
        self.calls.append(prompt)
        if self.should_fail:
            raise ExternalServiceError("mock", "Simulated failure")
        if self.responses:
            return self.responses.pop(0)
        return "{}"


def get_provider(
    provider_type: ProviderType,
    config: ProviderConfig | None = None,
) -> AuditProvider:
    """Factory function to get an audit provider."""
    if config is None:
        config = ProviderConfig()

    providers: dict[ProviderType, type[AuditProvider]] = {
        ProviderType.OPENAI: OpenAIProvider,
        ProviderType.MOCK: MockProvider,
    }

    provider_class = providers.get(provider_type)
    if provider_class is None:
        raise ValueError(f"Unknown provider type: {provider_type}")

    return provider_class(config)


def parse_audit_response(content: str) -> dict[str, Any]:
    """Parse the provider's reply into a JSON object.

    Raises:
        AnalysisError: If the reply is not a JSON object
    """
    cleaned = _CLOSING_FENCE.sub("", _OPENING_FENCE.sub("", content or "", count=1), count=1).strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise AnalysisError(reason=f"JSON parse error: {e.msg}") from e
    if not isinstance(parsed, dict):
        raise AnalysisError(reason=f"expected a JSON object, got {type(parsed).__name__}")
    return parsed


async def generate_audit(provider: AuditProvider, snapshot: Any) -> dict[str, Any]:
    """Ask the provider for an audit of ``snapshot``.

    Unparseable output is retried exactly once with stricter instructions.
    Provider failures are not retried.

    Raises:
        AnalysisError: If both attempts return unparseable output
        ExternalServiceError: If the provider fails
    """
    try:
        return parse_audit_response(await provider.complete(build_audit_prompt(snapshot)))
    except AnalysisError as e:
        logger.warning("audit_parse_failed", attempt=1, reason=e.details.get("reason"))

    try:
        return parse_audit_response(await provider.complete(build_audit_prompt(snapshot, strict=True)))
    except AnalysisError as e:
        logger.error("audit_parse_failed", attempt=2, reason=e.details.get("reason"))
        raise AnalysisError("invalid response", reason=e.details.get("reason")) from e
