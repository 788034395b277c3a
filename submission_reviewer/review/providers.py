"""AI provider selection and structured-generation clients.

Model ids map to a closed set of providers. Each provider has one
credential lookup and one client factory, so adding a provider means
adding one entry to each table.
"""

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol

import httpx
from claude_agent_sdk import ClaudeAgentOptions, query
from claude_agent_sdk.types import AssistantMessage, ResultMessage, TextBlock
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from ..config import Settings
from ..errors import ProviderError, ProviderNotConfigured

logger = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class Provider(Enum):
    """AI providers a model id can resolve to."""

    GEMINI = "gemini"
    OPENROUTER = "openrouter"
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


def detect_provider(model_id: str) -> Provider:
    """Map a model id to its provider.

    ``gemini-*`` goes to Gemini, ``openrouter/*`` and any ``vendor/model`` id
    go to OpenRouter, ``claude-*`` goes to Anthropic, everything else to OpenAI.
    """
    if model_id.startswith("gemini-"):
        return Provider.GEMINI
    if model_id.startswith("openrouter/"):
        return Provider.OPENROUTER
    if model_id.startswith("claude-"):
        return Provider.ANTHROPIC
    if "/" in model_id:
        return Provider.OPENROUTER
    return Provider.OPENAI


class ReviewModelClient(Protocol):
    """A client that returns JSON conforming to a schema."""

    model: str

    async def generate(
        self,
        system: str,
        prompt: str,
        schema: dict[str, Any],
        temperature: float,
    ) -> str | dict[str, Any]:
        """Run one structured generation and return the raw JSON output."""
        ...


class OpenAICompatibleClient:
    """Chat completions client for OpenAI and OpenAI-compatible endpoints."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = OPENAI_BASE_URL,
        extra_headers: dict[str, str] | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 120.0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.extra_headers = extra_headers or {}
        self._http_client = http_client
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            **self.extra_headers,
        }

    async def generate(
        self,
        system: str,
        prompt: str,
        schema: dict[str, Any],
        temperature: float,
    ) -> str:
        should_close_client = self._http_client is None
        client = self._http_client or httpx.AsyncClient(timeout=self._timeout)

        try:
            response = await client.post(
                f"{self.base_url}/chat/completions",
                headers=self._headers(),
                json={
                    "model": self.model,
                    "temperature": temperature,
                    "messages": [
                        {"role": "system", "content": system},
                        {"role": "user", "content": prompt},
                    ],
                    "response_format": {
                        "type": "json_schema",
                        "json_schema": {
                            "name": "review",
                            "schema": schema,
                            "strict": False,
                        },
                    },
                },
            )

            if response.status_code in (401, 403):
                raise ProviderError(
                    f"Authentication failed for {self.base_url}",
                    status_code=response.status_code,
                )
            if response.status_code == 429:
                raise ProviderError(
                    f"Rate limited by {self.base_url}",
                    status_code=429,
                    rate_limited=True,
                )
            if response.status_code >= 400:
                raise ProviderError(
                    f"Provider error: {response.text[:200]}",
                    status_code=response.status_code,
                )

            data = response.json()
            try:
                content = data["choices"][0]["message"]["content"]
            except (KeyError, IndexError, TypeError) as e:
                raise ProviderError(f"Unexpected response shape: {e}") from e

            if not content:
                raise ProviderError("Provider returned an empty completion")
            return str(content)

        except httpx.HTTPError as e:
            raise ProviderError(f"Failed to reach {self.base_url}: {e}") from e

        finally:
            if should_close_client:
                await client.aclose()


class GeminiClient:
    """Gemini client using the google-genai SDK with a JSON response schema."""

    def __init__(self, api_key: str, model: str) -> None:
        self.model = model
        self._client = genai.Client(api_key=api_key)

    async def generate(
        self,
        system: str,
        prompt: str,
        schema: dict[str, Any],
        temperature: float,
    ) -> str:
        config = genai_types.GenerateContentConfig(
            system_instruction=system,
            temperature=temperature,
            response_mime_type="application/json",
            response_json_schema=schema,
        )
        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=config,
            )
        except genai_errors.APIError as e:
            raise ProviderError(
                f"Gemini error: {e.message}",
                status_code=e.code,
                rate_limited=e.code == 429,
            ) from e

        if not response.text:
            raise ProviderError("Gemini returned an empty response")
        return response.text


class ClaudeAgentClient:
    """Direct Claude access through the Claude Agent SDK structured outputs."""

    def __init__(self, api_key: str, model: str) -> None:
        self.api_key = api_key
        self.model = model

    async def generate(
        self,
        system: str,
        prompt: str,
        schema: dict[str, Any],
        temperature: float,
    ) -> str | dict[str, Any]:
        # The SDK does not expose sampling temperature.
        options = ClaudeAgentOptions(
            model=self.model,
            system_prompt=system,
            allowed_tools=[],
            env={"ANTHROPIC_API_KEY": self.api_key},
            output_format={"type": "json_schema", "schema": schema},
        )

        response_text = ""
        structured: Any = None

        async for message in query(prompt=prompt, options=options):
            if isinstance(message, AssistantMessage):
                for block in message.content:
                    if isinstance(block, TextBlock):
                        response_text += block.text
            elif isinstance(message, ResultMessage):
                if message.is_error:
                    raise ProviderError(
                        f"Claude error: {message.result or 'Unknown error'}"
                    )
                structured = message.structured_output
                logger.info(
                    f"Claude review finished (cost: ${message.total_cost_usd or 0:.4f})"
                )

        if isinstance(structured, dict):
            return structured
        if not response_text:
            raise ProviderError("No response received from Claude")
        return response_text


ClientFactory = Callable[[Settings, str, httpx.AsyncClient | None], ReviewModelClient]


def _openrouter_client(
    settings: Settings, model_id: str, http_client: httpx.AsyncClient | None
) -> OpenAICompatibleClient:
    return OpenAICompatibleClient(
        api_key=settings.openrouter_api_key,
        model=model_id.removeprefix("openrouter/"),
        base_url=OPENROUTER_BASE_URL,
        extra_headers={
            "HTTP-Referer": settings.app_url,
            "X-Title": "Superteam Earn Auto-Review",
        },
        http_client=http_client,
    )


def _create_gemini(
    settings: Settings, model_id: str, http_client: httpx.AsyncClient | None
) -> ReviewModelClient:
    if not settings.gemini_api_key:
        raise ProviderNotConfigured(Provider.GEMINI.value, "GEMINI_API_KEY")
    return GeminiClient(api_key=settings.gemini_api_key, model=model_id)


def _create_openrouter(
    settings: Settings, model_id: str, http_client: httpx.AsyncClient | None
) -> ReviewModelClient:
    if not settings.openrouter_api_key:
        raise ProviderNotConfigured(Provider.OPENROUTER.value, "OPENROUTER_API_KEY")
    return _openrouter_client(settings, model_id, http_client)


def _create_anthropic(
    settings: Settings, model_id: str, http_client: httpx.AsyncClient | None
) -> ReviewModelClient:
    # Prefer OpenRouter so every third-party model shares one endpoint.
    if settings.openrouter_api_key:
        return _openrouter_client(settings, f"anthropic/{model_id}", http_client)
    if settings.anthropic_api_key:
        return ClaudeAgentClient(api_key=settings.anthropic_api_key, model=model_id)
    raise ProviderNotConfigured(
        Provider.ANTHROPIC.value,
        "OPENROUTER_API_KEY or ANTHROPIC_API_KEY",
        "OPENROUTER_API_KEY or ANTHROPIC_API_KEY required for Claude models",
    )


def _create_openai(
    settings: Settings, model_id: str, http_client: httpx.AsyncClient | None
) -> ReviewModelClient:
    if not settings.openai_api_key:
        raise ProviderNotConfigured(Provider.OPENAI.value, "OPENAI_API_KEY")
    return OpenAICompatibleClient(
        api_key=settings.openai_api_key,
        model=model_id,
        http_client=http_client,
    )


CLIENT_FACTORIES: dict[Provider, ClientFactory] = {
    Provider.GEMINI: _create_gemini,
    Provider.OPENROUTER: _create_openrouter,
    Provider.ANTHROPIC: _create_anthropic,
    Provider.OPENAI: _create_openai,
}

CREDENTIAL_CHECKS: dict[Provider, Callable[[Settings], bool]] = {
    Provider.GEMINI: lambda s: bool(s.gemini_api_key),
    Provider.OPENROUTER: lambda s: bool(s.openrouter_api_key),
    Provider.ANTHROPIC: lambda s: bool(s.openrouter_api_key or s.anthropic_api_key),
    Provider.OPENAI: lambda s: bool(s.openai_api_key),
}


def create_model_client(
    model_id: str,
    settings: Settings,
    http_client: httpx.AsyncClient | None = None,
) -> ReviewModelClient:
    """Build the client for a model id.

    Raises:
        ProviderNotConfigured: If the provider's credential is missing
    """
    provider = detect_provider(model_id)
    logger.debug(f"Model {model_id} resolved to provider {provider.value}")
    return CLIENT_FACTORIES[provider](settings, model_id, http_client)


def get_available_providers(settings: Settings) -> list[dict[str, Any]]:
    """Report which providers have credentials configured."""
    return [
        {"provider": provider.value, "configured": CREDENTIAL_CHECKS[provider](settings)}
        for provider in Provider
    ]
