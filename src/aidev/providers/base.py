"""Model provider abstraction with retry, abort and tier resolution."""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol, runtime_checkable

import httpx

from ..core.config import resolve_model_id, resolve_tier
from ..models.provider import ModelRequest, ModelResponse, ModelRole, ModelTier, ResolvedModel
from ..utils.cancel import AbortSignal
from ..utils.sanitize import sanitize_error


class ProviderError(Exception):
    """A model request failed. The message is safe to display."""


class RequestAborted(ProviderError):
    """The request's abort signal fired before a response arrived."""


@runtime_checkable
class ModelProvider(Protocol):
    """Protocol that all model providers must implement."""

    id: str
    name: str

    async def is_available(self) -> bool: ...

    async def list_models(self) -> list[ResolvedModel]: ...

    async def send_request(self, request: ModelRequest) -> ModelResponse: ...

    async def close(self) -> None: ...


class BaseProvider:
    """Base class with shared retry logic and config handling.

    Subclasses implement ``_send`` and raise ``ProviderError`` with the HTTP
    status code in the message on failure.
    """

    id: str = "base"
    name: str = "Base"
    # (model id, display name, tier); first entry of a tier is its default
    MODELS: tuple[tuple[str, str, str], ...] = ()

    def __init__(
        self,
        provider_config: dict,
        common_config: dict,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = provider_config
        self.common = common_config
        self._transport = transport
        self.mode = common_config.get("mode", "balanced")
        self.model_tiers = common_config.get("model_tiers", {}) or {}
        self.max_attempts = common_config.get("retry_attempts", 3)
        self.retry_delay = common_config.get("retry_delay_seconds", 5)

    async def is_available(self) -> bool:
        return True

    async def list_models(self) -> list[ResolvedModel]:
        return [
            ResolvedModel(id=mid, name=name, tier=tier, role="chat", provider=self.id)  # type: ignore[arg-type]
            for mid, name, tier in self.MODELS
        ]

    async def close(self) -> None:
        return None

    def _client(self) -> httpx.AsyncClient:
        timeout = self.common.get("timeout_seconds", 300)
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    def resolve_model(self, role: ModelRole) -> ResolvedModel:
        """Pick the model for ``role``: explicit override, tier map, then catalog."""
        tier: ModelTier = resolve_tier(self.mode, role)
        model_id = self.config.get("model") or resolve_model_id(self.mode, role, self.model_tiers)
        if not model_id:
            match = next((m for m in self.MODELS if m[2] == tier), None)
            if match is None and self.MODELS:
                match = self.MODELS[0]
            model_id = match[0] if match else "default"
        name = next((m[1] for m in self.MODELS if m[0] == model_id), model_id)
        return ResolvedModel(id=model_id, name=name, tier=tier, role=role, provider=self.id)

    async def _send(self, request: ModelRequest, model: ResolvedModel) -> ModelResponse:
        raise NotImplementedError

    async def send_request(self, request: ModelRequest) -> ModelResponse:
        """Send with retry; race against the request's abort signal."""
        signal: Optional[AbortSignal] = request.signal
        if signal is None:
            return await self._send_with_retry(request)

        if signal.aborted:
            raise RequestAborted(f"Request aborted: {signal.reason}")

        request_task = asyncio.ensure_future(self._send_with_retry(request))
        abort_task = asyncio.ensure_future(signal.wait())
        try:
            done, _ = await asyncio.wait(
                {request_task, abort_task}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            request_task.cancel()
            abort_task.cancel()
            raise

        if request_task in done:
            abort_task.cancel()
            return request_task.result()

        request_task.cancel()
        try:
            await request_task
        except (asyncio.CancelledError, ProviderError):
            pass
        raise RequestAborted(f"Request aborted: {signal.reason}")

    async def _send_with_retry(self, request: ModelRequest) -> ModelResponse:
        """Wrap _send() with retry logic including rate-limit handling."""
        model = self.resolve_model(request.role)
        rate_limit_max = max(self.max_attempts, 5)
        last_error = "Max retries exceeded"

        for attempt in range(1, rate_limit_max + 1):
            try:
                return await self._send(request, model)
            except ProviderError as e:
                error_msg = str(e)
                last_error = error_msg
            except Exception as e:  # transport-level failures (DNS, connection reset)
                error_msg = f"{e.__class__.__name__}: {e}"
                last_error = error_msg

            is_rate_limit = "429" in error_msg
            is_retryable = (
                is_rate_limit
                or any(
                    code in error_msg
                    for code in ("500", "502", "503", "504", "timeout", "timed out", "Timeout")
                )
            ) and not any(
                code in error_msg
                for code in ("400", "401", "403", "404")
            )

            effective_max = rate_limit_max if is_rate_limit else self.max_attempts
            if not is_retryable or attempt >= effective_max:
                raise ProviderError(sanitize_error(error_msg))

            # Rate limits: 30s base. Others: standard backoff.
            base_delay = 30 if is_rate_limit else self.retry_delay
            await asyncio.sleep(base_delay * min(attempt, 3))

        raise ProviderError(sanitize_error(last_error))


def get_model_provider(
    config: dict,
    provider_override: Optional[str] = None,
    model_override: Optional[str] = None,
    endpoint_override: Optional[str] = None,
) -> BaseProvider:
    """Factory function to create the configured model provider."""
    ai_config = config.get("ai", {})
    provider_name = provider_override or ai_config.get("provider", "anthropic")

    provider_config = dict(ai_config.get(provider_name, {}))

    if model_override:
        provider_config["model"] = model_override
    if endpoint_override:
        key = "endpoint" if provider_name == "ollama" else "base_url"
        provider_config[key] = endpoint_override

    # Common config: ai section minus provider sub-configs, plus operating mode
    common_config = {
        k: v
        for k, v in ai_config.items()
        if k not in ("anthropic", "openai", "ollama")
    }
    common_config["mode"] = config.get("mode", "balanced")

    if provider_name == "anthropic":
        from .anthropic import AnthropicProvider
        return AnthropicProvider(provider_config, common_config)
    elif provider_name == "openai":
        from .openai_provider import OpenAIProvider
        return OpenAIProvider(provider_config, common_config)
    elif provider_name == "ollama":
        from .ollama import OllamaProvider
        return OllamaProvider(provider_config, common_config)
    else:
        raise ValueError(f"Unknown AI provider: {provider_name}")
