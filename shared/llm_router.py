"""
LLM Router - Centralized routing for the suggestion models.

Routes LLM requests to the appropriate tier based on task type:
- LOCAL_CAPABLE: Ollama model, text fallback when hybrid mode is enabled
- CLOUD_STANDARD: OpenRouter chat model (similarity matching, step generation)
- CLOUD_IMAGE: OpenRouter image-capable model (step illustrations)

Features:
- Automatic model selection based on task type
- Single fallback hop for text tasks
- Usage metrics tracking
- Configurable via environment variables
"""

__all__ = [
    "TaskType",
    "ModelTier",
    "Provider",
    "LLMResponse",
    "LLMMetrics",
    "LLMRouter",
    "get_llm_router",
]

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from shared.config import get_settings

logger = logging.getLogger(__name__)

OPENROUTER_CHAT_URL = "https://openrouter.ai/api/v1/chat/completions"


class TaskType(Enum):
    """Types of LLM tasks for routing decisions."""
    SIMILARITY_MATCHING = "similarity_matching"    # Group equipment around a reference
    PROTOCOL_GENERATION = "protocol_generation"    # Maintenance checklist drafting
    STEP_ILLUSTRATION = "step_illustration"        # Image for a single protocol step


class ModelTier(Enum):
    """LLM tiers from cheapest/fastest to most capable."""
    LOCAL_CAPABLE = "local_capable"     # llama3:8b via Ollama
    CLOUD_STANDARD = "cloud_standard"   # LLM_MODEL via OpenRouter
    CLOUD_IMAGE = "cloud_image"         # IMAGE_GENERATION_MODEL via OpenRouter


class Provider(Enum):
    """LLM providers."""
    OLLAMA = "ollama"
    OPENROUTER = "openrouter"


@dataclass
class LLMResponse:
    """Response from an LLM call.

    For image tasks ``images`` holds the returned image URLs (usually
    base64 data URIs) and ``content`` any accompanying text.
    """
    content: str
    provider: Provider
    model: str
    tier: ModelTier
    latency_ms: int
    input_tokens: int | None = None
    output_tokens: int | None = None
    success: bool = True
    error: str | None = None
    images: list[str] | None = None


@dataclass
class LLMMetrics:
    """Metrics for an LLM call (for tracking/logging)."""
    task_type: TaskType
    tier: ModelTier
    provider: Provider
    model: str
    latency_ms: int
    input_tokens: int | None
    output_tokens: int | None
    success: bool
    error: str | None = None


# Task type to default tier mapping
TASK_TO_TIER: dict[TaskType, ModelTier] = {
    TaskType.SIMILARITY_MATCHING: ModelTier.CLOUD_STANDARD,
    TaskType.PROTOCOL_GENERATION: ModelTier.CLOUD_STANDARD,
    TaskType.STEP_ILLUSTRATION: ModelTier.CLOUD_IMAGE,
}

# Fallback chain: if tier fails, try next tier (only in hybrid mode)
FALLBACK_CHAIN: dict[ModelTier, ModelTier | None] = {
    ModelTier.LOCAL_CAPABLE: ModelTier.CLOUD_STANDARD,
    ModelTier.CLOUD_STANDARD: ModelTier.LOCAL_CAPABLE,
    ModelTier.CLOUD_IMAGE: None,  # Ollama cannot draw
}


class LLMRouter:
    """
    Centralized router for the suggestion models.

    Routes requests to appropriate models based on task type,
    handles fallbacks, and tracks metrics. Failures never raise:
    they come back as ``LLMResponse(success=False)`` so callers decide
    how to surface them.
    """

    def __init__(self):
        self.settings = get_settings()
        self._metrics_buffer: list[LLMMetrics] = []

    def _get_tier_config(self, tier: ModelTier) -> tuple[Provider, str]:
        """Get provider and model for a tier."""
        configs = {
            ModelTier.LOCAL_CAPABLE: (Provider.OLLAMA, self.settings.LOCAL_CAPABLE_MODEL),
            ModelTier.CLOUD_STANDARD: (Provider.OPENROUTER, self.settings.LLM_MODEL),
            ModelTier.CLOUD_IMAGE: (Provider.OPENROUTER, self.settings.IMAGE_GENERATION_MODEL),
        }
        return configs.get(tier, (Provider.OPENROUTER, self.settings.LLM_MODEL))

    async def invoke(
        self,
        task_type: TaskType,
        messages: list[dict[str, str]],
        temperature: float = 0.4,
        max_tokens: int = 2000,
        json_mode: bool = False,
        force_tier: ModelTier | None = None,
        disable_fallback: bool = False,
    ) -> LLMResponse:
        """
        Route LLM call to appropriate model based on task type.

        Args:
            task_type: Type of task (determines model selection)
            messages: Chat messages in OpenAI format
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response
            json_mode: Ask the provider for a JSON object response
            force_tier: Override automatic tier selection
            disable_fallback: If True, don't attempt fallback on failure

        Returns:
            LLMResponse with content and metadata
        """
        tier = force_tier or TASK_TO_TIER.get(task_type, ModelTier.CLOUD_STANDARD)
        provider, model = self._get_tier_config(tier)

        logger.debug(
            f"LLM Router: task={task_type.value}, tier={tier.value}, "
            f"provider={provider.value}, model={model}"
        )

        start_time = time.time()
        try:
            if provider == Provider.OLLAMA:
                response = await self._call_ollama(
                    model, messages, temperature, max_tokens, json_mode
                )
            else:
                response = await self._call_openrouter(
                    model,
                    messages,
                    temperature,
                    max_tokens,
                    json_mode=json_mode,
                    with_images=tier == ModelTier.CLOUD_IMAGE,
                )

            latency_ms = int((time.time() - start_time) * 1000)

            self._record_metrics(LLMMetrics(
                task_type=task_type,
                tier=tier,
                provider=provider,
                model=model,
                latency_ms=latency_ms,
                input_tokens=response.get("input_tokens"),
                output_tokens=response.get("output_tokens"),
                success=True,
            ))

            return LLMResponse(
                content=response["content"],
                provider=provider,
                model=model,
                tier=tier,
                latency_ms=latency_ms,
                input_tokens=response.get("input_tokens"),
                output_tokens=response.get("output_tokens"),
                images=response.get("images"),
            )

        except (httpx.HTTPError, KeyError, IndexError, ValueError) as e:
            latency_ms = int((time.time() - start_time) * 1000)
            error_msg = str(e) or type(e).__name__

            logger.warning(
                f"LLM call failed: tier={tier.value}, provider={provider.value}, "
                f"model={model}, error={error_msg}"
            )

            self._record_metrics(LLMMetrics(
                task_type=task_type,
                tier=tier,
                provider=provider,
                model=model,
                latency_ms=latency_ms,
                input_tokens=None,
                output_tokens=None,
                success=False,
                error=error_msg,
            ))

            if not disable_fallback and self.settings.USE_HYBRID_LLM:
                fallback_tier = FALLBACK_CHAIN.get(tier)
                if fallback_tier and fallback_tier != tier:
                    logger.info(f"Attempting fallback: {tier.value} -> {fallback_tier.value}")
                    return await self.invoke(
                        task_type=task_type,
                        messages=messages,
                        temperature=temperature,
                        max_tokens=max_tokens,
                        json_mode=json_mode,
                        force_tier=fallback_tier,
                        disable_fallback=True,  # Only one fallback attempt
                    )

            return LLMResponse(
                content="",
                provider=provider,
                model=model,
                tier=tier,
                latency_ms=latency_ms,
                success=False,
                error=error_msg,
            )

    async def _call_ollama(
        self,
        model: str,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> dict[str, Any]:
        """Call Ollama local model."""
        body: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
            },
        }
        if json_mode:
            body["format"] = "json"

        async with httpx.AsyncClient(timeout=self.settings.LLM_TIMEOUT_SECONDS) as client:
            response = await client.post(
                f"{self.settings.OLLAMA_BASE_URL}/api/chat",
                json=body,
            )
            response.raise_for_status()
            data = response.json()

            return {
                "content": data["message"]["content"],
                "input_tokens": data.get("prompt_eval_count"),
                "output_tokens": data.get("eval_count"),
            }

    async def _call_openrouter(
        self,
        model: str,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
        *,
        json_mode: bool = False,
        with_images: bool = False,
    ) -> dict[str, Any]:
        """Call OpenRouter cloud model."""
        request_body: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        if json_mode:
            request_body["response_format"] = {"type": "json_object"}
        if with_images:
            request_body["modalities"] = ["image", "text"]

        async with httpx.AsyncClient(timeout=self.settings.LLM_TIMEOUT_SECONDS) as client:
            response = await client.post(
                OPENROUTER_CHAT_URL,
                headers={
                    "Authorization": f"Bearer {self.settings.OPENROUTER_API_KEY}",
                    "HTTP-Referer": self.settings.SITE_URL,
                    "X-Title": self.settings.SITE_NAME,
                },
                json=request_body,
            )
            response.raise_for_status()
            data = response.json()

            message = data["choices"][0]["message"]
            usage = data.get("usage") or {}
            images = [
                image["image_url"]["url"]
                for image in message.get("images") or []
                if image.get("image_url", {}).get("url")
            ]
            return {
                "content": message.get("content") or "",
                "input_tokens": usage.get("prompt_tokens"),
                "output_tokens": usage.get("completion_tokens"),
                "images": images,
            }

    def _record_metrics(self, metrics: LLMMetrics) -> None:
        """Buffer metrics for batch processing."""
        self._metrics_buffer.append(metrics)

        logger.info(
            f"LLM metrics: task={metrics.task_type.value}, tier={metrics.tier.value}, "
            f"provider={metrics.provider.value}, model={metrics.model}, "
            f"latency_ms={metrics.latency_ms}, success={metrics.success}",
            extra={
                "llm_task_type": metrics.task_type.value,
                "llm_tier": metrics.tier.value,
                "llm_provider": metrics.provider.value,
                "llm_model": metrics.model,
                "llm_latency_ms": metrics.latency_ms,
                "llm_success": metrics.success,
                "llm_input_tokens": metrics.input_tokens,
                "llm_output_tokens": metrics.output_tokens,
            }
        )

    def get_pending_metrics(self) -> list[LLMMetrics]:
        """Get and clear pending metrics."""
        metrics = self._metrics_buffer.copy()
        self._metrics_buffer.clear()
        return metrics

    async def health_check(self) -> dict[str, Any]:
        """Check health of the configured LLM providers."""
        results: dict[str, Any] = {}

        if self.settings.USE_HYBRID_LLM:
            try:
                async with httpx.AsyncClient(timeout=5.0) as client:
                    response = await client.get(f"{self.settings.OLLAMA_BASE_URL}/api/tags")
                    response.raise_for_status()
                    models = [m["name"] for m in response.json().get("models", [])]
                    results["ollama"] = {
                        "status": "healthy",
                        "models_available": models,
                    }
            except httpx.HTTPError as e:
                results["ollama"] = {
                    "status": "unhealthy",
                    "error": str(e),
                }

        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(
                    "https://openrouter.ai/api/v1/models",
                    headers={
                        "Authorization": f"Bearer {self.settings.OPENROUTER_API_KEY}",
                    }
                )
                response.raise_for_status()
                results["openrouter"] = {
                    "status": "healthy",
                }
        except httpx.HTTPError as e:
            results["openrouter"] = {
                "status": "unhealthy",
                "error": str(e),
            }

        return results


# Singleton instance
_router_instance: LLMRouter | None = None


def get_llm_router() -> LLMRouter:
    """Get singleton LLM router instance."""
    global _router_instance
    if _router_instance is None:
        _router_instance = LLMRouter()
    return _router_instance
