"""Singleton OpenAI wrapper: structured narrative replies, image renders, cost tracking."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from settlers.engine.errors import GenerationError

logger = logging.getLogger(__name__)

# Pricing per 1 M tokens (as of 2025-06)
_PRICING: Dict[str, Dict[str, float]] = {
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
}


class LLMClient:
    """Singleton OpenAI wrapper.

    * ``chat_structured()`` → reply text constrained to a JSON schema
    * ``generate_image()``  → one rendered image as a data URI (or provider URL)
    * One attempt per call; failures surface as :class:`GenerationError`
    * Per-session cost tracking (tokens + USD)
    """

    _instance: Optional["LLMClient"] = None

    def __new__(cls) -> "LLMClient":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialised = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialised:
            return
        from config import settings

        self._settings = settings
        self._client: Any = None
        self._total_input_tokens: int = 0
        self._total_output_tokens: int = 0
        self._images_generated: int = 0
        self._initialised = True

    # ── lazy OpenAI client ────────────────────────────────
    @property
    def client(self) -> Any:
        if self._client is None:
            try:
                from openai import OpenAI

                self._client = OpenAI(
                    api_key=self._settings.OPENAI_API_KEY or None,
                    base_url=self._settings.OPENAI_BASE_URL or None,
                )
            except Exception as exc:
                logger.error("Failed to create OpenAI client: %s", exc)
                raise GenerationError(f"Narrative service unavailable: {exc}") from exc
        return self._client

    # ── public API ────────────────────────────────────────
    def chat_structured(
        self,
        messages: List[Dict[str, str]],
        schema: Dict[str, Any],
        *,
        schema_name: str = "scene",
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Send one chat completion constrained to *schema* and return the raw reply text."""
        temperature = temperature if temperature is not None else self._settings.OPENAI_TEMPERATURE
        max_tokens = max_tokens or self._settings.OPENAI_MAX_TOKENS

        kwargs: Dict[str, Any] = {
            "model": self._settings.OPENAI_MODEL,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": schema_name, "schema": schema, "strict": False},
            },
        }
        try:
            response = self.client.chat.completions.create(**kwargs)
        except GenerationError:
            raise
        except Exception as exc:
            logger.warning("Narrative request failed: %s", exc)
            raise GenerationError(f"Narrative request failed: {exc}") from exc

        usage = response.usage
        if usage:
            self._total_input_tokens += usage.prompt_tokens
            self._total_output_tokens += usage.completion_tokens

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise GenerationError("Narrative service returned an empty reply.")
        return content

    def generate_image(self, prompt: str, aspect_ratio: str = "wide") -> str:
        """Render *prompt* once and return a ``data:`` URI or the provider's URL."""
        size = self._settings.IMAGE_SIZES.get(aspect_ratio)
        if size is None:
            raise ValueError(f"Unknown aspect ratio: {aspect_ratio!r}")
        try:
            response = self.client.images.generate(
                model=self._settings.OPENAI_IMAGE_MODEL,
                prompt=prompt,
                n=1,
                size=size,
            )
        except GenerationError:
            raise
        except Exception as exc:
            logger.warning("Image request failed: %s", exc)
            raise GenerationError(f"Image request failed: {exc}") from exc

        if not response.data:
            raise GenerationError("Failed to generate an image.")
        image = response.data[0]
        self._images_generated += 1
        if getattr(image, "b64_json", None):
            return f"data:image/png;base64,{image.b64_json}"
        if getattr(image, "url", None):
            return image.url
        raise GenerationError("Failed to generate an image.")

    # ── cost tracking ─────────────────────────────────────
    @property
    def total_input_tokens(self) -> int:
        return self._total_input_tokens

    @property
    def total_output_tokens(self) -> int:
        return self._total_output_tokens

    @property
    def images_generated(self) -> int:
        return self._images_generated

    @property
    def total_cost_usd(self) -> float:
        pricing = _PRICING.get(self._settings.OPENAI_MODEL, _PRICING["gpt-4o-mini"])
        return (
            self._total_input_tokens * pricing["input"] / 1_000_000
            + self._total_output_tokens * pricing["output"] / 1_000_000
        )

    def reset_cost(self) -> None:
        self._total_input_tokens = 0
        self._total_output_tokens = 0
        self._images_generated = 0


# Convenience module-level singleton
llm_client = LLMClient()
