"""LLM completion client — any OpenAI-compatible chat completions API.

Config is read from a .env file (drop it in your project root) or env vars.

Setup — pick ONE provider:

  # OpenAI (direct)
  OPENAI_API_KEY=sk-...

  # OpenRouter (one key, every model)
  RECAP_LLM_API_KEY=sk-or-v1-your-key-here
  RECAP_LLM_BASE_URL=https://openrouter.ai/api/v1
  RECAP_LLM_MODEL=google/gemma-3-12b-it:free

  # Ollama (local, free)
  RECAP_LLM_BASE_URL=http://localhost:11434/v1
  RECAP_LLM_MODEL=llama3
  RECAP_LLM_API_KEY=ollama
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from . import config
from .errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)


class CompletionClient(Protocol):
    async def complete(self, system_prompt: str, user_content: str,
                       max_tokens: int, temperature: float) -> str: ...


class LLMClient:
    def __init__(self, api_key: str, base_url: Optional[str] = None,
                 model: str = "gpt-4o-mini", timeout: float = 60.0) -> None:
        if not api_key:
            raise ConfigurationError("No LLM API key configured. Set RECAP_LLM_API_KEY or OPENAI_API_KEY.")
        self.model = model
        self._client_kwargs: dict[str, Any] = {"api_key": api_key, "timeout": timeout, "max_retries": 1}
        if base_url:
            self._client_kwargs["base_url"] = base_url
        self._client = None

    @classmethod
    def from_config(cls) -> "LLMClient":
        return cls(
            api_key=config.get("RECAP_LLM_API_KEY") or config.get("OPENAI_API_KEY"),
            base_url=config.get("RECAP_LLM_BASE_URL") or None,
            model=config.get("RECAP_LLM_MODEL", "gpt-4o-mini"),
            timeout=config.get_float("RECAP_LLM_TIMEOUT", 60.0),
        )

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(**self._client_kwargs)
        return self._client

    async def _create(self, messages: list[dict[str, str]], max_tokens: int, temperature: float):
        return await self._get_client().chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    async def complete(self, system_prompt: str, user_content: str,
                       max_tokens: int = 1000, temperature: float = 0.3) -> str:
        import openai

        logger.info("Calling LLM: model=%s (%d chars in)", self.model, len(user_content))
        try:
            try:
                response = await self._create(
                    [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_content},
                    ],
                    max_tokens, temperature,
                )
            except openai.BadRequestError as sys_err:
                # some free models reject system prompts
                if "system" not in str(sys_err).lower():
                    raise
                logger.info("System prompt not supported, retrying as user message")
                response = await self._create(
                    [{"role": "user", "content": f"{system_prompt}\n\n{user_content}"}],
                    max_tokens, temperature,
                )
        except openai.APIStatusError as exc:
            raise UpstreamError("LLM request failed", status=exc.status_code,
                                body=exc.response.text) from exc
        except openai.APIError as exc:
            raise UpstreamError(f"LLM request failed: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices and choices[0].message else None
        if not isinstance(content, str) or not content.strip():
            raise UpstreamError("LLM response missing completion text", body=str(response)[:500])
        logger.info("LLM completion received (%d chars)", len(content))
        return content.strip()
