import json
import logging
from functools import lru_cache
from typing import Any

from openai import OpenAI

from cortex.core.config import get_settings

logger = logging.getLogger(__name__)


class LLMError(RuntimeError):
    pass


class LLMClient:
    """Thin wrapper over the chat completions API.

    Errors from the SDK propagate; callers decide how to degrade.
    """

    def __init__(self, api_key: str | None = None, client: Any = None) -> None:
        self._api_key = api_key
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = OpenAI(api_key=self._api_key)
        return self._client

    def complete(
        self,
        messages: list[dict[str, str]],
        *,
        model: str,
        max_tokens: int,
        json_mode: bool = False,
        temperature: float | None = None,
    ) -> str | None:
        kwargs: dict[str, Any] = {"model": model, "messages": messages, "max_completion_tokens": max_tokens}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        if temperature is not None:
            kwargs["temperature"] = temperature

        response = self.client.chat.completions.create(**kwargs)
        if not response.choices:
            return None
        return response.choices[0].message.content

    def complete_json(self, messages: list[dict[str, str]], *, model: str, max_tokens: int) -> dict:
        content = self.complete(messages, model=model, max_tokens=max_tokens, json_mode=True)
        if not content:
            raise LLMError("Resposta vazia da API")
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as exc:
            raise LLMError(f"JSON inválido na resposta do modelo: {exc}") from exc
        if not isinstance(parsed, dict):
            raise LLMError("Resposta do modelo não é um objeto JSON")
        return parsed


@lru_cache
def get_llm() -> LLMClient:
    settings = get_settings()
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not set; assistant calls will fail")
    return LLMClient(api_key=settings.openai_api_key)
