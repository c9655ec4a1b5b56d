from __future__ import annotations

import openai
from loguru import logger
from tenacity import retry

from chat_session_manager.provider import CompletionResult
from chat_session_manager.providers.common import default_retry_kwargs
from chat_session_manager.system_prompt import (
    CHAT_SYSTEM_PROMPT,
    SUMMARIZE_SYSTEM_PROMPT,
    SUMMARY_MAX_TOKENS,
    clean_summary,
)

_TRANSIENT_ERRORS = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.APITimeoutError,
)


def _to_openai_messages(system_prompt: str, user_text: str) -> list[dict]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_text},
    ]


class OpenAIProvider:
    """Completion provider for OpenAI and Azure OpenAI deployments."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        max_conversation_tokens: int = 4000,
        max_tokens: int = 4000,
        temperature: float = 0.3,
        timeout: float = 60.0,
        client: openai.AsyncOpenAI | None = None,
    ):
        self._client = client or openai.AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self._model = model
        self._max_conversation_tokens = max_conversation_tokens
        self._max_tokens = max_tokens
        self._temperature = temperature

    @classmethod
    def for_azure(
        cls,
        api_key: str,
        *,
        endpoint: str,
        api_version: str,
        timeout: float = 60.0,
        **kwargs,
    ) -> OpenAIProvider:
        client = openai.AsyncAzureOpenAI(
            api_key=api_key,
            azure_endpoint=endpoint,
            api_version=api_version,
            timeout=timeout,
            max_retries=0,
        )
        return cls(api_key, client=client, timeout=timeout, **kwargs)

    @property
    def default_model(self) -> str:
        return self._model

    @property
    def max_conversation_tokens(self) -> int:
        return self._max_conversation_tokens

    async def get_chat_completion(
        self,
        session_id: str,
        conversation: str,
        deployment_name: str = "",
    ) -> CompletionResult:
        return await self._complete(session_id, conversation, deployment_name)

    async def get_completion(
        self,
        session_id: str,
        prompt: str,
        deployment_name: str = "",
    ) -> CompletionResult:
        return await self._complete(session_id, prompt, deployment_name)

    @retry(**default_retry_kwargs(_TRANSIENT_ERRORS))
    async def summarize(self, session_id: str, prompt: str) -> str:
        logger.debug(f"Summarize API request: model={self._model}, session={session_id}")
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=_to_openai_messages(SUMMARIZE_SYSTEM_PROMPT, prompt),
            max_tokens=SUMMARY_MAX_TOKENS,
            temperature=0,
            user=session_id,
        )
        summary = clean_summary(response.choices[0].message.content or "")
        logger.debug(f"Summarize API response: {summary!r}")
        return summary

    @retry(**default_retry_kwargs(_TRANSIENT_ERRORS))
    async def _complete(self, session_id: str, user_text: str, deployment_name: str) -> CompletionResult:
        model = deployment_name or self._model
        logger.debug(
            f"API request: model={model}, session={session_id}, "
            f"max_tokens={self._max_tokens}, input_chars={len(user_text):,}"
        )
        response = await self._client.chat.completions.create(
            model=model,
            messages=_to_openai_messages(CHAT_SYSTEM_PROMPT, user_text),
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            user=session_id,
        )
        text = response.choices[0].message.content or ""
        usage = response.usage
        prompt_tokens = usage.prompt_tokens if usage else 0
        completion_tokens = usage.completion_tokens if usage else 0
        logger.debug(
            f"API response: finish_reason={response.choices[0].finish_reason}, "
            f"prompt_tokens={prompt_tokens}, completion_tokens={completion_tokens}"
        )
        return CompletionResult(text, prompt_tokens, completion_tokens)
