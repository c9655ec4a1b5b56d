import anthropic
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
    anthropic.RateLimitError,
    anthropic.APIConnectionError,
    anthropic.APITimeoutError,
)


def _response_text(response) -> str:
    return "".join(block.text for block in response.content if block.type == "text")


class AnthropicProvider:
    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        max_conversation_tokens: int = 4000,
        max_tokens: int = 4000,
        temperature: float = 0.3,
        timeout: float = 60.0,
    ):
        self._client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0)
        self._model = model
        self._max_conversation_tokens = max_conversation_tokens
        self._max_tokens = max_tokens
        self._temperature = temperature

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
        response = await self._client.messages.create(
            model=self._model,
            max_tokens=SUMMARY_MAX_TOKENS,
            temperature=0,
            system=SUMMARIZE_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
            metadata={"user_id": session_id},
        )
        summary = clean_summary(_response_text(response))
        logger.debug(f"Summarize API response: {summary!r}")
        return summary

    @retry(**default_retry_kwargs(_TRANSIENT_ERRORS))
    async def _complete(self, session_id: str, user_text: str, deployment_name: str) -> CompletionResult:
        model = deployment_name or self._model
        logger.debug(
            f"API request: model={model}, session={session_id}, "
            f"max_tokens={self._max_tokens}, input_chars={len(user_text):,}"
        )
        response = await self._client.messages.create(
            model=model,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            system=CHAT_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": user_text}],
            metadata={"user_id": session_id},
        )
        usage = response.usage
        logger.debug(
            f"API response: stop_reason={response.stop_reason}, "
            f"input_tokens={usage.input_tokens}, output_tokens={usage.output_tokens}"
        )
        return CompletionResult(_response_text(response), usage.input_tokens, usage.output_tokens)
