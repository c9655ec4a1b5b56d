import asyncio
import unittest
from types import SimpleNamespace
from unittest.mock import patch

import httpx
import openai
from tenacity import wait_none

from chat_session_manager.provider import CompletionProvider, CompletionResult
from chat_session_manager.providers.openai_provider import OpenAIProvider
from chat_session_manager.system_prompt import CHAT_SYSTEM_PROMPT, SUMMARIZE_SYSTEM_PROMPT


def _response(text: str | None, prompt_tokens: int = 0, completion_tokens: int = 0, usage: bool = True):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text), finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens) if usage else None,
    )


class _FakeCompletions:
    def __init__(self, responses: list[object]):
        self._responses = list(responses)
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class _FakeClient:
    def __init__(self, responses: list[object]):
        self.completions = _FakeCompletions(responses)
        self.chat = SimpleNamespace(completions=self.completions)


class OpenAIProviderTests(unittest.TestCase):
    def _make_provider(self, *responses) -> tuple[OpenAIProvider, _FakeCompletions]:
        client = _FakeClient(list(responses))
        provider = OpenAIProvider(
            "test-key",
            model="gpt-test",
            max_conversation_tokens=1234,
            max_tokens=256,
            temperature=0.2,
            client=client,
        )
        return provider, client.completions

    def test_exposes_configuration(self) -> None:
        provider, _ = self._make_provider()
        self.assertIsInstance(provider, CompletionProvider)
        self.assertEqual("gpt-test", provider.default_model)
        self.assertEqual(1234, provider.max_conversation_tokens)

    def test_chat_completion_returns_text_and_usage(self) -> None:
        provider, completions = self._make_provider(_response("Hello there", 11, 4))

        result = asyncio.run(provider.get_chat_completion("s1", "hi\nhow are you?"))

        self.assertEqual(CompletionResult("Hello there", 11, 4), result)
        call = completions.calls[0]
        self.assertEqual("gpt-test", call["model"])
        self.assertEqual("s1", call["user"])
        self.assertEqual(256, call["max_tokens"])
        self.assertEqual(0.2, call["temperature"])
        self.assertEqual(
            [
                {"role": "system", "content": CHAT_SYSTEM_PROMPT},
                {"role": "user", "content": "hi\nhow are you?"},
            ],
            call["messages"],
        )

    def test_deployment_override_selects_model(self) -> None:
        provider, completions = self._make_provider(_response("x", 1, 1))

        asyncio.run(provider.get_completion("s1", "prompt", "gpt-other"))

        self.assertEqual("gpt-other", completions.calls[0]["model"])

    def test_missing_usage_and_content_default_to_empty(self) -> None:
        provider, _ = self._make_provider(_response(None, usage=False))

        self.assertEqual(CompletionResult("", 0, 0), asyncio.run(provider.get_completion("s1", "prompt")))

    def test_summarize_uses_label_prompt_and_cleans_text(self) -> None:
        provider, completions = self._make_provider(_response('  "Lisbon  Trip."  '))

        summary = asyncio.run(provider.summarize("s1", "Plan a week in Lisbon"))

        self.assertEqual("Lisbon Trip", summary)
        call = completions.calls[0]
        self.assertEqual(SUMMARIZE_SYSTEM_PROMPT, call["messages"][0]["content"])
        self.assertEqual(0, call["temperature"])

    def test_non_transient_errors_are_not_retried(self) -> None:
        provider, completions = self._make_provider(ValueError("bad request"))

        with self.assertRaises(ValueError):
            asyncio.run(provider.get_chat_completion("s1", "hi"))
        self.assertEqual(1, len(completions.calls))

    def test_rate_limit_is_retried_then_succeeds(self) -> None:
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        rate_limited = openai.RateLimitError(
            "slow down",
            response=httpx.Response(429, request=request),
            body=None,
        )
        provider, completions = self._make_provider(rate_limited, _response("recovered", 3, 2))

        with patch.object(OpenAIProvider._complete.retry, "wait", wait_none()):
            result = asyncio.run(provider.get_chat_completion("s1", "hi"))

        self.assertEqual(CompletionResult("recovered", 3, 2), result)
        self.assertEqual(2, len(completions.calls))

    def test_for_azure_builds_azure_client(self) -> None:
        provider = OpenAIProvider.for_azure(
            "azure-key",
            endpoint="https://example.openai.azure.com",
            api_version="2024-06-01",
            model="my-deployment",
        )
        self.assertIsInstance(provider._client, openai.AsyncAzureOpenAI)
        self.assertEqual("my-deployment", provider.default_model)


if __name__ == "__main__":
    unittest.main()
