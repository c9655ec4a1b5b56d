from typing import NamedTuple, Protocol, runtime_checkable

from chat_session_manager.app_config import AppConfig, RuntimeEnv


class CompletionResult(NamedTuple):
    text: str
    prompt_tokens: int
    response_tokens: int


@runtime_checkable
class CompletionProvider(Protocol):
    @property
    def default_model(self) -> str:
        """Deployment used when a request does not name one."""
        ...

    @property
    def max_conversation_tokens(self) -> int:
        """Token budget for the conversation window sent with a chat completion."""
        ...

    async def get_chat_completion(
        self,
        session_id: str,
        conversation: str,
        deployment_name: str = "",
    ) -> CompletionResult:
        """Complete a windowed conversation; returns text and token usage."""
        ...

    async def get_completion(
        self,
        session_id: str,
        prompt: str,
        deployment_name: str = "",
    ) -> CompletionResult:
        """Complete a single prompt with no prior conversation."""
        ...

    async def summarize(self, session_id: str, prompt: str) -> str:
        """Short label for a session, derived from its first prompt."""
        ...


def create_provider(app: AppConfig, env: RuntimeEnv) -> CompletionProvider:
    """Factory: create a CompletionProvider by name."""
    name = app.provider_name.strip().lower()
    options = dict(
        model=app.model,
        max_conversation_tokens=app.max_conversation_tokens,
        max_tokens=app.max_tokens,
        temperature=app.temperature,
        timeout=app.request_timeout_seconds,
    )
    if name == "openai":
        from chat_session_manager.providers.openai_provider import OpenAIProvider
        return OpenAIProvider(env.provider_api_key, **options)
    if name == "azure_openai":
        from chat_session_manager.providers.openai_provider import OpenAIProvider
        if not app.azure_endpoint:
            raise ValueError("AzureEndpoint is required for the 'azure_openai' provider")
        return OpenAIProvider.for_azure(
            env.provider_api_key,
            endpoint=app.azure_endpoint,
            api_version=app.azure_api_version,
            **options,
        )
    if name == "anthropic":
        from chat_session_manager.providers.anthropic_provider import AnthropicProvider
        return AnthropicProvider(env.provider_api_key, **options)
    raise ValueError(
        f"Unknown provider: {app.provider_name!r}. Supported: 'openai', 'azure_openai', 'anthropic'"
    )
