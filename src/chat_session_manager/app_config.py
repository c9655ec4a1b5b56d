from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from chat_session_manager.models import ModelOption

_API_KEY_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "azure_openai": "AZURE_OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


@dataclass
class RuntimeEnv:
    provider_api_key: str
    provider_env_var: str


@dataclass
class AppConfig:
    provider_name: str
    model: str
    max_conversation_tokens: int
    max_tokens: int
    temperature: float
    request_timeout_seconds: float
    store_db_path: str
    user_id: str
    azure_endpoint: str | None
    azure_api_version: str
    log_level: str
    log_consumers: list | None
    models: list[ModelOption] = field(default_factory=list)


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _parse_models(raw: object, default_model: str) -> list[ModelOption]:
    options: list[ModelOption] = []
    if isinstance(raw, list):
        for entry in raw:
            if isinstance(entry, str) and entry.strip():
                options.append(ModelOption(entry.strip(), entry.strip()))
            elif isinstance(entry, dict) and entry.get("DeploymentId"):
                deployment_id = str(entry["DeploymentId"]).strip()
                options.append(ModelOption(deployment_id, str(entry.get("Name") or deployment_id)))
    if not any(o.deployment_id == default_model for o in options):
        options.insert(0, ModelOption(default_model, default_model))
    return options


def parse_app_config(config: dict) -> AppConfig:
    model = str(config.get("Model", "gpt-4o-mini"))
    return AppConfig(
        provider_name=str(config.get("Provider", "openai")).strip().lower(),
        model=model,
        max_conversation_tokens=int(config.get("MaxConversationTokens", 4000)),
        max_tokens=int(config.get("MaxTokens", 4000)),
        temperature=float(config.get("Temperature", 0.3)),
        request_timeout_seconds=float(config.get("RequestTimeoutSeconds", 60)),
        store_db_path=str(config.get("StoreDbPath", ".chat_sessions/chat.db")),
        user_id=str(config.get("UserId", "")).strip() or "local-user",
        azure_endpoint=str(config.get("AzureEndpoint", "")).strip() or None,
        azure_api_version=str(config.get("AzureApiVersion", "2024-06-01")),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
        models=_parse_models(config.get("Models"), model),
    )


def resolve_runtime_env(provider_name: str) -> RuntimeEnv:
    env_var = _API_KEY_ENV_VARS.get(provider_name, "OPENAI_API_KEY")
    return RuntimeEnv(
        provider_api_key=os.environ.get(env_var, ""),
        provider_env_var=env_var,
    )
