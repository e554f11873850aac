"""Microsoft Agent Framework backend for :class:`brief_wizard.gateway.LLMGateway`.

This module imports ``agent_framework`` at the top. Only
:func:`brief_wizard.gateway.create_gateway` imports this module lazily, so the
gateway and the state machine load without it. The provider specific chat
client class is resolved on first use.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any, Dict, Iterable, List, Optional, Tuple

from agent_framework import ChatMessage as MAFChatMessage, Role

from .config import ModelSettings
from .gateway import ChatMessage

_PROVIDER_ALIASES = {
    "openai": "openai",
    "oai": "openai",
    "azure-openai": "azure",
    "azure_openai": "azure",
    "azure": "azure",
}

# provider -> (module, client class)
_PROVIDER_CLIENTS: Dict[str, Tuple[str, str]] = {
    "openai": ("agent_framework.openai", "OpenAIChatClient"),
    "azure": ("agent_framework.azure", "AzureOpenAIChatClient"),
}


class MAFIntegrationError(RuntimeError):
    """Raised when the MAF client cannot be initialized."""


def resolve_provider(name: str) -> str:
    provider = _PROVIDER_ALIASES.get(name.strip().lower())
    if provider is None:
        raise MAFIntegrationError(f"Unsupported MAF provider '{name}'.")
    return provider


def _client_kwargs(provider: str, settings: ModelSettings) -> Dict[str, Any]:
    if provider == "azure":
        return {
            "api_key": settings.api_key,
            "deployment_name": settings.model,
            "endpoint": settings.endpoint,
            "api_version": settings.api_version,
        }
    return {
        "api_key": settings.api_key,
        "model_id": settings.model,
        "base_url": settings.endpoint,
    }


def _to_framework_message(message: ChatMessage) -> MAFChatMessage:
    try:
        role = Role(message.role)
    except ValueError as exc:
        raise ValueError(
            f"Unsupported role for MAF chat message: {message.role}"
        ) from exc
    return MAFChatMessage(role=role, text=message.content)


class MAFChatClient:
    """Completes prompts through an OpenAI or Azure OpenAI MAF chat client."""

    def __init__(self, settings: ModelSettings) -> None:
        self._provider = resolve_provider(settings.provider)
        module_name, class_name = _PROVIDER_CLIENTS[self._provider]
        try:
            client_cls = getattr(import_module(module_name), class_name)
        except ModuleNotFoundError as exc:  # pragma: no cover - MAF runtime
            missing = exc.name or "a required dependency"
            raise MAFIntegrationError(
                f"Microsoft Agent Framework dependency '{missing}' is missing. "
                "Reinstall the project dependencies (e.g. `pip install -e .`)."
            ) from exc
        self._client = client_cls(**_client_kwargs(self._provider, settings))

    @property
    def supports_model_override(self) -> bool:
        # An Azure deployment is pinned to one model.
        return self._provider == "openai"

    async def complete(
        self,
        messages: Iterable[ChatMessage],
        *,
        temperature: Optional[float] = None,
        model_id: Optional[str] = None,
    ) -> ChatMessage:
        payload: List[MAFChatMessage] = [
            _to_framework_message(message) for message in messages
        ]
        options: Dict[str, Any] = {}
        if temperature is not None:
            options["temperature"] = temperature
        if model_id and self.supports_model_override:
            options["model_id"] = model_id
        response = await self._client.get_response(messages=payload, **options)
        return ChatMessage(role="assistant", content=response.text or "")
