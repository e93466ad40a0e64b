"""
Provider adapters for tradedesk.

This module is the only place that *directly* calls an LLM.  Everything else (tool-call loop,
tools, round-table) stays provider-agnostic and only sees ``ConversationMessage`` /
``AdapterReply``.

We support two wire protocols out of the box:

1. **Chat-style** (OpenAI chat completions): system/user/assistant/tool message array, tool calls
   with JSON-string arguments, tool results keyed by ``tool_call_id``.
2. **Generate-style** (Google Gemini generate-content): ``user``/``model`` contents, function calls
   with parsed arguments, tool results sent back as function-response parts.

Adapters never execute tools.  Clients are constructed once at startup by :func:`build_adapters`;
a provider without credentials gets an :class:`UnavailableAdapter` that answers with a single
terminal error text instead of raising.
"""

import base64
import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Mapping,
    Sequence,
    Type,
)

from tradedesk.config import (
    Settings,
    settings,
)
from tradedesk.core.schema import (
    AdapterReply,
    AgentConfig,
    ConversationMessage,
    ProviderKind,
    Role,
    ToolCall,
    VisionImage,
)
from tradedesk.tools import (
    ToolDefinition,
    get_tool_schemas,
)

logger = logging.getLogger(__name__)


class ProviderCallError(RuntimeError):
    """Raised when a provider request fails or returns an unusable response."""


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_ADAPTER_REGISTRY: dict[ProviderKind, Type["ProviderAdapter"]] = {}


def register_adapter(kind: ProviderKind) -> Callable:
    """Decorator to register an adapter class for *kind*."""

    def wrapper(cls: Type["ProviderAdapter"]) -> Type["ProviderAdapter"]:
        _ADAPTER_REGISTRY[kind] = cls
        return cls

    return wrapper


def _last_user_index(history: Sequence[ConversationMessage]) -> int:
    for idx in range(len(history) - 1, -1, -1):
        if history[idx].role is Role.USER:
            return idx
    return -1


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class ProviderAdapter(ABC):
    """Translate neutral history + tools into one provider's request, and its response back."""

    label: ClassVar[str] = "provider"

    @classmethod
    def from_settings(cls, cfg: Settings) -> "ProviderAdapter":
        """Build the adapter (or its unavailable stand-in) from configuration."""
        raise NotImplementedError

    @abstractmethod
    async def resolve_turn(
        self,
        agent: AgentConfig,
        history: Sequence[ConversationMessage],
        tools: Sequence[ToolDefinition],
        images: Sequence[VisionImage] = (),
    ) -> AdapterReply:
        """Return terminal text, or tool calls plus the provider-native assistant turn."""


class UnavailableAdapter(ProviderAdapter):
    """Stand-in for a provider whose credentials are missing."""

    def __init__(self, label: str) -> None:
        self._label = label

    async def resolve_turn(
        self,
        agent: AgentConfig,
        history: Sequence[ConversationMessage],
        tools: Sequence[ToolDefinition],
        images: Sequence[VisionImage] = (),
    ) -> AdapterReply:
        logger.warning("Agent '%s' routed to unconfigured %s provider", agent.id, self._label)
        return AdapterReply(text=f"Error: {self._label} provider unavailable (no API key configured).")


class AdapterRegistry:
    """One adapter per ``ProviderKind``; dispatch is exhaustive by construction."""

    def __init__(self, adapters: Mapping[ProviderKind, ProviderAdapter]) -> None:
        missing = [kind.value for kind in ProviderKind if kind not in adapters]
        if missing:
            raise ValueError(f"No adapter configured for provider(s): {', '.join(missing)}")
        self._adapters: Dict[ProviderKind, ProviderAdapter] = dict(adapters)

    def for_agent(self, agent: AgentConfig) -> ProviderAdapter:
        """Return the adapter serving *agent*'s provider."""
        return self._adapters[agent.provider.kind]


def build_adapters(cfg: Settings | None = None) -> AdapterRegistry:
    """
    Factory that constructs every registered adapter from settings.

    Missing credentials are decided here, once, rather than on the first model call.
    """
    cfg = cfg or settings
    return AdapterRegistry({kind: cls.from_settings(cfg) for kind, cls in _ADAPTER_REGISTRY.items()})


# ---------------------------------------------------------------------------
# Concrete adapters
# ---------------------------------------------------------------------------
@register_adapter(ProviderKind.CHAT_STYLE)
class ChatStyleAdapter(ProviderAdapter):
    """OpenAI chat-completions adapter."""

    label = "OpenAI"

    def __init__(self, client: Any, max_tokens: int = 1024) -> None:
        self._client = client
        self._max_tokens = max_tokens

    @classmethod
    def from_settings(cls, cfg: Settings) -> ProviderAdapter:
        key = cfg.openai_key()
        if not key:
            return UnavailableAdapter(cls.label)
        import openai  # pylint: disable=import-outside-toplevel

        return cls(openai.AsyncOpenAI(api_key=key), max_tokens=cfg.MAX_OUTPUT_TOKENS)

    @staticmethod
    def build_messages(
        agent: AgentConfig,
        history: Sequence[ConversationMessage],
        images: Sequence[VisionImage] = (),
    ) -> List[Dict[str, Any]]:
        """Convert neutral history into the chat message array."""
        messages: List[Dict[str, Any]] = []
        if agent.system_prompt.strip():
            messages.append({"role": "system", "content": agent.system_prompt})

        last_user = _last_user_index(history)
        for idx, m in enumerate(history):
            if m.role is Role.TOOL:
                messages.append(
                    {"role": "tool", "tool_call_id": m.tool_call_id, "content": m.content}
                )
            elif m.role is Role.ASSISTANT and m.provider_payload is not None:
                # The provider requires its own tool-call turn echoed back verbatim.
                messages.append(m.provider_payload)
            elif m.role is Role.USER and images and idx == last_user:
                messages.append(
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": m.content},
                            *[
                                {
                                    "type": "image_url",
                                    "image_url": {"url": f"data:{img.mime_type};base64,{img.data}"},
                                }
                                for img in images
                            ],
                        ],
                    }
                )
            else:
                messages.append({"role": m.role.value, "content": m.content})
        return messages

    @staticmethod
    def build_tool_specs(tools: Sequence[ToolDefinition]) -> List[Dict[str, Any]] | None:
        """Function-tool list, or ``None`` so the field is omitted entirely."""
        if not tools:
            return None
        return [
            {
                "type": "function",
                "function": {
                    "name": schema["name"],
                    "description": schema["description"],
                    "parameters": dict(schema["parameters"]),
                },
            }
            for schema in get_tool_schemas(tools)
        ]

    async def resolve_turn(
        self,
        agent: AgentConfig,
        history: Sequence[ConversationMessage],
        tools: Sequence[ToolDefinition],
        images: Sequence[VisionImage] = (),
    ) -> AdapterReply:
        provider = agent.provider
        request: Dict[str, Any] = {
            "model": provider.model,
            "messages": self.build_messages(agent, history, images),
            "temperature": provider.temperature,
            "max_tokens": provider.max_tokens or self._max_tokens,
        }
        tool_specs = self.build_tool_specs(tools)
        if tool_specs:
            request["tools"] = tool_specs
            request["tool_choice"] = "auto"
        if getattr(provider, "force_json", False):
            request["response_format"] = {"type": "json_object"}

        try:
            completion = await self._client.chat.completions.create(**request)
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("OpenAI call for agent '%s' failed: %s", agent.id, exc)
            raise ProviderCallError(f"Error calling OpenAI: {exc}") from exc

        if not completion.choices:
            raise ProviderCallError("OpenAI returned no message.")
        msg = completion.choices[0].message
        logger.debug("OpenAI response for '%s': %s", agent.id, msg)

        calls = [
            ToolCall(id=tc.id, name=tc.function.name, raw_arguments=tc.function.arguments or "")
            for tc in (msg.tool_calls or [])
            if getattr(tc, "function", None) is not None
        ]
        if calls:
            return AdapterReply(
                tool_calls=calls, raw_assistant_turn=msg.model_dump(exclude_none=True)
            )
        return AdapterReply(text=msg.content or "")


@register_adapter(ProviderKind.GENERATE_STYLE)
class GenerateStyleAdapter(ProviderAdapter):
    """Google Gemini generate-content adapter."""

    label = "Gemini"

    def __init__(self, client: Any, max_tokens: int = 1024) -> None:
        self._client = client
        self._max_tokens = max_tokens

    @classmethod
    def from_settings(cls, cfg: Settings) -> ProviderAdapter:
        key = cfg.gemini_key()
        if not key:
            return UnavailableAdapter(cls.label)
        from google import genai  # pylint: disable=import-outside-toplevel

        return cls(genai.Client(api_key=key), max_tokens=cfg.MAX_OUTPUT_TOKENS)

    @staticmethod
    def build_contents(
        history: Sequence[ConversationMessage], images: Sequence[VisionImage] = ()
    ) -> List[Any]:
        """Convert neutral history into ``user``/``model`` contents."""
        from google.genai import types  # pylint: disable=import-outside-toplevel

        contents: List[Any] = []
        responses: List[Any] = []

        def flush_responses() -> None:
            # Consecutive tool results travel back as one content of function-response parts.
            if responses:
                contents.append(types.Content(role="user", parts=list(responses)))
                responses.clear()

        last_user = _last_user_index(history)
        for idx, m in enumerate(history):
            if m.role is Role.TOOL:
                responses.append(
                    types.Part.from_function_response(
                        name=m.tool_name or "tool", response={"result": m.content}
                    )
                )
                continue
            flush_responses()
            if m.role is Role.ASSISTANT:
                if m.provider_payload is not None:
                    contents.append(m.provider_payload)
                else:
                    contents.append(
                        types.Content(role="model", parts=[types.Part.from_text(text=m.content)])
                    )
                continue
            parts = [types.Part.from_text(text=m.content)]
            if images and idx == last_user:
                parts.extend(
                    types.Part.from_bytes(data=base64.b64decode(img.data), mime_type=img.mime_type)
                    for img in images
                )
            contents.append(types.Content(role="user", parts=parts))
        flush_responses()
        return contents

    def build_config(self, agent: AgentConfig, tools: Sequence[ToolDefinition]) -> Any:
        """Generation config; tool fields are left unset when the subset is empty."""
        from google.genai import types  # pylint: disable=import-outside-toplevel

        provider = agent.provider
        config: Dict[str, Any] = {
            "system_instruction": agent.system_prompt or None,
            "temperature": provider.temperature,
            "max_output_tokens": provider.max_tokens or self._max_tokens,
        }
        if tools:
            config["tools"] = [
                types.Tool(
                    function_declarations=[
                        types.FunctionDeclaration(
                            name=schema["name"],
                            description=schema["description"],
                            parameters_json_schema=dict(schema["parameters"]),
                        )
                        for schema in get_tool_schemas(tools)
                    ]
                )
            ]
            # The loop controller executes tools, never the SDK.
            config["automatic_function_calling"] = types.AutomaticFunctionCallingConfig(disable=True)
        thinking_budget = getattr(provider, "thinking_budget", None)
        if thinking_budget is not None:
            config["thinking_config"] = types.ThinkingConfig(thinking_budget=thinking_budget)
        return types.GenerateContentConfig(**config)

    async def resolve_turn(
        self,
        agent: AgentConfig,
        history: Sequence[ConversationMessage],
        tools: Sequence[ToolDefinition],
        images: Sequence[VisionImage] = (),
    ) -> AdapterReply:
        contents = self.build_contents(history, images)
        config = self.build_config(agent, tools)

        try:
            response = await self._client.aio.models.generate_content(
                model=agent.provider.model, contents=contents, config=config
            )
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("Gemini call for agent '%s' failed: %s", agent.id, exc)
            raise ProviderCallError(f"Error calling Gemini: {exc}") from exc

        function_calls = response.function_calls or []
        if function_calls:
            raw_turn = response.candidates[0].content if response.candidates else None
            calls = [
                ToolCall(
                    id=fc.id or f"{fc.name}-{i}",
                    name=fc.name or "",
                    raw_arguments=dict(fc.args or {}),
                )
                for i, fc in enumerate(function_calls)
            ]
            logger.debug("Gemini requested tools for '%s': %s", agent.id, [c.name for c in calls])
            return AdapterReply(tool_calls=calls, raw_assistant_turn=raw_turn)

        text = response.text or ""
        logger.debug("Gemini response for '%s': %s", agent.id, text)
        return AdapterReply(text=text)
