# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - LLM CLIENT
# =============================================================================
"""
LLM Client Module

Unified access to the language-model providers (Anthropic, OpenAI, Ollama)
used by every agent. Besides plain completions the client runs a bounded
tool-use loop: the model requests n8n operations, the caller's executor
performs them, and every executed request is returned as a ``ToolCallRecord``
so the agent layer can log it for the gates.

Usage:
    client = LLMClient(provider="anthropic")
    response = client.run_with_tools(
        prompt="Fix the HTTP Request node",
        system="You are the Builder.",
        tools=toolbox.definitions_for(AgentRole.BUILDER),
        executor=toolbox.execute,
    )
    for call in response.tool_calls:
        print(call.name, call.arguments)
"""

import json
import logging
import math
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import anthropic
import openai
import requests

logger = logging.getLogger(__name__)

ToolExecutor = Callable[[str, Dict[str, Any]], Any]

DEFAULT_MAX_TURNS = 30


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass
class ToolDefinition:
    """A capability the model may request, described by a JSON schema."""
    name: str
    description: str
    input_schema: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})


@dataclass
class ToolCallRecord:
    """
    One tool request executed on behalf of the model.

    Attributes:
        name: Tool name
        arguments: Arguments the model supplied
        result_ref: ``id`` field of the tool output, when it had one
        error: Error text if the executor raised
    """
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    result_ref: Optional[str] = None
    error: Optional[str] = None


@dataclass
class LLMResponse:
    """
    Standardized response from LLM.

    Attributes:
        content: Final text content
        model: Model used for generation
        tokens_input: Input tokens used (summed over tool turns)
        tokens_output: Output tokens generated (summed over tool turns)
        finish_reason: Why generation stopped (stop, length, max_turns, ...)
        tool_calls: Tool requests executed during the exchange
    """
    content: str
    model: str
    tokens_input: int = 0
    tokens_output: int = 0
    finish_reason: str = "stop"
    tool_calls: List[ToolCallRecord] = field(default_factory=list)

    @property
    def total_tokens(self) -> int:
        return self.tokens_input + self.tokens_output


@dataclass
class LLMMessage:
    """A plain-text message in a conversation."""
    role: str
    content: str

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content}


def _run_tool(executor: ToolExecutor, name: str, arguments: Dict[str, Any]) -> tuple:
    """Execute one tool request; returns (record, serialized output, is_error)."""
    record = ToolCallRecord(name=name, arguments=dict(arguments))
    try:
        output = executor(name, arguments)
    except Exception as e:
        logger.warning(f"Tool {name} failed: {e}")
        record.error = str(e)
        return record, f"Error: {e}", True

    if isinstance(output, dict) and output.get("id") is not None:
        record.result_ref = str(output["id"])
    return record, json.dumps(output, default=str), False


# =============================================================================
# BASE LLM PROVIDER
# =============================================================================

class BaseLLMProvider(ABC):
    """Interface implemented by each provider."""

    @abstractmethod
    def complete(
        self,
        messages: List[LLMMessage],
        max_tokens: int = 4096,
        temperature: float = 0.0,
        **kwargs
    ) -> LLMResponse:
        pass

    def complete_with_tools(
        self,
        messages: List[LLMMessage],
        tools: List[ToolDefinition],
        executor: ToolExecutor,
        max_turns: int = DEFAULT_MAX_TURNS,
        max_tokens: int = 4096,
        temperature: float = 0.0,
    ) -> LLMResponse:
        """
        Completion with tool use. Providers without native tool support
        fall back to a plain completion with no tool calls.
        """
        return self.complete(messages, max_tokens=max_tokens, temperature=temperature)

    @abstractmethod
    def get_model_name(self) -> str:
        pass


# =============================================================================
# ANTHROPIC PROVIDER
# =============================================================================

class AnthropicProvider(BaseLLMProvider):

    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(self, api_key: str = None, model: str = None, base_url: str = None, **kwargs):
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model or os.environ.get("LLM_MODEL", self.DEFAULT_MODEL)

        if not self.api_key:
            raise ValueError("Anthropic API key not provided")

        self.client = anthropic.Anthropic(api_key=self.api_key, base_url=base_url)

    @staticmethod
    def _split_system(messages: List[LLMMessage]) -> tuple:
        system = None
        conversation = []
        for msg in messages:
            if msg.role == "system":
                system = msg.content
            else:
                conversation.append(msg.to_dict())
        return system, conversation

    def complete(
        self,
        messages: List[LLMMessage],
        max_tokens: int = 4096,
        temperature: float = 0.0,
        **kwargs
    ) -> LLMResponse:
        system, conversation = self._split_system(messages)
        create_kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": conversation,
        }
        if system:
            create_kwargs["system"] = system

        response = self.client.messages.create(**create_kwargs)
        content = "".join(b.text for b in response.content if b.type == "text")

        return LLMResponse(
            content=content,
            model=response.model,
            tokens_input=response.usage.input_tokens,
            tokens_output=response.usage.output_tokens,
            finish_reason=response.stop_reason or "stop",
        )

    def complete_with_tools(
        self,
        messages: List[LLMMessage],
        tools: List[ToolDefinition],
        executor: ToolExecutor,
        max_turns: int = DEFAULT_MAX_TURNS,
        max_tokens: int = 4096,
        temperature: float = 0.0,
    ) -> LLMResponse:
        if not tools:
            return self.complete(messages, max_tokens=max_tokens, temperature=temperature)

        system, conversation = self._split_system(messages)
        tool_specs = [
            {"name": t.name, "description": t.description, "input_schema": t.input_schema}
            for t in tools
        ]
        records: List[ToolCallRecord] = []
        tokens_in = tokens_out = 0
        content = ""
        model = self.model

        for _ in range(max_turns):
            create_kwargs = {
                "model": self.model,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "messages": conversation,
                "tools": tool_specs,
            }
            if system:
                create_kwargs["system"] = system

            response = self.client.messages.create(**create_kwargs)
            model = response.model
            tokens_in += response.usage.input_tokens
            tokens_out += response.usage.output_tokens
            content = "".join(b.text for b in response.content if b.type == "text")
            tool_uses = [b for b in response.content if b.type == "tool_use"]

            if response.stop_reason != "tool_use" or not tool_uses:
                return LLMResponse(
                    content=content,
                    model=model,
                    tokens_input=tokens_in,
                    tokens_output=tokens_out,
                    finish_reason=response.stop_reason or "stop",
                    tool_calls=records,
                )

            assistant_blocks = []
            for block in response.content:
                if block.type == "text":
                    assistant_blocks.append({"type": "text", "text": block.text})
                elif block.type == "tool_use":
                    assistant_blocks.append({
                        "type": "tool_use",
                        "id": block.id,
                        "name": block.name,
                        "input": block.input,
                    })
            conversation.append({"role": "assistant", "content": assistant_blocks})

            tool_results = []
            for use in tool_uses:
                record, output, is_error = _run_tool(executor, use.name, dict(use.input or {}))
                records.append(record)
                tool_results.append({
                    "type": "tool_result",
                    "tool_use_id": use.id,
                    "content": output,
                    "is_error": is_error,
                })
            conversation.append({"role": "user", "content": tool_results})

        logger.warning(f"Tool loop stopped after {max_turns} turns")
        return LLMResponse(
            content=content,
            model=model,
            tokens_input=tokens_in,
            tokens_output=tokens_out,
            finish_reason="max_turns",
            tool_calls=records,
        )

    def get_model_name(self) -> str:
        return self.model


# =============================================================================
# OPENAI PROVIDER
# =============================================================================

class OpenAIProvider(BaseLLMProvider):

    DEFAULT_MODEL = "gpt-4o"

    def __init__(self, api_key: str = None, model: str = None, base_url: str = None, **kwargs):
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model or os.environ.get("LLM_MODEL", self.DEFAULT_MODEL)

        if not self.api_key:
            raise ValueError("OpenAI API key not provided")

        self.client = openai.OpenAI(api_key=self.api_key, base_url=base_url)

    def complete(
        self,
        messages: List[LLMMessage],
        max_tokens: int = 4096,
        temperature: float = 0.0,
        **kwargs
    ) -> LLMResponse:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[m.to_dict() for m in messages],
            max_tokens=max_tokens,
            temperature=temperature,
        )
        choice = response.choices[0]

        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            tokens_input=response.usage.prompt_tokens if response.usage else 0,
            tokens_output=response.usage.completion_tokens if response.usage else 0,
            finish_reason=choice.finish_reason or "stop",
        )

    def complete_with_tools(
        self,
        messages: List[LLMMessage],
        tools: List[ToolDefinition],
        executor: ToolExecutor,
        max_turns: int = DEFAULT_MAX_TURNS,
        max_tokens: int = 4096,
        temperature: float = 0.0,
    ) -> LLMResponse:
        if not tools:
            return self.complete(messages, max_tokens=max_tokens, temperature=temperature)

        conversation: List[Dict[str, Any]] = [m.to_dict() for m in messages]
        tool_specs = [
            {
                "type": "function",
                "function": {"name": t.name, "description": t.description, "parameters": t.input_schema},
            }
            for t in tools
        ]
        records: List[ToolCallRecord] = []
        tokens_in = tokens_out = 0
        content = ""
        model = self.model

        for _ in range(max_turns):
            response = self.client.chat.completions.create(
                model=self.model,
                messages=conversation,
                max_tokens=max_tokens,
                temperature=temperature,
                tools=tool_specs,
            )
            model = response.model
            if response.usage:
                tokens_in += response.usage.prompt_tokens
                tokens_out += response.usage.completion_tokens

            choice = response.choices[0]
            message = choice.message
            content = message.content or ""

            if not message.tool_calls:
                return LLMResponse(
                    content=content,
                    model=model,
                    tokens_input=tokens_in,
                    tokens_output=tokens_out,
                    finish_reason=choice.finish_reason or "stop",
                    tool_calls=records,
                )

            conversation.append({
                "role": "assistant",
                "content": message.content,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.function.name, "arguments": tc.function.arguments},
                    }
                    for tc in message.tool_calls
                ],
            })

            for tc in message.tool_calls:
                try:
                    arguments = json.loads(tc.function.arguments or "{}")
                except json.JSONDecodeError:
                    arguments = {}
                record, output, _ = _run_tool(executor, tc.function.name, arguments)
                records.append(record)
                conversation.append({"role": "tool", "tool_call_id": tc.id, "content": output})

        logger.warning(f"Tool loop stopped after {max_turns} turns")
        return LLMResponse(
            content=content,
            model=model,
            tokens_input=tokens_in,
            tokens_output=tokens_out,
            finish_reason="max_turns",
            tool_calls=records,
        )

    def get_model_name(self) -> str:
        return self.model


# =============================================================================
# OLLAMA PROVIDER
# =============================================================================

class OllamaProvider(BaseLLMProvider):
    """
    Ollama local LLM provider. No API key and no tool use; agents running
    on Ollama produce text only and log no calls.
    """

    DEFAULT_MODEL = "llama3.2"
    DEFAULT_BASE_URL = "http://localhost:11434"

    def __init__(self, model: str = None, base_url: str = None, api_key: str = None, **kwargs):
        self.model = (
            model
            or os.environ.get("OLLAMA_MODEL")
            or os.environ.get("LLM_MODEL", self.DEFAULT_MODEL)
        )
        self.base_url = (base_url or os.environ.get("OLLAMA_BASE_URL", self.DEFAULT_BASE_URL)).rstrip("/")
        self.timeout = kwargs.get("timeout", 300)

    def complete(
        self,
        messages: List[LLMMessage],
        max_tokens: int = 4096,
        temperature: float = 0.0,
        **kwargs
    ) -> LLMResponse:
        payload = {
            "model": self.model,
            "messages": [m.to_dict() for m in messages],
            "stream": False,
            "options": {"temperature": temperature, "num_predict": max_tokens},
        }
        input_estimate = estimate_tokens(" ".join(m.content for m in messages))

        try:
            response = requests.post(f"{self.base_url}/api/chat", json=payload, timeout=self.timeout)
            if response.status_code == 404:
                raise RuntimeError(f"Model '{self.model}' not found. Run: ollama pull {self.model}")
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.ConnectionError:
            raise ConnectionError(
                f"Cannot connect to Ollama at {self.base_url}. Ensure Ollama is running: 'ollama serve'"
            )
        except requests.exceptions.Timeout:
            raise TimeoutError(f"Ollama request timed out after {self.timeout}s")

        content = result.get("message", {}).get("content", "")
        finish_reason = result.get("done_reason") or ("stop" if result.get("done", True) else "length")

        return LLMResponse(
            content=content,
            model=result.get("model", self.model),
            tokens_input=result.get("prompt_eval_count", input_estimate),
            tokens_output=result.get("eval_count", estimate_tokens(content)),
            finish_reason=finish_reason,
        )

    def get_model_name(self) -> str:
        return self.model


# =============================================================================
# LLM CLIENT (MAIN INTERFACE)
# =============================================================================

class LLMClient:
    """
    Provider-agnostic client with cumulative usage counters.

    Args:
        provider: anthropic | openai | ollama (default: LLM_PROVIDER env)
        model: Provider-specific model name
        api_key: API key for the provider
        temperature: Default sampling temperature
        max_tokens: Default completion budget
        max_turns: Default tool-loop bound
    """

    PROVIDERS = {
        "anthropic": AnthropicProvider,
        "openai": OpenAIProvider,
        "ollama": OllamaProvider,
    }

    def __init__(
        self,
        provider: str = None,
        model: str = None,
        api_key: str = None,
        temperature: float = 0.0,
        max_tokens: int = 8192,
        max_turns: int = DEFAULT_MAX_TURNS,
        **kwargs
    ):
        self.provider_name = (provider or os.environ.get("LLM_PROVIDER", "anthropic")).lower()

        provider_class = self.PROVIDERS.get(self.provider_name)
        if not provider_class:
            raise ValueError(f"Unknown LLM provider: {self.provider_name}")

        init_kwargs = {**kwargs}
        if model:
            init_kwargs["model"] = model
        if api_key:
            init_kwargs["api_key"] = api_key
        self._provider = provider_class(**init_kwargs)

        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_turns = max_turns

        self._total_tokens_input = 0
        self._total_tokens_output = 0
        self._call_count = 0

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "LLMClient":
        """Build from the ``llm`` configuration section."""
        provider = config.get("provider", "anthropic")
        kwargs: Dict[str, Any] = {}
        if provider == "ollama" and config.get("ollama_base_url"):
            kwargs["base_url"] = config["ollama_base_url"]
        api_key = config.get(f"{provider}_api_key") or None
        return cls(
            provider=provider,
            model=config.get("model"),
            api_key=api_key,
            temperature=float(config.get("temperature", 0.0)),
            max_tokens=int(config.get("max_tokens", 8192)),
            max_turns=int(config.get("max_turns", DEFAULT_MAX_TURNS)),
            **kwargs
        )

    def _messages(self, prompt: str, system: Optional[str]) -> List[LLMMessage]:
        messages = []
        if system:
            messages.append(LLMMessage("system", system))
        messages.append(LLMMessage("user", prompt))
        return messages

    def _track(self, response: LLMResponse, start_time: float) -> None:
        self._call_count += 1
        self._total_tokens_input += response.tokens_input
        self._total_tokens_output += response.tokens_output
        logger.debug(
            f"LLM call completed: {response.tokens_input}+{response.tokens_output} tokens, "
            f"{len(response.tool_calls)} tool calls in {time.time() - start_time:.2f}s"
        )

    def complete(self, prompt: str, system: str = None, **kwargs) -> LLMResponse:
        """Single completion without tools."""
        start_time = time.time()
        try:
            response = self._provider.complete(
                self._messages(prompt, system),
                max_tokens=kwargs.get("max_tokens", self.max_tokens),
                temperature=kwargs.get("temperature", self.temperature),
            )
        except Exception as e:
            logger.error(f"LLM call failed: {e}")
            raise
        self._track(response, start_time)
        return response

    def run_with_tools(
        self,
        prompt: str,
        system: str = None,
        tools: Optional[List[ToolDefinition]] = None,
        executor: Optional[ToolExecutor] = None,
        max_turns: Optional[int] = None,
    ) -> LLMResponse:
        """
        Completion with a bounded tool loop. Without tools or an executor
        this is a plain completion.
        """
        if not tools or executor is None:
            return self.complete(prompt, system)

        start_time = time.time()
        try:
            response = self._provider.complete_with_tools(
                self._messages(prompt, system),
                tools=tools,
                executor=executor,
                max_turns=max_turns or self.max_turns,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as e:
            logger.error(f"LLM tool call failed: {e}")
            raise
        self._track(response, start_time)
        return response

    def get_model(self) -> str:
        return self._provider.get_model_name()

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "call_count": self._call_count,
            "total_tokens_input": self._total_tokens_input,
            "total_tokens_output": self._total_tokens_output,
            "total_tokens": self._total_tokens_input + self._total_tokens_output,
            "provider": self.provider_name,
            "model": self.get_model(),
        }

    def reset_metrics(self):
        self._call_count = 0
        self._total_tokens_input = 0
        self._total_tokens_output = 0


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def create_llm_client(config: Optional[Dict[str, Any]] = None) -> LLMClient:
    """Factory used by the agent team; reads the ``llm`` config section."""
    return LLMClient.from_config(config or {})


def estimate_tokens(text: str) -> int:
    """~4 characters per token."""
    return math.ceil(len(text) / 4)


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "ToolExecutor",
    "ToolDefinition",
    "ToolCallRecord",
    "LLMResponse",
    "LLMMessage",
    "BaseLLMProvider",
    "AnthropicProvider",
    "OpenAIProvider",
    "OllamaProvider",
    "LLMClient",
    "create_llm_client",
    "estimate_tokens",
]
