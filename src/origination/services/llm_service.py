"""
Reasoning service: OpenAI-compatible chat completions with tool calling
"""
import json
import httpx
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List

from origination.core.config import LLMConfig, settings
from origination.utils.logging import get_logger

logger = get_logger(__name__)

END_TURN = "end_turn"
TOOL_USE = "tool_use"
MAX_TOKENS = "max_tokens"

# OpenAI finish_reason -> stop reason used by the agent loop
FINISH_REASONS = {
    "stop": END_TURN,
    "tool_calls": TOOL_USE,
    "function_call": TOOL_USE,
    "length": MAX_TOKENS,
}


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: Dict[str, Any]


@dataclass
class Completion:
    """One reasoning step: text segments, requested tool calls and why it stopped"""
    text_segments: List[str] = field(default_factory=list)
    tool_calls: List[ToolCall] = field(default_factory=list)
    stop_reason: Optional[str] = None


def _parse_arguments(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"[yellow]⚠️  Tool call arguments are not valid JSON:[/yellow] {str(raw)[:200]}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def parse_completion(response: Dict[str, Any]) -> Completion:
    """
    Convert a chat completions response body into a Completion.

    Raises:
        ValueError: If the response has no choices
    """
    choices = response.get("choices") or []
    if not choices:
        raise ValueError("Invalid response format from LLM API")

    choice = choices[0]
    message = choice.get("message") or {}
    completion = Completion(stop_reason=FINISH_REASONS.get(choice.get("finish_reason"), choice.get("finish_reason")))

    content = message.get("content")
    if isinstance(content, str) and content.strip():
        completion.text_segments.append(content)

    for call in message.get("tool_calls") or []:
        function = call.get("function") or {}
        if not function.get("name"):
            continue
        completion.tool_calls.append(ToolCall(
            id=call.get("id") or f"call_{len(completion.tool_calls)}",
            name=function["name"],
            arguments=_parse_arguments(function.get("arguments")),
        ))

    if completion.tool_calls and completion.stop_reason is None:
        completion.stop_reason = TOOL_USE
    return completion


class ReasoningService:
    """
    Client for the reasoning (LLM) provider.
    Each call sends the fixed policy as the system message plus the tool schemas.
    """

    def __init__(self, config: Optional[LLMConfig] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        config = config or settings.llm
        self.base_url = config.base_url.rstrip('/')
        self.api_key = config.api_key
        self.model = config.model
        self.timeout = config.timeout
        self.max_tokens = config.max_tokens
        self.temperature = config.temperature
        self.verify_ssl = config.verify_ssl
        self._transport = transport

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def create_completion(
        self,
        system_policy: str,
        tools: List[Dict[str, Any]],
        messages: List[Dict[str, Any]],
    ) -> Completion:
        """
        Run one reasoning step.

        Args:
            system_policy: Behavioral policy, sent as the system message
            tools: OpenAI function tool schemas
            messages: Conversation so far (user/assistant/tool messages)

        Returns:
            Completion with text segments, tool calls and stop reason

        Raises:
            httpx.HTTPError: If the request fails
            ValueError: If the response format is invalid
        """
        url = f"{self.base_url}/chat/completions"
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "system", "content": system_policy}, *messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        logger.debug(f"[cyan]Sending reasoning request:[/cyan] {url}")
        logger.debug(f"[dim]Model:[/dim] {self.model} [dim]Messages:[/dim] {len(messages)}")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                verify=self.verify_ssl,
                transport=self._transport,
            ) as client:
                response = await client.post(url, json=payload, headers=self._get_headers())
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"[red]❌ Failed to get LLM response:[/red] "
                f"[yellow]{e.response.status_code}[/yellow] - {e.response.text[:500]}"
            )
            raise
        except httpx.HTTPError as e:
            logger.error(f"[red]❌ HTTP error calling LLM API:[/red] {e!r}")
            raise

        completion = parse_completion(result)
        logger.info(
            f"[green]✅ LLM response:[/green] [cyan]{self.model}[/cyan] "
            f"[dim]stop={completion.stop_reason} tools={[c.name for c in completion.tool_calls]}[/dim]"
        )
        return completion
