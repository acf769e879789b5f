"""
Reasoning loop: lets the reasoning service drive the capability set for one customer turn
"""
import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from origination.services.capabilities import CapabilitySet
from origination.services.llm_service import END_TURN, Completion, ReasoningService
from origination.services.tools import get_capability_tools
from origination.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_EMPTY_REPLY = "Sorry, I couldn't process that. Could you say it again?"
DEFAULT_ITERATION_LIMIT_REPLY = "Sorry, I had a problem handling your request. Could you try again?"


@dataclass
class AgentReply:
    text: str
    capabilities_used: List[str] = field(default_factory=list)


class LoanAgent:
    """
    Bounded tool-calling loop.

    Every capability result, errors included, is fed back to the reasoning
    service so it can correct itself. Reasoning failures and timeouts propagate.
    """

    def __init__(
        self,
        reasoning: ReasoningService,
        capabilities: CapabilitySet,
        policy: str,
        max_iterations: int = 8,
        call_timeout: float = 30.0,
        empty_reply: str = DEFAULT_EMPTY_REPLY,
        iteration_limit_reply: str = DEFAULT_ITERATION_LIMIT_REPLY,
    ):
        self.reasoning = reasoning
        self.capabilities = capabilities
        self.policy = policy
        self.max_iterations = max_iterations
        self.call_timeout = call_timeout
        self.empty_reply = empty_reply
        self.iteration_limit_reply = iteration_limit_reply
        self.tools = get_capability_tools()

    async def _complete(self, messages: List[Dict[str, Any]]) -> Completion:
        return await asyncio.wait_for(
            self.reasoning.create_completion(self.policy, self.tools, messages),
            timeout=self.call_timeout,
        )

    async def converse(
        self,
        user_text: str,
        history: List[Dict[str, str]],
        context: Optional[str] = None,
    ) -> AgentReply:
        """
        Produce the reply to one customer message.

        Args:
            user_text: The new customer message
            history: Prior turns as {"role": "user"|"assistant", "content": ...}, oldest first
            context: Customer digest prepended to the new turn

        Returns:
            AgentReply with non-empty text and the capabilities invoked, in order
        """
        content = f"{context}\n\n{user_text}" if context else user_text
        messages: List[Dict[str, Any]] = [dict(turn) for turn in history]
        messages.append({"role": "user", "content": content})

        collected: List[str] = []
        used: List[str] = []

        for iteration in range(1, self.max_iterations + 1):
            completion = await self._complete(messages)
            collected.extend(completion.text_segments)

            if not completion.tool_calls or completion.stop_reason == END_TURN:
                text = "\n".join(collected).strip()
                return AgentReply(text=text or self.empty_reply, capabilities_used=used)

            messages.append({
                "role": "assistant",
                "content": "\n".join(completion.text_segments) or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                    }
                    for call in completion.tool_calls
                ],
            })

            for call in completion.tool_calls:
                logger.info(f"[cyan]🔧 Capability:[/cyan] {call.name} [dim](iteration {iteration})[/dim]")
                result = await self.capabilities.execute(call.name, call.arguments)
                if result.is_error:
                    logger.debug(f"[dim]{call.name} returned an error: {result.content[:300]}[/dim]")
                used.append(call.name)
                messages.append({"role": "tool", "tool_call_id": call.id, "content": result.content})

        logger.warning(f"[yellow]⚠️  Reasoning loop hit the iteration limit ({self.max_iterations})[/yellow]")
        text = "\n".join(collected).strip()
        return AgentReply(text=text or self.iteration_limit_reply, capabilities_used=used)
