import asyncio
import json

import httpx
import pytest

from origination.services.agent import LoanAgent
from origination.services.capabilities import CapabilityResult
from origination.services.llm_service import END_TURN, TOOL_USE, Completion, ToolCall


class RecordingCapabilities:
    def __init__(self, error_for=()):
        self.calls = []
        self.error_for = set(error_for)

    async def execute(self, name, arguments):
        self.calls.append((name, arguments))
        if name in self.error_for:
            return CapabilityResult(content=json.dumps({"success": False, "error": "bad input"}), is_error=True)
        return CapabilityResult(content=json.dumps({"success": True, "name": name}))


def tool_step(*calls, text=None):
    return Completion(
        text_segments=[text] if text else [],
        tool_calls=[ToolCall(id=f"call_{i}", name=name, arguments=args) for i, (name, args) in enumerate(calls)],
        stop_reason=TOOL_USE,
    )


def final(text):
    return Completion(text_segments=[text], stop_reason=END_TURN)


def make_agent(reasoning, capabilities, **kwargs):
    return LoanAgent(
        reasoning,
        capabilities,
        policy="POLICY",
        empty_reply="EMPTY",
        iteration_limit_reply="LIMIT",
        **kwargs,
    )


async def test_plain_reply(scripted_reasoning):
    reasoning = scripted_reasoning([final("Hello! How can I help?")])

    reply = await make_agent(reasoning, RecordingCapabilities()).converse("hi", history=[])

    assert reply.text == "Hello! How can I help?"
    assert reply.capabilities_used == []
    assert reasoning.calls[0]["system"] == "POLICY"
    assert len(reasoning.calls[0]["tools"]) == 11


async def test_history_and_context_seed_the_conversation(scripted_reasoning):
    reasoning = scripted_reasoning([final("ok")])
    history = [{"role": "user", "content": "earlier"}, {"role": "assistant", "content": "answer"}]

    await make_agent(reasoning, RecordingCapabilities()).converse("now", history, context="[Customer context]")

    messages = reasoning.calls[0]["messages"]
    assert messages[:2] == history
    assert messages[-1] == {"role": "user", "content": "[Customer context]\n\nnow"}


async def test_tool_results_are_fed_back(scripted_reasoning):
    reasoning = scripted_reasoning([
        tool_step(("simulate_loan", {"amount": 5000, "installments": 12}), text="Let me check."),
        final("Your installment is 472.00."),
    ])
    capabilities = RecordingCapabilities()

    reply = await make_agent(reasoning, capabilities).converse("5000 in 12x?", history=[])

    assert reply.text == "Let me check.\nYour installment is 472.00."
    assert reply.capabilities_used == ["simulate_loan"]
    assert capabilities.calls == [("simulate_loan", {"amount": 5000, "installments": 12})]

    second_request = reasoning.calls[1]["messages"]
    assistant, tool = second_request[-2], second_request[-1]
    assert assistant["role"] == "assistant"
    assert assistant["tool_calls"][0]["function"]["name"] == "simulate_loan"
    assert json.loads(assistant["tool_calls"][0]["function"]["arguments"]) == {"amount": 5000, "installments": 12}
    assert tool == {"role": "tool", "tool_call_id": "call_0", "content": json.dumps({"success": True, "name": "simulate_loan"})}


async def test_errors_are_returned_for_self_correction(scripted_reasoning):
    reasoning = scripted_reasoning([
        tool_step(("update_customer", {"tax_id": "123"})),
        tool_step(("update_customer", {"tax_id": "52998224725"})),
        final("Saved."),
    ])
    capabilities = RecordingCapabilities(error_for={"update_customer"})

    reply = await make_agent(reasoning, capabilities).converse("my cpf", history=[])

    assert reply.text == "Saved."
    assert reply.capabilities_used == ["update_customer", "update_customer"]
    assert "bad input" in reasoning.calls[1]["messages"][-1]["content"]


async def test_several_calls_in_one_step(scripted_reasoning):
    reasoning = scripted_reasoning([
        tool_step(("get_customer", {}), ("check_documents", {})),
        final("Here is where we are."),
    ])

    reply = await make_agent(reasoning, RecordingCapabilities()).converse("status?", history=[])

    tool_messages = [m for m in reasoning.calls[1]["messages"] if m["role"] == "tool"]
    assert [m["tool_call_id"] for m in tool_messages] == ["call_0", "call_1"]
    assert reply.capabilities_used == ["get_customer", "check_documents"]


async def test_empty_reply_falls_back(scripted_reasoning):
    reasoning = scripted_reasoning([Completion(text_segments=[], stop_reason=END_TURN)])

    reply = await make_agent(reasoning, RecordingCapabilities()).converse("hi", history=[])

    assert reply.text == "EMPTY"


async def test_iteration_limit_returns_collected_text_or_fallback(scripted_reasoning):
    looping = scripted_reasoning([tool_step(("get_customer", {})) for _ in range(3)])
    chatty = scripted_reasoning([tool_step(("get_customer", {}), text="Checking...") for _ in range(3)])

    silent_reply = await make_agent(looping, RecordingCapabilities(), max_iterations=3).converse("hi", history=[])
    chatty_reply = await make_agent(chatty, RecordingCapabilities(), max_iterations=3).converse("hi", history=[])

    assert silent_reply.text == "LIMIT"
    assert len(silent_reply.capabilities_used) == 3
    assert chatty_reply.text == "Checking...\nChecking...\nChecking..."
    assert len(looping.calls) == 3


async def test_reasoning_timeout_propagates(scripted_reasoning):
    async def slow(messages):
        await asyncio.sleep(1)
        return final("too late")

    reasoning = scripted_reasoning([slow])

    with pytest.raises(asyncio.TimeoutError):
        await make_agent(reasoning, RecordingCapabilities(), call_timeout=0.01).converse("hi", history=[])


async def test_reasoning_failure_propagates(scripted_reasoning):
    reasoning = scripted_reasoning([httpx.ConnectError("unreachable")])

    with pytest.raises(httpx.ConnectError):
        await make_agent(reasoning, RecordingCapabilities()).converse("hi", history=[])
