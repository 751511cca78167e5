import asyncio
from types import SimpleNamespace

import pytest

from refinery.utils.llm_fallback import (
    GeminiReasoningClient,
    OpenRouterReasoningClient,
    call_chat_with_fallback,
    extract_response_text,
)
from refinery.utils.llm_gateway import GatewayRequest, ResilientGateway
from refinery.utils.response_schemas import QUERY_SPEC


def _completion(content):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")],
        usage=SimpleNamespace(completion_tokens=3, prompt_tokens=5),
    )


class FakeCompletions:
    def __init__(self, outcomes):
        self.outcomes = dict(outcomes)
        self.calls = []

    async def create(self, model, messages, **kwargs):
        self.calls.append({"model": model, "messages": messages, **kwargs})
        outcome = self.outcomes[model]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _fake_openai(outcomes):
    completions = FakeCompletions(outcomes)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def test_fallback_moves_to_next_model_on_failure_or_empty():
    client, completions = _fake_openai(
        {
            "primary": RuntimeError("503 overloaded"),
            "secondary": _completion("   "),
            "tertiary": _completion('{"ok": true}'),
        }
    )

    response, model = asyncio.run(
        call_chat_with_fallback(
            client,
            [{"role": "user", "content": "hi"}],
            ["primary", "secondary", "tertiary"],
            call_kwargs={"temperature": 0.1},
            context_tag="test",
        )
    )

    assert model == "tertiary"
    assert extract_response_text(response) == '{"ok": true}'
    assert [c["model"] for c in completions.calls] == ["primary", "secondary", "tertiary"]


def test_fallback_raises_last_error_when_chain_exhausted():
    client, _ = _fake_openai({"only": RuntimeError("429 rate limit")})
    with pytest.raises(RuntimeError, match="429"):
        asyncio.run(
            call_chat_with_fallback(client, [], ["only"], call_kwargs={}, context_tag="test")
        )


def test_openrouter_client_sends_json_system_prompt():
    fake, completions = _fake_openai({"m1": _completion("[1, 2]")})
    client = OpenRouterReasoningClient(api_key="or-key", model_chain=["m1", ""], client=fake)

    text = asyncio.run(client.generate("PROMPT", json_mode=True))

    assert text == "[1, 2]"
    messages = completions.calls[0]["messages"]
    assert "JSON" in messages[0]["content"]
    assert messages[1] == {"role": "user", "content": "PROMPT"}
    assert completions.calls[0]["temperature"] == 0.2


def test_gemini_client_retries_without_rejected_schema():
    client = GeminiReasoningClient(api_key="test-key", model_name="gemini-2.5-flash")
    configs = []

    async def generate_content_async(prompt, generation_config=None):
        configs.append(dict(generation_config or {}))
        if "response_schema" in (generation_config or {}):
            raise ValueError("Unknown field for GenerationConfig: response_schema")
        return SimpleNamespace(text=' {"actions": []} ')

    client.model = SimpleNamespace(generate_content_async=generate_content_async)

    text = asyncio.run(client.generate("PROMPT", json_mode=True, response_schema={"type": "object"}))

    assert text == '{"actions": []}'
    assert "response_schema" in configs[0]
    assert configs[1] == {"response_mime_type": "application/json"}


def test_gemini_client_propagates_retryable_errors():
    client = GeminiReasoningClient(api_key="test-key")

    async def generate_content_async(prompt, generation_config=None):
        raise RuntimeError("429 resource exhausted")

    client.model = SimpleNamespace(generate_content_async=generate_content_async)

    with pytest.raises(RuntimeError, match="429"):
        asyncio.run(client.generate("PROMPT", response_schema={"type": "object"}))


def test_fallback_prefers_transport_error_over_empty_answer():
    client, _ = _fake_openai({"primary": RuntimeError("503 overloaded"), "secondary": _completion("")})
    with pytest.raises(RuntimeError, match="503"):
        asyncio.run(
            call_chat_with_fallback(client, [], ["primary", "secondary"], call_kwargs={}, context_tag="test")
        )


def test_openrouter_empty_answers_become_empty_text():
    fake, completions = _fake_openai({"m1": _completion(""), "m2": _completion(None)})
    client = OpenRouterReasoningClient(api_key="or-key", model_chain=["m1", "m2"], client=fake)

    assert asyncio.run(client.generate("PROMPT")) == ""
    assert [c["model"] for c in completions.calls] == ["m1", "m2"]


def test_openrouter_empty_answer_yields_operation_default(recording_sleep):
    fake, _ = _fake_openai({"m1": _completion("")})
    client = OpenRouterReasoningClient(api_key="or-key", model_chain=["m1"], client=fake)
    gateway = ResilientGateway(client, sleep=recording_sleep)

    rows = asyncio.run(gateway.execute(GatewayRequest(operation="query", prompt="PROMPT"), QUERY_SPEC))

    assert rows == []
    assert recording_sleep.delays == []
