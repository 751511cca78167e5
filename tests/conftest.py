import asyncio

import pytest

from refinery.graph import RefinerySession
from refinery.utils.llm_gateway import ResilientGateway


class ScriptedClient:
    """
    Reasoning collaborator double. Each call consumes the next scripted item:
    a string is returned, an exception is raised, a callable is invoked with the
    prompt (and awaited when it returns a coroutine).
    """

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def generate(self, prompt, *, json_mode=True, response_schema=None):
        self.calls.append({"prompt": prompt, "json_mode": json_mode, "response_schema": response_schema})
        if not self.responses:
            raise AssertionError("unexpected collaborator call")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            item = item(prompt)
            if asyncio.iscoroutine(item):
                item = await item
        return item


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def make_client():
    return ScriptedClient


@pytest.fixture
def make_gateway(recording_sleep):
    def _make(responses, **kwargs):
        client = ScriptedClient(responses)
        kwargs.setdefault("max_retries", 3)
        kwargs.setdefault("base_delay", 0.5)
        kwargs.setdefault("sleep", recording_sleep)
        return ResilientGateway(client, **kwargs), client

    return _make


@pytest.fixture
def make_session(make_gateway):
    def _make(responses, **kwargs):
        gateway, client = make_gateway(responses)
        return RefinerySession(gateway, **kwargs), client

    return _make
