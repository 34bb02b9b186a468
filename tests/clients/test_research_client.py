from types import SimpleNamespace

import httpx
import pytest
from openai import APITimeoutError, RateLimitError

from app.clients import research as research_module
from app.clients.research import OpenAIResearchClient, ResearchProviderError
from tests.helpers.metrics_stub import StubMetrics

RESPONSES_URL = "https://api.openai.com/v1/responses"


class FakeResponses:
    def __init__(self, outcomes):
        self._outcomes = list(outcomes)
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeOpenAI:
    def __init__(self, outcomes):
        self.responses = FakeResponses(outcomes)
        self.closed = False

    async def close(self):
        self.closed = True


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def _rate_limit_error():
    request = httpx.Request("POST", RESPONSES_URL)
    return RateLimitError(
        "Rate limit reached",
        response=httpx.Response(429, request=request),
        body=None,
    )


def _client(outcomes, *, retry_attempts=3):
    fake = FakeOpenAI(outcomes)
    sleep = RecordingSleep()
    client = OpenAIResearchClient(
        None,
        model="gpt-4.1-mini",
        retry_attempts=retry_attempts,
        retry_backoff_seconds=0.5,
        client=fake,
        sleep=sleep,
    )
    return client, fake, sleep


@pytest.fixture(autouse=True)
def stub_metrics(monkeypatch):
    stub = StubMetrics()
    monkeypatch.setattr(research_module, "metrics", stub)
    return stub


@pytest.mark.asyncio
async def test_research_sends_prompt_with_web_search_tool(stub_metrics):
    client, fake, _ = _client([SimpleNamespace(output_text="  [] \n")])

    text = await client.research("find investors", max_output_tokens=2048)

    assert text == "[]"
    (call,) = fake.responses.calls
    assert call == {
        "model": "gpt-4.1-mini",
        "input": "find investors",
        "tools": [{"type": "web_search"}],
        "max_output_tokens": 2048,
    }
    assert stub_metrics.timing_calls[0]["tags"] == {"model": "gpt-4.1-mini", "outcome": "success"}


@pytest.mark.asyncio
async def test_research_joins_output_text_chunks_when_output_text_missing():
    response = SimpleNamespace(
        output_text=None,
        output=[
            SimpleNamespace(type="web_search_call", content=None),
            SimpleNamespace(
                type="message",
                content=[
                    SimpleNamespace(type="output_text", text='[{"name": '),
                    SimpleNamespace(type="output_text", text='"Ada Park"}]'),
                ],
            ),
        ],
    )
    client, _, _ = _client([response])

    assert await client.research("prompt", max_output_tokens=10) == '[{"name": "Ada Park"}]'


@pytest.mark.asyncio
async def test_research_returns_empty_string_for_empty_output():
    client, _, _ = _client([SimpleNamespace(id="resp_1", output_text="", output=[])])

    assert await client.research("prompt", max_output_tokens=10) == ""


@pytest.mark.asyncio
async def test_rate_limits_are_retried_with_backoff(stub_metrics):
    client, fake, sleep = _client([_rate_limit_error(), SimpleNamespace(output_text="ok")])

    assert await client.research("prompt", max_output_tokens=10) == "ok"
    assert len(fake.responses.calls) == 2
    assert len(sleep.delays) == 1
    assert 0.5 <= sleep.delays[0] <= 0.625
    assert stub_metrics.counted("research.retry")


@pytest.mark.asyncio
async def test_rate_limit_is_raised_after_final_attempt():
    client, fake, sleep = _client([_rate_limit_error(), _rate_limit_error()], retry_attempts=2)

    with pytest.raises(ResearchProviderError) as exc_info:
        await client.research("prompt", max_output_tokens=10)

    assert exc_info.value.code == "429_RATE_LIMIT"
    assert len(fake.responses.calls) == 2
    assert len(sleep.delays) == 1


@pytest.mark.asyncio
async def test_timeouts_are_not_retried(stub_metrics):
    timeout = APITimeoutError(request=httpx.Request("POST", RESPONSES_URL))
    client, fake, sleep = _client([timeout])

    with pytest.raises(ResearchProviderError) as exc_info:
        await client.research("prompt", max_output_tokens=10)

    assert exc_info.value.code == "504_RESEARCH_TIMEOUT"
    assert len(fake.responses.calls) == 1
    assert sleep.delays == []
    assert stub_metrics.timing_calls[0]["tags"]["outcome"] == "error"


def test_client_requires_api_key_without_injected_client():
    with pytest.raises(ValueError):
        OpenAIResearchClient(None, model="gpt-4.1-mini")


@pytest.mark.asyncio
async def test_close_closes_underlying_client():
    client, fake, _ = _client([])

    await client.close()

    assert fake.closed is True
