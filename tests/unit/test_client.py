"""
Unit tests for the OpenRouter client.
"""

import json

import httpx
import pytest
import pytest_asyncio

from flashcards.ai.client import DEFAULT_MODEL, ModelConfig, OpenRouterClient
from flashcards.ai.errors import ClientUnavailable, TransportError
from flashcards.ai.messages import CardSummary
from flashcards.ai.models import Feedback


def chat_body(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, status=200, body=None, text=None):
        self.status = status
        self.body = body if body is not None else chat_body('{"is_correct": true, "correctness_score": 1.0}')
        self.text = text
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status, text=self.text)
        return httpx.Response(self.status, json=self.body)

    @property
    def payload(self):
        return json.loads(self.requests[-1].content)


@pytest.fixture
def recorder():
    return Recorder()


@pytest_asyncio.fixture
async def client(recorder):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    client = OpenRouterClient(api_key="sk-test", http_client=http_client)
    yield client
    await http_client.aclose()


class TestConstruction:
    """Tests for building the client."""

    def test_missing_key_is_unavailable(self, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)

        with pytest.raises(ClientUnavailable) as excinfo:
            OpenRouterClient()

        assert "OPENROUTER_API_KEY" in excinfo.value.message

    def test_key_and_model_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-env")
        monkeypatch.setenv("OPENROUTER_MODEL", "some/model")

        client = OpenRouterClient(http_client=httpx.AsyncClient())

        assert client.api_key == "sk-env"
        assert client.model == "some/model"

    def test_default_model(self, monkeypatch):
        monkeypatch.delenv("OPENROUTER_MODEL", raising=False)
        client = OpenRouterClient(api_key="sk", http_client=httpx.AsyncClient())
        assert client.model == DEFAULT_MODEL


class TestEvaluate:
    """Tests for OpenRouterClient.evaluate."""

    @pytest.mark.asyncio
    async def test_posts_chat_completion(self, client, recorder):
        text = await client.evaluate("What is 2+2?", "4", "4")

        assert text == '{"is_correct": true, "correctness_score": 1.0}'
        request = recorder.requests[0]
        assert request.url == "https://openrouter.ai/api/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"

        payload = recorder.payload
        assert payload["model"] == client.model
        assert payload["provider"] == {"sort": "throughput"}
        assert payload["messages"][0]["role"] == "system"
        assert "User's Answer: 4" in payload["messages"][1]["content"]
        assert "temperature" not in payload
        assert "max_tokens" not in payload

    @pytest.mark.asyncio
    async def test_model_config_overrides(self, client, recorder):
        await client.evaluate("q", "a", "b", ModelConfig("other/model", temperature=0.1, max_tokens=256))

        payload = recorder.payload
        assert payload["model"] == "other/model"
        assert payload["temperature"] == 0.1
        assert payload["max_tokens"] == 256

    @pytest.mark.asyncio
    async def test_content_parts_joined(self, client, recorder):
        recorder.body = chat_body([{"type": "text", "text": "{"}, {"type": "text", "text": "}"}])

        assert await client.evaluate("q", "a", "b") == "{\n}"

    @pytest.mark.asyncio
    async def test_http_error_status(self, client, recorder):
        recorder.status = 429
        recorder.text = "rate limited"

        with pytest.raises(TransportError) as excinfo:
            await client.evaluate("q", "a", "b")

        assert "429" in excinfo.value.message
        assert "rate limited" in excinfo.value.message

    @pytest.mark.asyncio
    async def test_no_choices(self, client, recorder):
        recorder.body = {"choices": []}

        with pytest.raises(TransportError, match="No response choices received"):
            await client.evaluate("q", "a", "b")

    @pytest.mark.asyncio
    async def test_invalid_json_body(self, client, recorder):
        recorder.text = "<html>oops</html>"

        with pytest.raises(TransportError, match="invalid JSON"):
            await client.evaluate("q", "a", "b")

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = OpenRouterClient(api_key="sk", http_client=http_client)

        with pytest.raises(TransportError, match="connection refused"):
            await client.evaluate("q", "a", "b")
        await http_client.aclose()


class TestAssessSession:
    """Tests for OpenRouterClient.assess_session."""

    @pytest.mark.asyncio
    async def test_uses_assessment_defaults(self, client, recorder):
        cards = [
            CardSummary(
                "What is 2+2?",
                "4",
                "4",
                Feedback(is_correct=True, correctness_score=0.9, explanation="Right"),
            ),
            CardSummary("Capital of France?", "Paris", "Lyon"),
        ]

        await client.assess_session("basics", cards, total_cards=3)

        payload = recorder.payload
        assert payload["temperature"] == 0.5
        assert payload["max_tokens"] == 2048
        prompt = payload["messages"][1]["content"]
        assert '"basics"' in prompt
        assert "Total Questions: 3" in prompt
        assert "Answered: 2" in prompt
        assert "Correct (AI-evaluated): 1" in prompt
        assert "AI Score: 90%" in prompt


class TestChat:
    """Tests for OpenRouterClient.chat."""

    @pytest.mark.asyncio
    async def test_sends_context_history_and_new_message(self, client, recorder):
        recorder.body = chat_body("Since 987.")

        reply = await client.chat(
            "Capital of France?",
            "Paris",
            "Paris",
            "Correct.",
            [("user", "Why Paris?"), ("assistant", "It is the seat of government.")],
            "Since when?",
        )

        assert reply == "Since 987."
        payload = recorder.payload
        roles = [m["role"] for m in payload["messages"]]
        assert roles == ["system", "user", "assistant", "user"]
        system = payload["messages"][0]["content"]
        assert "Flashcard question: Capital of France?" in system
        assert "Your earlier feedback: Correct." in system
        assert payload["messages"][-1]["content"] == "Since when?"
        assert payload["temperature"] == 0.7
        assert payload["max_tokens"] == 2048

    @pytest.mark.asyncio
    async def test_first_message_has_no_history(self, client, recorder):
        await client.chat("q", "a", "b", "", [], "Explain?")

        messages = recorder.payload["messages"]
        assert len(messages) == 2
        assert "Your earlier feedback: (none)" in messages[0]["content"]
