import asyncio
import json

import httpx
import pytest

from lifegrass.llm_client import CHAT, OLLAMA, RESPONSES, TextServiceClient, decode_completion, first_line
from lifegrass.services.reflections import (
    EMPTY_COMMENT,
    EMPTY_RECOMMENDATION,
    fallback_comment,
    fallback_recommendation,
)
from lifegrass.settings.config import Settings


def make_settings(**overrides):
    return Settings(_env_file=None, TOKEN_SECRET="x", **overrides)


def recording_transport(response_json=None, status=200):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status, json=response_json)

    return httpx.MockTransport(handler), seen


# ---------- decoding ----------
def test_decode_chat():
    data = {"choices": [{"message": {"content": "A warm week.\nSecond line"}}]}
    assert decode_completion(CHAT, data) == "A warm week."


def test_decode_responses():
    data = {"output": [
        {"type": "reasoning", "content": []},
        {"type": "message", "content": [{"type": "output_text", "text": "\"Keep going.\""}]},
    ]}
    assert decode_completion(RESPONSES, data) == "Keep going."


def test_decode_ollama():
    assert decode_completion(OLLAMA, {"response": "```\nStay curious.\n```"}) == "Stay curious."


@pytest.mark.parametrize("kind,data", [
    (CHAT, {"response": "wrong kind"}),
    (CHAT, {"choices": []}),
    (CHAT, {"choices": [{"message": {"content": None}}]}),
    (RESPONSES, {"choices": [{"message": {"content": "x"}}]}),
    (OLLAMA, {"response": "   "}),
    (OLLAMA, ["not", "a", "dict"]),
    ("unknown", {"response": "x"}),
])
def test_decode_unexpected_shapes(kind, data):
    assert decode_completion(kind, data) is None


def test_first_line_strips_wrapping():
    assert first_line("\n\n  “Quoted line”  \nmore") == "Quoted line"
    assert first_line("'single'") == "single"
    assert first_line("") == ""


# ---------- client ----------
def test_ollama_request_and_answer():
    transport, seen = recording_transport({"response": "A calm, steady week."})
    service = TextServiceClient(make_settings(AI_PROVIDER="ollama"), transport=transport)
    text, source = asyncio.run(service.comment("rest", "slept a lot", year=2024, week=10))
    assert (text, source) == ("A calm, steady week.", "ai")
    request = seen[0]
    assert request.url == httpx.URL("http://localhost:11434/api/generate")
    payload = json.loads(request.content)
    assert payload["model"] == "llama3.1:8b"
    assert payload["stream"] is False
    assert "Week 10, 2024" in payload["prompt"]
    assert "Keywords: rest" in payload["prompt"]


def test_azure_chat_request():
    transport, seen = recording_transport({"choices": [{"message": {"content": "Call a friend."}}]})
    service = TextServiceClient(
        make_settings(AI_PROVIDER="azure", AZURE_OPENAI_API_KEY="k", AZURE_OPENAI_ENDPOINT="https://example.openai.azure.com/"),
        transport=transport,
    )
    assert service.kind == CHAT
    text, source = asyncio.run(service.recommend("friends", "missed them"))
    assert (text, source) == ("Call a friend.", "ai")
    request = seen[0]
    assert request.url.path == "/openai/deployments/gpt-5-mini/chat/completions"
    assert request.url.params["api-version"] == "2024-02-15-preview"
    assert request.headers["api-key"] == "k"


def test_azure_responses_endpoint():
    endpoint = "https://example.openai.azure.com/openai/responses?api-version=2025-04-01-preview"
    transport, seen = recording_transport(
        {"output": [{"type": "message", "content": [{"type": "output_text", "text": "Nice week."}]}]}
    )
    service = TextServiceClient(
        make_settings(AI_PROVIDER="azure", AZURE_OPENAI_API_KEY="k", AZURE_OPENAI_ENDPOINT=endpoint),
        transport=transport,
    )
    assert service.kind == RESPONSES
    assert asyncio.run(service.comment("", "nice")) == ("Nice week.", "ai")
    assert json.loads(seen[0].content)["input"]


def test_upstream_error_falls_back():
    transport, _ = recording_transport({"error": "boom"}, status=500)
    service = TextServiceClient(make_settings(AI_PROVIDER="ollama"), transport=transport)
    text, source = asyncio.run(service.comment("work", "shipped the release"))
    assert source == "fallback"
    assert text == fallback_comment("work", "shipped the release")


def test_unexpected_shape_falls_back():
    transport, _ = recording_transport({"unexpected": True})
    service = TextServiceClient(make_settings(AI_PROVIDER="ollama"), transport=transport)
    text, source = asyncio.run(service.recommend("", "study for exams"))
    assert source == "fallback"
    assert text == fallback_recommendation("", "study for exams")


def test_disabled_service_never_calls_out():
    transport, seen = recording_transport({"response": "unused"})
    service = TextServiceClient(make_settings(AI_PROVIDER="off"), transport=transport)
    assert service.kind is None
    assert asyncio.run(service.comment("work", "busy"))[1] == "fallback"
    assert seen == []


def test_azure_without_key_is_disabled():
    service = TextServiceClient(make_settings(AI_PROVIDER="azure", AZURE_OPENAI_ENDPOINT="https://x"))
    assert service.kind is None


def test_empty_entry_needs_no_service():
    transport, seen = recording_transport({"response": "unused"})
    service = TextServiceClient(make_settings(AI_PROVIDER="ollama"), transport=transport)
    assert asyncio.run(service.comment("  ", "")) == (EMPTY_COMMENT, "fallback")
    assert asyncio.run(service.recommend("", "")) == (EMPTY_RECOMMENDATION, "fallback")
    assert seen == []


# ---------- local fallback ----------
def test_fallback_is_deterministic():
    assert fallback_comment("family", "dinner together") == fallback_comment("family", "dinner together")
    assert fallback_comment(" family ", "dinner together\n") == fallback_comment("family", "dinner together")


def test_fallback_follows_theme():
    people = {
        "Time with the people you love turned into a warm memory.",
        "The warmth of your people made this week special.",
        "Moments shared this week will be kept like treasure.",
    }
    assert fallback_comment("", "dinner with family") in people


def test_fallback_keywords_only_mentions_keywords():
    assert "coffee, rain" in fallback_comment("coffee, rain, books", "")


def test_fallback_recommendation_theme():
    assert fallback_recommendation("", "study for exams") == "Next week, teach one thing you learned to someone else."


def test_fallback_empty():
    assert fallback_comment() == EMPTY_COMMENT
    assert fallback_recommendation("", "   ") == EMPTY_RECOMMENDATION


# ---------- endpoints ----------
def test_comment_endpoint_always_answers(client):
    r = client.post("/api/comment", json={"keywords": "work", "text": "long week", "year": 2024, "week": 10})
    assert r.status_code == 200
    assert r.json() == {"comment": fallback_comment("work", "long week"), "source": "fallback"}


def test_recommend_endpoint_always_answers(client):
    r = client.post("/api/recommend", json={"keywords": "", "text": ""})
    assert r.status_code == 200
    assert r.json() == {"recommendation": EMPTY_RECOMMENDATION, "source": "fallback"}
