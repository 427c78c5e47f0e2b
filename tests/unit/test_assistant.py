import json

import httpx
import pytest

from app.core.exceptions import AssistantError, AssistantTimeout
from app.services.assistant import OpenAIAssistant


def make_assistant(handler, max_poll_attempts=3):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://api.test/v1")
    return OpenAIAssistant(
        api_key="sk-test",
        assistant_id="asst_1",
        poll_interval=0,
        max_poll_attempts=max_poll_attempts,
        client=client,
    )


def run_handler(run_statuses, reply="Voici ma réponse"):
    statuses = list(run_statuses)
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        path = request.url.path
        if request.method == "POST" and path == "/v1/threads":
            return httpx.Response(200, json={"id": "thread_1"})
        if request.method == "POST" and path.endswith("/messages"):
            return httpx.Response(200, json={"id": "msg_1"})
        if request.method == "POST" and path.endswith("/runs"):
            body = json.loads(request.content)
            assert body["assistant_id"] == "asst_1"
            return httpx.Response(200, json={"id": "run_1", "status": "queued"})
        if request.method == "GET" and "/runs/" in path:
            return httpx.Response(200, json={"id": "run_1", "status": statuses.pop(0)})
        if request.method == "GET" and path.endswith("/messages"):
            return httpx.Response(200, json={"data": [
                {"role": "assistant", "content": [{"type": "text", "text": {"value": reply}}]},
                {"role": "user", "content": [{"type": "text", "text": {"value": "question"}}]},
            ]})
        return httpx.Response(404)

    return handler, seen


async def test_create_thread_and_ask():
    handler, seen = run_handler(["in_progress", "completed"])
    assistant = make_assistant(handler)

    thread_id = await assistant.create_thread()
    reply = await assistant.ask(thread_id, "Combien coûte un divorce ?", "Réponds en français")

    assert thread_id == "thread_1"
    assert reply == "Voici ma réponse"
    assert seen.count(("GET", "/v1/threads/thread_1/runs/run_1")) == 2
    await assistant.aclose()


@pytest.mark.parametrize("status", ["failed", "cancelled", "expired", "incomplete"])
async def test_failed_run(status):
    handler, _ = run_handler([status])
    assistant = make_assistant(handler)

    with pytest.raises(AssistantError):
        await assistant.ask("thread_1", "question")


async def test_run_never_completes():
    handler, seen = run_handler(["in_progress"] * 10)
    assistant = make_assistant(handler, max_poll_attempts=3)

    with pytest.raises(AssistantTimeout):
        await assistant.ask("thread_1", "question")
    assert sum(1 for method, path in seen if "/runs/" in path) == 3


async def test_http_error_becomes_assistant_error():
    assistant = make_assistant(lambda request: httpx.Response(500, text="boom"))

    with pytest.raises(AssistantError):
        await assistant.create_thread()


async def test_unconfigured_assistant():
    assistant = OpenAIAssistant(api_key="", assistant_id="")

    with pytest.raises(AssistantError):
        await assistant.create_thread()
    await assistant.aclose()
