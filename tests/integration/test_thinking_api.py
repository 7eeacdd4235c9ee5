"""
THINKING API TESTS

HTTP surface over an in-memory ReasoningService. The app lifespan is not
run, so the module-level engine is never touched.
"""
import httpx
import pytest

from api.endpoints.thinking import get_reasoning_service
from main import app


@pytest.fixture
async def client(reasoning_service):
    app.dependency_overrides[get_reasoning_service] = lambda: reasoning_service
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


async def _start(client, goal="Design auth flow", project="demo"):
    response = await client.post("/thinking/start", json={"goal": goal, "project_name": project})
    assert response.status_code == 200
    return response.json()["sequence_id"]


class TestThinkingEndpoints:

    async def test_health(self, client):
        response = await client.get("/health")
        assert response.json() == {"status": "ok"}

    async def test_start_and_append(self, client):
        sid = await _start(client)

        response = await client.post(
            f"/thinking/{sid}/thoughts", json={"content": "JWT is stateless", "thought_type": "observation"}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["thought_number"] == 1
        assert body["is_complete"] is False
        assert body["content"].endswith("1. [observation] JWT is stateless")

    async def test_completed_sequence_returns_409(self, client):
        sid = await _start(client)
        await client.post(f"/thinking/{sid}/thoughts", json={"content": "Therefore use JWT.", "thought_type": "conclusion"})

        response = await client.post(f"/thinking/{sid}/thoughts", json={"content": "one more"})
        assert response.status_code == 409
        error = response.json()["detail"]["error"]
        assert error["code"] == "SequenceAlreadyComplete"
        assert error["details"]["action"] == "start_new_sequence"

    async def test_missing_sequence_returns_404(self, client):
        response = await client.post("/thinking/999/thoughts", json={"content": "hello"})
        assert response.status_code == 404
        assert response.json()["detail"]["error"]["code"] == "SequenceNotFound"

        assert (await client.get("/thinking/999")).status_code == 404
        assert (await client.post("/thinking/999/complete")).status_code == 404

    async def test_empty_content_rejected(self, client):
        sid = await _start(client)
        response = await client.post(f"/thinking/{sid}/thoughts", json={"content": ""})
        assert response.status_code == 422

    async def test_whitespace_input_rejected(self, client):
        sid = await _start(client)

        thought = await client.post(f"/thinking/{sid}/thoughts", json={"content": "   "})
        assert thought.status_code == 422

        start = await client.post("/thinking/start", json={"goal": "Pick a broker", "project_name": "  "})
        assert start.status_code == 422

        added = (await client.post(f"/thinking/{sid}/thoughts", json={"content": "draft"})).json()
        revise = await client.post(f"/thinking/thoughts/{added['thought_id']}/revise", json={"content": "\t\n"})
        assert revise.status_code == 422

        # nothing blank reached the store
        view = (await client.get(f"/thinking/{sid}")).json()
        assert [t["content"] for t in view["thoughts"]] == ["draft"]

    async def test_content_is_stripped(self, client):
        sid = await _start(client)
        body = (await client.post(f"/thinking/{sid}/thoughts", json={"content": "  JWT is stateless  "})).json()
        assert body["content"].endswith("1. [observation] JWT is stateless")

    async def test_revise(self, client):
        sid = await _start(client)
        added = (await client.post(f"/thinking/{sid}/thoughts", json={"content": "draft"})).json()

        response = await client.post(
            f"/thinking/thoughts/{added['thought_id']}/revise",
            json={"content": "final", "reason": "typo", "confidence_level": 0.8},
        )
        assert response.status_code == 200
        assert response.json()["revision_number"] == 1

        missing = await client.post("/thinking/thoughts/999/revise", json={"content": "x"})
        assert missing.status_code == 404
        assert missing.json()["detail"]["error"]["code"] == "ThoughtNotFound"

    async def test_complete_with_and_without_body(self, client):
        first = await _start(client)
        response = await client.post(f"/thinking/{first}/complete", json={"summary": "Use JWT"})
        assert response.status_code == 200
        assert response.json()["summary"] == "Use JWT"

        second = await _start(client, goal="Pick a broker")
        response = await client.post(f"/thinking/{second}/complete")
        assert response.status_code == 200
        assert response.json()["summary"] == "Empty thinking sequence"

        again = await client.post(f"/thinking/{second}/complete")
        assert again.status_code == 409

    async def test_get_sequence_formats(self, client):
        sid = await _start(client)
        await client.post(f"/thinking/{sid}/thoughts", json={"content": "JWT is stateless"})
        await client.post(f"/thinking/{sid}/thoughts", json={"content": "Sessions instead", "thought_type": "alternative"})

        detailed = (await client.get(f"/thinking/{sid}")).json()
        assert len(detailed["thoughts"]) == 2
        assert detailed["branches"][0]["branch_name"] == "Alternative 2"
        assert detailed["progress"]["branch_count"] == 1

        linear = (await client.get(f"/thinking/{sid}", params={"format": "linear"})).json()
        assert len(linear["thoughts"]) == 1

        assert (await client.get(f"/thinking/{sid}", params={"format": "tree"})).status_code == 422

    async def test_export(self, client):
        sid = await _start(client)
        await client.post(f"/thinking/{sid}/thoughts", json={"content": "JWT is stateless"})

        response = await client.get(f"/thinking/{sid}/export", params={"format": "Text"})
        assert response.status_code == 200
        assert response.json()["format"] == "text"
        assert "[OBSERVATION] JWT is stateless" in response.json()["content"]

        bad = await client.get(f"/thinking/{sid}/export", params={"format": "pdf"})
        assert bad.status_code == 400
        assert bad.json()["detail"]["error"]["code"] == "UnsupportedExportFormat"

    async def test_list_and_search(self, client):
        sid = await _start(client)
        await _start(client, goal="Pick a broker", project="infra")

        listing = (await client.get("/projects/demo/thinking")).json()
        assert [row["id"] for row in listing] == [sid]

        found = (await client.get("/thinking/search", params={"q": "auth"})).json()
        assert [row["id"] for row in found] == [sid]

        assert (await client.get("/thinking/search")).status_code == 422
