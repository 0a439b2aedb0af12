"""
Unit Tests for API Controllers/Endpoints

Tests the FastAPI endpoints against a temp-dir store and scripted agents.
"""

import pytest
from fastapi import status

from src.interview.llm_client import ParticipantReply


def create_run(client, body):
    response = client.post("/api/runs", json=body)
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_root_endpoint(self, test_client):
        response = test_client.get("/")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert "message" in data
        assert data["docs"] == "/api/docs"

    def test_health_endpoint(self, test_client):
        """Health reports which backend is serving requests."""
        response = test_client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "ok", "store": "local"}


class TestRunEndpoints:
    """Tests for run CRUD endpoints."""

    def test_create_interactive_run(self, test_client, sample_interactive_request):
        data = create_run(test_client, sample_interactive_request)

        assert data["runId"]
        assert data["mode"] == "interactive"
        assert data["status"] == "active"
        assert data["turnCount"] == 0
        assert data["transcript"] == []
        assert data["agentAPromptVersionId"] == "default"

    def test_create_simulated_run(self, test_client, sample_simulated_request):
        data = create_run(test_client, sample_simulated_request)

        assert data["mode"] == "simulated"
        assert data["agentBProfileId"] == "default"
        assert data["maxTurns"] == 4

    def test_create_run_missing_question(self, test_client):
        response = test_client.post("/api/runs", json={"mode": "interactive"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_create_simulated_run_without_profile(self, test_client):
        response = test_client.post("/api/runs", json={"mode": "simulated", "initialQuestion": "q"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_create_simulated_run_unknown_profile(self, test_client):
        response = test_client.post(
            "/api/runs", json={"mode": "simulated", "initialQuestion": "q", "profileId": "nobody"}
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_list_runs_empty(self, test_client):
        response = test_client.get("/api/runs")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == []

    def test_get_and_delete_run(self, test_client, sample_interactive_request):
        run_id = create_run(test_client, sample_interactive_request)["runId"]

        assert test_client.get(f"/api/runs/{run_id}").json()["runId"] == run_id
        assert test_client.delete(f"/api/runs/{run_id}").status_code == status.HTTP_204_NO_CONTENT
        assert test_client.get(f"/api/runs/{run_id}").status_code == status.HTTP_404_NOT_FOUND

    def test_get_run_not_found(self, test_client):
        response = test_client.get("/api/runs/non_existent_id")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_delete_run_not_found(self, test_client):
        response = test_client.delete("/api/runs/non_existent_id")

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestChatEndpoints:
    """Tests for the interactive mode endpoints."""

    def test_start_chat(self, test_client, sample_interactive_request):
        run_id = create_run(test_client, sample_interactive_request)["runId"]

        response = test_client.post(f"/api/runs/{run_id}/chat/start")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["interviewerMessage"] == "Question 1?"
        assert data["done"] is False
        assert data["run"]["turnCount"] == 1
        assert data["run"]["transcript"][0]["role"] == "agentA"

    def test_start_chat_twice_returns_same_run(self, test_client, sample_interactive_request):
        run_id = create_run(test_client, sample_interactive_request)["runId"]
        test_client.post(f"/api/runs/{run_id}/chat/start")

        response = test_client.post(f"/api/runs/{run_id}/chat/start")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["run"]["turnCount"] == 1

    def test_chat_message(self, test_client, sample_interactive_request):
        run_id = create_run(test_client, sample_interactive_request)["runId"]
        test_client.post(f"/api/runs/{run_id}/chat/start")

        response = test_client.post(f"/api/runs/{run_id}/chat", json={"userMessage": "Twelve people"})

        assert response.status_code == status.HTTP_200_OK
        roles = [e["role"] for e in response.json()["run"]["transcript"]]
        assert roles == ["agentA", "user", "agentA"]

    def test_chat_empty_message(self, test_client, sample_interactive_request):
        run_id = create_run(test_client, sample_interactive_request)["runId"]

        response = test_client.post(f"/api/runs/{run_id}/chat", json={"userMessage": ""})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_chat_on_simulated_run(self, test_client, sample_simulated_request):
        run_id = create_run(test_client, sample_simulated_request)["runId"]

        response = test_client.post(f"/api/runs/{run_id}/chat", json={"userMessage": "hi"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_chat_unknown_run(self, test_client):
        response = test_client.post("/api/runs/missing/chat", json={"userMessage": "hi"})

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_interviewer_done_returns_evaluation(self, test_client, fake_agents, sample_interactive_request):
        fake_agents.interviewer_replies = [ParticipantReply("Bye", done=True)]
        run_id = create_run(test_client, sample_interactive_request)["runId"]

        data = test_client.post(f"/api/runs/{run_id}/chat/start").json()

        assert data["done"] is True
        assert data["reason"] == "interviewer_done"
        assert data["evaluation"]["overallScore"] == 82
        assert data["run"]["status"] == "completed"

    def test_agent_failure_is_500(self, test_client, fake_agents, sample_interactive_request):
        async def boom(*args, **kwargs):
            raise RuntimeError("model unavailable")
        fake_agents.call_interviewer = boom
        run_id = create_run(test_client, sample_interactive_request)["runId"]

        response = test_client.post(f"/api/runs/{run_id}/chat/start")

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert "model unavailable" in response.json()["detail"]


class TestSimulationEndpoints:
    """Tests for simulated runs and manual termination."""

    def test_step_until_ceiling(self, test_client, fake_agents, sample_simulated_request):
        sample_simulated_request["maxTurns"] = 2
        run_id = create_run(test_client, sample_simulated_request)["runId"]

        first = test_client.post(f"/api/runs/{run_id}/sim/step").json()
        second = test_client.post(f"/api/runs/{run_id}/sim/step").json()

        assert first["personaMessage"] == "Answer 1"
        assert first["done"] is False
        assert second["done"] is True
        assert second["reason"] == "max_turns"
        assert len(fake_agents.evaluator_calls) == 1

    def test_step_on_completed_run(self, test_client, sample_simulated_request):
        run_id = create_run(test_client, sample_simulated_request)["runId"]
        test_client.post(f"/api/runs/{run_id}/sim/step")
        test_client.post(f"/api/runs/{run_id}/discard")

        response = test_client.post(f"/api/runs/{run_id}/sim/step")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_stop_run(self, test_client, sample_simulated_request):
        run_id = create_run(test_client, sample_simulated_request)["runId"]
        test_client.post(f"/api/runs/{run_id}/sim/step")

        response = test_client.post(f"/api/runs/{run_id}/stop")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["reason"] == "stopped"
        assert data["run"]["status"] == "completed"
        assert data["evaluation"]["subscores"]["tone"] == 95

    def test_stop_too_early(self, test_client, sample_interactive_request):
        run_id = create_run(test_client, sample_interactive_request)["runId"]

        response = test_client.post(f"/api/runs/{run_id}/stop")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_discard_run(self, test_client, fake_agents, sample_simulated_request):
        run_id = create_run(test_client, sample_simulated_request)["runId"]
        test_client.post(f"/api/runs/{run_id}/sim/step")

        response = test_client.post(f"/api/runs/{run_id}/discard")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["evaluation"] is None
        assert fake_agents.evaluator_calls == []


class TestUploadEndpoint:
    """Tests for transcript import."""

    def test_upload_transcript(self, test_client, fake_agents, sample_upload_request):
        response = test_client.post("/api/runs/upload", json=sample_upload_request)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["mode"] == "imported"
        assert data["status"] == "completed"
        assert data["turnCount"] == 3
        assert data["agentAPromptVersionId"] == "uploaded"
        assert data["evaluation"]["overallScore"] == 82
        assert len(fake_agents.evaluator_calls) == 1

    def test_upload_empty_transcript(self, test_client):
        response = test_client.post("/api/runs/upload", json={"initialQuestion": "q", "transcript": []})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_upload_unknown_role(self, test_client):
        response = test_client.post("/api/runs/upload", json={
            "initialQuestion": "q",
            "transcript": [{"role": "narrator", "content": "Once upon a time"}],
        })

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestPromptEndpoints:
    """Tests for prompt version endpoints."""

    def prompt(self, **overrides):
        body = {"agentType": "agentA", "content": "Ask one question at a time.", "author": "sam"}
        body.update(overrides)
        return body

    def test_list_prompts_empty(self, test_client):
        response = test_client.get("/api/prompts/agentA")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"prompts": [], "activePrompt": None}

    def test_first_prompt_becomes_active(self, test_client):
        created = test_client.post("/api/prompts", json=self.prompt())

        assert created.status_code == status.HTTP_201_CREATED
        listing = test_client.get("/api/prompts/agentA").json()
        assert listing["activePrompt"]["id"] == created.json()["id"]

    def test_create_prompt_blank_author(self, test_client):
        response = test_client.post("/api/prompts", json=self.prompt(author="   "))

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_activate_prompt(self, test_client):
        first = test_client.post("/api/prompts", json=self.prompt()).json()
        second = test_client.post("/api/prompts", json=self.prompt(content="v2")).json()

        response = test_client.put(f"/api/prompts/agentA/{second['id']}/activate")

        assert response.status_code == status.HTTP_200_OK
        listing = test_client.get("/api/prompts/agentA").json()
        active = [p["id"] for p in listing["prompts"] if p["isActive"]]
        assert active == [second["id"]]
        assert first["id"] != second["id"]

    def test_activate_unknown_prompt(self, test_client):
        response = test_client.put("/api/prompts/agentA/prompt_missing/activate")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_delete_active_prompt_rejected(self, test_client):
        created = test_client.post("/api/prompts", json=self.prompt()).json()

        response = test_client.delete(f"/api/prompts/agentA/{created['id']}")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_delete_inactive_prompt(self, test_client):
        test_client.post("/api/prompts", json=self.prompt())
        inactive = test_client.post("/api/prompts", json=self.prompt(content="v2")).json()

        response = test_client.delete(f"/api/prompts/agentA/{inactive['id']}")

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert len(test_client.get("/api/prompts/agentA").json()["prompts"]) == 1

    def test_unknown_agent_type(self, test_client):
        response = test_client.get("/api/prompts/agentZ")

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestProfileEndpoints:
    """Tests for persona profile endpoints."""

    def test_list_profiles_falls_back_to_builtin(self, test_client):
        data = test_client.get("/api/profiles").json()

        assert [p["id"] for p in data] == ["default"]

    def test_create_update_delete_profile(self, test_client):
        created = test_client.post("/api/profiles", json={"name": "Pat", "content": "A florist"})
        assert created.status_code == status.HTTP_201_CREATED
        profile_id = created.json()["id"]

        updated = test_client.put(f"/api/profiles/{profile_id}", json={"content": "A baker"})
        assert updated.status_code == status.HTTP_200_OK
        assert updated.json()["name"] == "Pat"
        assert updated.json()["content"] == "A baker"
        assert updated.json()["updatedAt"]

        assert [p["id"] for p in test_client.get("/api/profiles").json()] == [profile_id]
        assert test_client.delete(f"/api/profiles/{profile_id}").status_code == status.HTTP_204_NO_CONTENT

    def test_update_missing_profile(self, test_client):
        response = test_client.put("/api/profiles/nobody", json={"name": "X"})

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_delete_missing_profile(self, test_client):
        response = test_client.delete("/api/profiles/nobody")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_delete_default_profile_rejected(self, test_client):
        response = test_client.delete("/api/profiles/default")

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestSettingsEndpoints:
    """Tests for evaluation settings (Feature: configurable-scoring)."""

    def test_get_default_settings(self, test_client):
        data = test_client.get("/api/settings").json()

        assert len(data["scoringFactors"]) == 7
        assert data["scoringFactors"][0]["name"] == "relevance"
        assert {o["name"] for o in data["outputOptions"]} >= {"overallScore", "evidence"}

    def test_update_settings(self, test_client):
        data = test_client.get("/api/settings").json()
        data["scoringFactors"] = [{"name": "empathy", "minScore": 1, "maxScore": 5}]

        response = test_client.put("/api/settings", json=data)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["updatedAt"]
        schema = test_client.get("/api/settings/evaluation-schema").json()
        assert schema["properties"]["subscores"]["required"] == ["empathy"]

    def test_update_settings_duplicate_factor(self, test_client):
        data = test_client.get("/api/settings").json()
        data["scoringFactors"] = [{"name": "tone"}, {"name": "tone"}]

        response = test_client.put("/api/settings", json=data)

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_update_settings_blank_model(self, test_client):
        data = test_client.get("/api/settings").json()
        data["agentCModel"] = ""

        response = test_client.put("/api/settings", json=data)

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_update_settings_inverted_range(self, test_client):
        data = test_client.get("/api/settings").json()
        data["scoringFactors"] = [{"name": "tone", "minScore": 10, "maxScore": 1}]

        response = test_client.put("/api/settings", json=data)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestAsyncClient:
    """The same endpoints driven through the ASGI transport."""

    @pytest.mark.asyncio
    async def test_create_and_start(self, async_client, sample_interactive_request):
        created = await async_client.post("/api/runs", json=sample_interactive_request)
        run_id = created.json()["runId"]

        response = await async_client.post(f"/api/runs/{run_id}/chat/start")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["run"]["taskTopic"] == "Team offsite"
