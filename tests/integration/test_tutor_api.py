"""
Integration Tests for the Tutor HTTP API.

Drives the full loop through FastAPI's TestClient:
1. /setup-form creates a session and returns the first concept
2. /submit-query grades a submission against the practice database
3. The orchestrator steps the environment, stores the transition and trains
4. The next concept is returned and visible via /api/getAction

Uses an in-memory SQLite practice database; no external services needed.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from config import Settings
from src.agent.orchestrator import TrainingOrchestrator
from src.api.main import create_app
from src.practice.catalog import ConceptCatalog
from src.practice.query_runner import PracticeDatabase

pytestmark = pytest.mark.integration


def _settings(tmp_path, **overrides):
    values = {
        "num_concepts": 10,
        "pretrain_on_setup": False,
        "dataset_path": str(tmp_path / "missing.csv"),
        "model_path": str(tmp_path / "missing.npz"),
        "batch_size": 2,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def orchestrator():
    return TrainingOrchestrator(
        agent_config={"exploration_rate": 0.0, "seed": 0},
        batch_size=2,
        pretrain_on_setup=False,
    )


@pytest.fixture
def catalog():
    return ConceptCatalog()


@pytest.fixture
def client(tmp_path, orchestrator, catalog):
    app = create_app(
        settings=_settings(tmp_path),
        orchestrator=orchestrator,
        practice_db=PracticeDatabase(),
        catalog=catalog,
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def session(client):
    response = client.post("/setup-form", json={"theme": "space", "schema": "company", "concepts": ["JOIN"]})
    assert response.status_code == 200
    return response.json()


class TestHealth:

    def test_root(self, client):
        assert client.get("/").json()["status"] == "ok"

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["components"]["catalog"] == "configured"

    def test_config(self, client):
        data = client.get("/config").json()
        assert data["num_concepts"] == 10
        assert data["reward"]["zone_bonus"] == 1.0


class TestSetup:

    def test_setup_returns_first_concept(self, session):
        assert 0 <= session["action"] < 10
        assert session["num_concepts"] == 10
        assert session["item"]["prompt"]

    def test_setup_with_session_id(self, client, orchestrator):
        response = client.post("/setup-form", json={"session_id": "learner-42"})
        assert response.json()["session_id"] == "learner-42"
        assert "learner-42" in orchestrator.list_sessions()


class TestSubmitQuery:

    def test_submit_correct_flag(self, client, session):
        response = client.post(
            "/submit-query",
            json={"session_id": session["session_id"], "correct": True, "action": 0},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["reward"] == pytest.approx(1.2)
        assert data["newMastery"][0] == pytest.approx(0.7)
        assert data["correct"] is True
        assert 0 <= data["next_action"] < 10

    def test_submit_matching_rows(self, client, session, catalog):
        action = session["action"]
        expected = catalog.expected_rows(action, PracticeDatabase())
        response = client.post(
            "/submit-query",
            json={"session_id": session["session_id"], "rows": [list(r) for r in reversed(expected)]},
        )
        data = response.json()
        assert data["correct"] is True
        assert data["action"] == action
        assert data["newMastery"][action] == pytest.approx(0.7)

    def test_submit_user_query_is_graded(self, client, session, catalog):
        action = session["action"]
        reference = catalog.item(action).reference_query
        data = client.post(
            "/submit-query",
            json={"session_id": session["session_id"], "userQuery": reference},
        ).json()
        assert data["correct"] is True
        assert data["query_error"] is None

    def test_broken_query_counts_as_incorrect(self, client, session):
        action = session["action"]
        data = client.post(
            "/submit-query",
            json={"session_id": session["session_id"], "userQuery": "SELECT FROM WHERE"},
        ).json()
        assert data["correct"] is False
        assert data["query_error"]
        assert data["newMastery"][action] == pytest.approx(0.55)

    def test_missing_grading_source(self, client, session, orchestrator):
        response = client.post("/submit-query", json={"session_id": session["session_id"]})
        assert response.status_code == 422
        # Ungraded attempts leave the session untouched
        assert orchestrator.get_state(session["session_id"]).mastery == (0.6,) * 10

    def test_unknown_session(self, client):
        response = client.post("/submit-query", json={"session_id": "nope", "correct": True})
        assert response.status_code == 404

    def test_invalid_action(self, client, session, orchestrator):
        response = client.post(
            "/submit-query",
            json={"session_id": session["session_id"], "correct": True, "action": 10},
        )
        assert response.status_code == 400
        assert len(orchestrator.get_agent(10).store) == 0

    def test_training_starts_once_batch_available(self, client, session):
        payload = {"session_id": session["session_id"], "correct": False}
        first = client.post("/submit-query", json=payload).json()
        second = client.post("/submit-query", json=payload).json()
        assert first["trained"] is False
        assert second["trained"] is True

    def test_next_action_matches_get_action(self, client, session):
        data = client.post(
            "/submit-query", json={"session_id": session["session_id"], "correct": True}
        ).json()
        current = client.get("/api/getAction", params={"session_id": session["session_id"]}).json()
        assert current["action"] == data["next_action"]
        assert current["item"]["concept"] == data["next_item"]["concept"]


class TestSessionEndpoints:

    def test_state_and_reset(self, client, session):
        sid = session["session_id"]
        client.post("/submit-query", json={"session_id": sid, "correct": True, "action": 2})

        state = client.get(f"/sessions/{sid}/state").json()
        assert state["mastery"][2] == pytest.approx(0.7)

        reset = client.post(f"/sessions/{sid}/reset").json()
        assert reset["mastery"] == [0.6] * 10
        assert reset["done"] is False

    def test_end_session(self, client, session):
        sid = session["session_id"]
        assert client.delete(f"/sessions/{sid}").status_code == 200
        assert client.delete(f"/sessions/{sid}").status_code == 404
        assert client.get("/api/getAction", params={"session_id": sid}).status_code == 404

    def test_unknown_session_state(self, client):
        assert client.get("/sessions/nope/state").status_code == 404


class TestWithoutCatalog:
    """Concept counts without a catalogue only accept caller-graded submissions."""

    @pytest.fixture
    def small_client(self, tmp_path):
        app = create_app(
            settings=_settings(tmp_path, num_concepts=3),
            orchestrator=TrainingOrchestrator(agent_config={"seed": 0}, pretrain_on_setup=False),
            practice_db=PracticeDatabase(),
        )
        with TestClient(app) as test_client:
            yield test_client

    def test_setup_without_item(self, small_client):
        data = small_client.post("/setup-form", json={}).json()
        assert data["num_concepts"] == 3
        assert data["item"] is None

    def test_query_submission_rejected(self, small_client):
        sid = small_client.post("/setup-form", json={}).json()["session_id"]
        response = small_client.post("/submit-query", json={"session_id": sid, "userQuery": "SELECT 1"})
        assert response.status_code == 400

    def test_correct_flag_accepted(self, small_client):
        sid = small_client.post("/setup-form", json={}).json()["session_id"]
        response = small_client.post("/submit-query", json={"session_id": sid, "correct": True, "action": 1})
        assert response.status_code == 200
        assert response.json()["newMastery"] == pytest.approx([0.6, 0.7, 0.6])


class TestRequestHandling:
    """Handlers run in the threadpool and grade awkward submissions."""

    def test_attempt_processed_off_event_loop(self, client, session, orchestrator, monkeypatch):
        seen = []
        process_attempt = orchestrator.process_attempt

        def recording_process_attempt(*args, **kwargs):
            try:
                asyncio.get_running_loop()
                seen.append("event loop")
            except RuntimeError:
                seen.append("worker thread")
            return process_attempt(*args, **kwargs)

        monkeypatch.setattr(orchestrator, "process_attempt", recording_process_attempt)
        response = client.post("/submit-query", json={"session_id": session["session_id"], "correct": True})

        assert response.status_code == 200
        assert seen == ["worker thread"]

    def test_wide_numeric_rows_are_graded(self, client, session):
        response = client.post(
            "/submit-query",
            json={"session_id": session["session_id"], "rows": [["10000000000000000000000000"]]},
        )
        assert response.status_code == 200
        assert response.json()["correct"] is False
