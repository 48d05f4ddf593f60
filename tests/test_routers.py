"""HTTP surface over the engine."""

from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from lead_engine.db.session import get_db
from lead_engine.main import app
from lead_engine.scheduler.scheduler import build_default_scheduler


@pytest.fixture
def test_app(session_factory, ctx) -> FastAPI:
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.scheduler = build_default_scheduler(ctx)
    app.state.scheduler.arm()

    yield app

    app.dependency_overrides.clear()
    app.state.scheduler = None


@pytest_asyncio.fixture
async def client(test_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200


# ---------------- leads ----------------
async def test_round_robin_endpoint(client, factory):
    source = await factory.source()
    a, b = await factory.agents(2)
    await factory.pool(source.source_id, [a.agent_id, b.agent_id])
    lead = await factory.lead(source_id=source.source_id)

    response = await client.post(
        f"/api/v1/leads/{lead.lead_id}/assign/round-robin", json={"source_id": str(source.source_id)}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["agent_id"] == str(a.agent_id)
    assert body["assignment_type"] == "round_robin"


async def test_failed_assignment_is_structured(client, factory):
    source = await factory.source()
    lead = await factory.lead(source_id=source.source_id)

    response = await client.post(
        f"/api/v1/leads/{lead.lead_id}/assign/round-robin", json={"source_id": str(source.source_id)}
    )

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["error_kind"] == "no_eligible_agent"
    assert body["message"]


async def test_manual_assign_unknown_lead_is_404(client, factory):
    agent = await factory.agent()
    response = await client.post(f"/api/v1/leads/{uuid4()}/assign/manual", json={"agent_id": str(agent.agent_id)})
    assert response.status_code == 404
    assert response.json()["error_kind"] == "lead_not_found"


async def test_accept_reject_and_history(client, factory):
    a, b = await factory.agents(2)
    lead = await factory.lead()

    await client.post(
        f"/api/v1/leads/{lead.lead_id}/assign/multiple",
        json={"agent_ids": [str(a.agent_id), str(b.agent_id)]},
    )
    accepted = await client.post(f"/api/v1/leads/{lead.lead_id}/accept", json={"agent_id": str(a.agent_id)})
    rejected = await client.post(
        f"/api/v1/leads/{lead.lead_id}/reject", json={"agent_id": str(b.agent_id), "reason": "Busy"}
    )
    history = await client.get(f"/api/v1/leads/{lead.lead_id}/history")

    assert accepted.json()["success"] is True
    assert rejected.json()["success"] is True
    assert history.status_code == 200
    assert {h["to_agent_id"] for h in history.json()} == {str(a.agent_id), str(b.agent_id)}


async def test_pending_for_unknown_agent_is_404(client):
    response = await client.get(f"/api/v1/leads/pending/{uuid4()}")
    assert response.status_code == 404


async def test_empty_multi_assign_is_rejected_by_validation(client, factory):
    lead = await factory.lead()
    response = await client.post(f"/api/v1/leads/{lead.lead_id}/assign/multiple", json={"agent_ids": []})
    assert response.status_code == 422


# ---------------- pools ----------------
async def test_pool_management(client, factory):
    source = await factory.source()
    a, b = await factory.agents(2)

    added = await client.post(f"/api/v1/sources/{source.source_id}/pool", json={"agent_id": str(b.agent_id)})
    assert added.status_code == 201
    await client.post(f"/api/v1/sources/{source.source_id}/pool", json={"agent_id": str(a.agent_id)})
    duplicate = await client.post(f"/api/v1/sources/{source.source_id}/pool", json={"agent_id": str(a.agent_id)})
    assert duplicate.status_code == 409

    pool = (await client.get(f"/api/v1/sources/{source.source_id}/pool")).json()
    assert [m["agent_id"] for m in pool["members"]] == [str(a.agent_id), str(b.agent_id)]
    assert pool["next_agent_id"] == str(b.agent_id)

    removed = await client.delete(f"/api/v1/sources/{source.source_id}/pool/{b.agent_id}")
    assert removed.status_code == 200
    assert removed.json()["members"] == [
        {"agent_id": str(a.agent_id), "full_name": a.full_name, "is_next_in_rotation": True, "is_eligible": True}
    ]

    missing = await client.delete(f"/api/v1/sources/{source.source_id}/pool/{b.agent_id}")
    assert missing.status_code == 404


async def test_replace_pool_endpoint(client, factory):
    source = await factory.source()
    agents = await factory.agents(3)

    response = await client.put(
        f"/api/v1/sources/{source.source_id}/pool", json={"agent_ids": [str(a.agent_id) for a in agents]}
    )

    assert response.status_code == 200
    members = response.json()["members"]
    assert [m["is_next_in_rotation"] for m in members] == [True, False, False]


async def test_unknown_source_is_404(client):
    response = await client.get(f"/api/v1/sources/{uuid4()}/pool")
    assert response.status_code == 404


# ---------------- automation ----------------
async def test_health_endpoint(client):
    response = await client.get("/api/v1/automation/health")
    assert response.status_code == 200
    names = [job["name"] for job in response.json()["jobs"]]
    assert "No Activity Lead Rotation" in names


async def test_disable_enable_and_trigger(client):
    disabled = await client.post("/api/v1/automation/jobs/Fresh Lead Assignment/disable")
    assert disabled.json() == {"name": "Fresh Lead Assignment", "enabled": False}

    triggered = await client.post("/api/v1/automation/jobs/Fresh Lead Assignment/trigger")
    assert triggered.status_code == 200
    assert triggered.json()["status"] == "completed"

    enabled = await client.post("/api/v1/automation/jobs/Fresh Lead Assignment/enable")
    assert enabled.json()["enabled"] is True

    logs = await client.get("/api/v1/automation/logs", params={"event_type": "cron_completed"})
    assert logs.json()[0]["subject_id"] == "Fresh Lead Assignment"


async def test_unknown_job_is_404(client):
    response = await client.post("/api/v1/automation/jobs/Nope/trigger")
    assert response.status_code == 404


# ---------------- settings ----------------
async def test_settings_show_defaults(client):
    response = await client.get("/api/v1/automation/settings")

    assert response.status_code == 200
    body = response.json()
    assert body["automation"]["no_activity_rotation_enabled"] is False
    assert body["automation"]["fresh_lead_demotion_enabled"] is True
    assert body["lead_assignment"]["no_activity_timeout_minutes"] == 30
    assert body["lead_assignment"]["queue_agent_id"] == ""
    assert body["office_hours"]["working_days"] == "1,2,3,4,5"


async def test_enabling_a_switch_takes_effect_on_next_run(client, factory, clock):
    source = await factory.source()
    a, b = await factory.agents(2)
    await factory.pool(source.source_id, [a.agent_id, b.agent_id], flagged=b.agent_id)
    lead = await factory.lead(source_id=source.source_id, agent_id=a.agent_id)
    await factory.assignment(lead, a.agent_id, assigned_at=clock.now().replace(hour=8))

    before = await client.post("/api/v1/automation/jobs/No Activity Lead Rotation/trigger")
    assert before.json()["status"] == "skipped"

    updated = await client.put(
        "/api/v1/automation/settings/no_activity_rotation_enabled", json={"value": "true"}
    )
    assert updated.status_code == 200
    assert updated.json()["value"] is True

    after = await client.post("/api/v1/automation/jobs/No Activity Lead Rotation/trigger")
    assert after.json()["status"] == "completed"
    assert after.json()["processed"] == 1

    settings = await client.get("/api/v1/automation/settings")
    assert settings.json()["automation"]["no_activity_rotation_enabled"] is True


async def test_integer_setting_is_stored_typed(client):
    response = await client.put(
        "/api/v1/automation/settings/no_activity_timeout_minutes", json={"value": "45"}
    )

    assert response.status_code == 200
    assert response.json()["value"] == 45
    settings = await client.get("/api/v1/automation/settings")
    assert settings.json()["lead_assignment"]["no_activity_timeout_minutes"] == 45


@pytest.mark.parametrize(
    "key, payload",
    [
        ("no_activity_rotation_enabled", {"value": "maybe"}),
        ("no_activity_timeout_minutes", {"value": "soon"}),
        ("no_activity_timeout_minutes", {"value": "45", "type": "string"}),
        ("queue_agent_id", {"value": "not-a-uuid"}),
        ("working_from_time", {"value": "nine"}),
    ],
)
async def test_invalid_setting_is_rejected(client, key, payload):
    response = await client.put(f"/api/v1/automation/settings/{key}", json=payload)

    assert response.status_code == 400
    settings = await client.get("/api/v1/automation/settings")
    assert settings.json()["lead_assignment"]["no_activity_timeout_minutes"] == 30
