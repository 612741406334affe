import pytest
from sqlalchemy import select

from src.models import Integration, TaskNotification


async def create_integration(client, **overrides):
    body = {
        "user_id": "user-1",
        "integration_type": "slack",
        "name": "Ops channel",
        "credentials": {"webhook_url": "https://hooks.slack.com/services/T/B/X"},
    }
    body.update(overrides)
    return await client.post("/api/integrations", json=body)


@pytest.mark.asyncio
async def test_create_integration(client, db_session_factory):
    resp = await create_integration(client)

    assert resp.status_code == 201
    data = resp.json()
    assert data["integration_type"] == "slack"
    assert data["name"] == "Ops channel"
    assert data["is_active"] is True
    assert "credentials" not in data

    async with db_session_factory() as session:
        stored = await session.get(Integration, data["id"])
    assert stored.credentials == {"webhook_url": "https://hooks.slack.com/services/T/B/X"}


@pytest.mark.asyncio
async def test_create_email_integration(client):
    resp = await create_integration(
        client,
        integration_type="email",
        name="On call",
        credentials={"email": "oncall@example.com"},
    )

    assert resp.status_code == 201
    assert resp.json()["integration_type"] == "email"


@pytest.mark.asyncio
async def test_list_integrations_newest_first(client):
    first = (await create_integration(client, name="First")).json()["id"]
    second = (
        await create_integration(
            client,
            integration_type="discord",
            name="Second",
            credentials={"webhook_url": "https://discord.com/api/webhooks/1/abc"},
        )
    ).json()["id"]
    await create_integration(client, user_id="user-2")

    resp = await client.get("/api/integrations", params={"user_id": "user-1"})

    assert resp.status_code == 200
    assert [i["id"] for i in resp.json()["items"]] == [second, first]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides, detail",
    [
        ({"name": "  "}, "Missing required fields"),
        ({"credentials": {}}, "Missing required fields"),
        ({"integration_type": "sms"}, "Invalid integration type"),
        ({"credentials": {"url": "https://x"}}, "Slack webhook URL is required"),
        (
            {"integration_type": "discord", "credentials": {"webhook_url": ""}},
            "Discord webhook URL is required",
        ),
        (
            {"integration_type": "webhook", "credentials": {"token": "t"}},
            "Webhook webhook URL is required",
        ),
        (
            {"integration_type": "email", "credentials": {"address": "a@b.co"}},
            "Email address is required",
        ),
        (
            {"integration_type": "email", "credentials": {"email": "not an@email.com"}},
            "Invalid email address format",
        ),
        (
            {"integration_type": "email", "credentials": {"email": "ops@localhost"}},
            "Invalid email address format",
        ),
    ],
)
async def test_create_integration_rejects_invalid(client, overrides, detail):
    resp = await create_integration(client, **overrides)

    assert resp.status_code == 400
    assert resp.json()["detail"] == detail


@pytest.mark.asyncio
async def test_create_integration_missing_field(client):
    resp = await client.post(
        "/api/integrations",
        json={"user_id": "user-1", "integration_type": "slack", "name": "No creds"},
    )

    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_delete_integration_removes_task_links(client, db_session_factory):
    integration_id = (await create_integration(client)).json()["id"]
    task = await client.post(
        "/api/tasks",
        json={
            "user_id": "user-1",
            "task_name": "Health",
            "api_url": "https://api.example.com/health",
            "schedule_interval": "5m",
        },
    )
    task_id = task.json()["id"]
    linked = await client.post(
        f"/api/tasks/{task_id}/notifications", json={"integration_id": integration_id}
    )
    assert linked.status_code == 201

    resp = await client.delete(f"/api/integrations/{integration_id}")
    assert resp.status_code == 204

    async with db_session_factory() as session:
        links = (await session.execute(select(TaskNotification))).scalars().all()
    assert links == []
    listed = await client.get("/api/integrations", params={"user_id": "user-1"})
    assert listed.json()["items"] == []
    # The task itself stays
    assert (await client.get(f"/api/tasks/{task_id}")).status_code == 200


@pytest.mark.asyncio
async def test_delete_unknown_integration(client):
    resp = await client.delete("/api/integrations/999")
    assert resp.status_code == 404
