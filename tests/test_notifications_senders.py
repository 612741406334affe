import json

import httpx
import pytest

from src.exceptions import ChannelDeliveryError
from src.models.integration import IntegrationType
from src.notifications.discord import DiscordSender
from src.notifications.email import EmailSender
from src.notifications.slack import SlackSender
from src.notifications.webhook import WebhookSender
from tests.factories import TrickleStream, make_integration, make_log, make_task

SLACK_URL = "https://hooks.slack.com/services/T000/B000/XXXX"


def recording_client(status=200, requests=None):
    requests = requests if requests is not None else []

    def handler(request):
        requests.append(request)
        return httpx.Response(status, text="ok" if status < 400 else "invalid_payload")

    return httpx.Client(transport=httpx.MockTransport(handler)), requests


class TestSlackSender:
    def test_posts_payload_to_webhook_url(self):
        client, requests = recording_client()

        SlackSender(client).send(make_integration(), make_task(), make_log(), False)

        assert len(requests) == 1
        assert str(requests[0].url) == SLACK_URL
        assert "attachments" in json.loads(requests[0].content)

    def test_rejection_raises_with_status(self):
        client, _ = recording_client(status=500)

        with pytest.raises(ChannelDeliveryError) as exc_info:
            SlackSender(client).send(make_integration(), make_task(), make_log(), False)

        assert exc_info.value.status_code == 500
        assert exc_info.value.channel == "slack"

    def test_missing_webhook_url(self):
        client, requests = recording_client()
        integration = make_integration(credentials={})

        with pytest.raises(ChannelDeliveryError, match="webhook_url"):
            SlackSender(client).send(integration, make_task(), make_log(), False)
        assert requests == []


class TestDiscordSender:
    def test_posts_embed(self):
        client, requests = recording_client(status=204)
        integration = make_integration(
            integration_type=IntegrationType.discord,
            credentials={"webhook_url": "https://discord.com/api/webhooks/1/abc"},
        )

        DiscordSender(client).send(integration, make_task(), make_log(), True)

        body = json.loads(requests[0].content)
        assert len(body["embeds"]) == 1


class TestWebhookSender:
    def test_posts_event_with_user_agent(self):
        client, requests = recording_client()
        integration = make_integration(
            integration_type=IntegrationType.webhook,
            credentials={"webhook_url": "https://example.com/hook"},
        )

        WebhookSender(client).send(integration, make_task(), make_log(response_body="hi"), True)

        request = requests[0]
        assert request.headers["user-agent"].startswith("API-Pulse-Webhook")
        body = json.loads(request.content)
        assert body["event"] == "task.executed"
        assert body["response_body"] == "hi"

    def test_connection_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        integration = make_integration(
            integration_type=IntegrationType.webhook,
            credentials={"webhook_url": "https://example.com/hook"},
        )

        with pytest.raises(ChannelDeliveryError, match="request failed"):
            WebhookSender(client).send(integration, make_task(), make_log(), False)

    def test_trickled_reply_hits_total_timeout(self):
        def handler(request):
            return httpx.Response(200, stream=TrickleStream(chunks=20, delay=0.1))

        client = httpx.Client(transport=httpx.MockTransport(handler))
        integration = make_integration(
            integration_type=IntegrationType.webhook,
            credentials={"webhook_url": "https://example.com/hook"},
        )

        with pytest.raises(ChannelDeliveryError, match="total timeout"):
            WebhookSender(client, timeout=0.3).send(
                integration, make_task(), make_log(), False
            )


class TestEmailSender:
    def _integration(self):
        return make_integration(
            integration_type=IntegrationType.email,
            credentials={"email": "ops@example.com"},
        )

    def test_posts_to_email_api(self):
        client, requests = recording_client()
        sender = EmailSender(
            client,
            api_url="https://api.resend.com/emails",
            api_key="re_test",
            sender="API Pulse <alerts@example.com>",
        )

        sender.send(self._integration(), make_task(), make_log(status_code=500), False)

        request = requests[0]
        assert request.headers["authorization"] == "Bearer re_test"
        body = json.loads(request.content)
        assert body["to"] == ["ops@example.com"]
        assert body["from"] == "API Pulse <alerts@example.com>"
        assert body["subject"].startswith("❌ API Task Failed")
        assert "<html>" in body["html"]

    def test_not_configured(self):
        client, requests = recording_client()
        sender = EmailSender(client, api_url="https://api.resend.com/emails", api_key="", sender="")

        assert sender.is_configured() is False
        with pytest.raises(ChannelDeliveryError, match="not configured"):
            sender.send(self._integration(), make_task(), make_log(), False)
        assert requests == []
