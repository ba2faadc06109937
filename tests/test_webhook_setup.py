"""Tests for webhook registration."""

from unittest.mock import Mock

import pytest

from plane_agent.plane_client import PlaneClient, RemoteAPIError
from plane_agent.webhook_setup import build_webhook_definition, setup_webhooks


URL = "https://hooks.example.com/plane-webhook"


@pytest.fixture
def client() -> Mock:
    return Mock(spec=PlaneClient)


def test_definition_subscribes_to_events():
    definition = build_webhook_definition(URL)

    assert definition["url"] == URL
    assert definition["is_active"] is True
    for event in ("project", "issue", "issue_comment", "module", "cycle"):
        assert definition[event] is True


def test_creates_one_webhook_per_workspace(client):
    client.get_workspaces.return_value = [{"slug": "indigo"}, {"slug": "ops"}]
    client.create_webhook.side_effect = [{"id": "wh-1"}, {"id": "wh-2"}]

    created = setup_webhooks(client, URL)

    assert created == {"indigo": "wh-1", "ops": "wh-2"}
    slugs = [c.args[0] for c in client.create_webhook.call_args_list]
    assert slugs == ["indigo", "ops"]


def test_failure_in_one_workspace_does_not_stop_others(client):
    client.get_workspaces.return_value = [{"slug": "indigo"}, {"slug": "ops"}]
    client.create_webhook.side_effect = [RemoteAPIError(403, "nope"), {"id": "wh-2"}]

    created = setup_webhooks(client, URL)

    assert created == {"indigo": None, "ops": "wh-2"}


def test_skips_workspace_without_slug(client):
    client.get_workspaces.return_value = [{"name": "Broken"}, {"slug": "indigo"}]
    client.create_webhook.return_value = {"id": "wh-1"}

    assert setup_webhooks(client, URL) == {"indigo": "wh-1"}
    client.create_webhook.assert_called_once()


def test_listing_failure_propagates(client):
    client.get_workspaces.side_effect = RemoteAPIError(401, "bad key")

    with pytest.raises(RemoteAPIError):
        setup_webhooks(client, URL)
