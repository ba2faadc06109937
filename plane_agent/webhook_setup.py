"""Register the webhook listener with every Plane workspace."""

import logging
from typing import Any, Optional

from .plane_client import PlaneClient, TrackerError


logger = logging.getLogger(__name__)


def build_webhook_definition(webhook_url: str) -> dict[str, Any]:
    """Webhook body subscribing to the events the listener understands."""
    return {
        "url": webhook_url,
        "is_active": True,
        "project": True,
        "issue": True,
        "issue_comment": True,
        "module": True,
        "cycle": True,
    }


def setup_webhooks(client: PlaneClient, webhook_url: str) -> dict[str, Optional[str]]:
    """
    Create the webhook in each workspace the API key can see.

    Args:
        client: Open PlaneClient.
        webhook_url: Public URL of the ``/plane-webhook`` endpoint.

    Returns:
        Mapping of workspace slug to created webhook id, or None where
        creation failed.

    Raises:
        TrackerError: If the workspaces cannot be listed.
    """
    logger.info(f"Setting up Plane webhooks for {webhook_url}")
    workspaces = client.get_workspaces()
    logger.info(f"Found {len(workspaces)} workspace(s)")

    definition = build_webhook_definition(webhook_url)
    created: dict[str, Optional[str]] = {}

    for workspace in workspaces:
        slug = workspace.get("slug")
        if not slug:
            logger.warning(f"Skipping workspace without slug: {workspace.get('name')}")
            continue

        try:
            webhook = client.create_webhook(slug, definition)
        except TrackerError as e:
            logger.error(f"Failed to create webhook for {slug}: {e}")
            created[slug] = None
            continue

        webhook_id = webhook.get("id") if isinstance(webhook, dict) else None
        logger.info(f"Webhook created for {slug}: {webhook_id}")
        created[slug] = str(webhook_id) if webhook_id else None

    return created
