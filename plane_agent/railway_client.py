"""
Railway GraphQL client for Plane Agent.

Wraps the single Railway GraphQL endpoint and builds deployment tickets
(redeploy a service, report its status) on top of it.

A 2xx response may still carry an ``errors`` array; that is treated as a
failure just like a non-2xx status.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import RailwayConfig
from .models import DeploymentTicket


logger = logging.getLogger(__name__)


class DeploymentError(Exception):
    """Base exception for Railway errors."""
    pass


class DeploymentAPIError(DeploymentError):
    """Railway answered with a non-2xx status."""

    def __init__(self, status: int, reason: str):
        self.status = status
        super().__init__(f"Railway API error: {status} {reason}")


class GraphQLError(DeploymentError):
    """Railway answered 2xx but reported GraphQL errors."""

    def __init__(self, errors: list[Any]):
        self.errors = errors
        messages = [
            e.get("message", str(e)) if isinstance(e, dict) else str(e)
            for e in errors
        ]
        super().__init__(f"GraphQL errors: {'; '.join(messages)}")


PROJECTS_QUERY = """
query {
  projects {
    edges {
      node { id name description createdAt updatedAt }
    }
  }
}
"""

PROJECT_SERVICES_QUERY = """
query GetProject($projectId: String!) {
  project(id: $projectId) {
    id
    name
    services {
      edges {
        node { id name createdAt updatedAt }
      }
    }
  }
}
"""

SERVICE_DEPLOYMENTS_QUERY = """
query GetService($serviceId: String!) {
  service(id: $serviceId) {
    id
    name
    deployments {
      edges {
        node {
          id
          status
          createdAt
          meta
        }
      }
    }
  }
}
"""

REDEPLOY_MUTATION = """
mutation ServiceRedeploy($serviceId: String!) {
  serviceRedeploy(serviceId: $serviceId) { id status }
}
"""

VARIABLES_QUERY = """
query Variables($serviceId: String!, $environmentId: String!) {
  variables(serviceId: $serviceId, environmentId: $environmentId) {
    edges {
      node { id name value }
    }
  }
}
"""

VARIABLE_UPSERT_MUTATION = """
mutation VariableUpsert($input: VariableUpsertInput!) {
  variableUpsert(input: $input) { id name value }
}
"""

DEPLOY_ACTIONS = ("deploy", "redeploy")
STATUS_ACTION = "status"


def _nodes(connection: Optional[dict[str, Any]]) -> list[dict[str, Any]]:
    """Flatten a GraphQL ``{edges: [{node: ...}]}`` connection."""
    if not connection:
        return []
    return [edge["node"] for edge in connection.get("edges", []) if edge.get("node")]


def _find_by_name(items: list[dict[str, Any]], name: str) -> Optional[dict[str, Any]]:
    """Case-insensitive partial name lookup; first match wins."""
    needle = name.lower()
    for item in items:
        if needle in str(item.get("name", "")).lower():
            return item
    return None


class RailwayClient:
    """
    Client for the Railway GraphQL API.

    Must be used as a context manager.
    """

    def __init__(
        self,
        config: RailwayConfig,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._config = config
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    def __enter__(self) -> "RailwayClient":
        """Context manager entry."""
        self._client = httpx.Client(
            timeout=self._config.request_timeout,
            headers={
                "Authorization": f"Bearer {self._config.token}",
                "Content-Type": "application/json",
            },
            transport=self._transport,
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        if self._client:
            self._client.close()
            self._client = None

    def _post(self, payload: dict[str, Any]) -> httpx.Response:
        retrying = Retrying(
            stop=stop_after_attempt(max(1, self._config.max_retries)),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
            before_sleep=lambda retry_state: logger.warning(
                f"Retrying Railway request after error: {retry_state.outcome.exception()}"
            ),
        )
        for attempt in retrying:
            with attempt:
                return self._client.post(self._config.api_url, json=payload)

    def query(
        self,
        graphql: str,
        variables: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Execute a GraphQL query or mutation.

        Args:
            graphql: Query document.
            variables: Query variables.

        Returns:
            The ``data`` member of the response.

        Raises:
            DeploymentAPIError: On a non-2xx status.
            GraphQLError: When the response carries an ``errors`` array.
        """
        if not self._client:
            raise RuntimeError("Client must be used within a context manager")

        response = self._post({"query": graphql, "variables": variables or {}})

        if not response.is_success:
            logger.error(f"Railway API error: {response.status_code}")
            raise DeploymentAPIError(response.status_code, response.reason_phrase)

        try:
            result = response.json()
        except ValueError as e:
            raise DeploymentError(f"Invalid JSON from Railway: {e}") from e

        errors = result.get("errors") if isinstance(result, dict) else None
        if errors:
            logger.error(f"GraphQL errors: {errors}")
            raise GraphQLError(errors)

        return (result or {}).get("data") or {}

    def get_projects(self) -> list[dict[str, Any]]:
        data = self.query(PROJECTS_QUERY)
        return _nodes(data.get("projects"))

    def get_project_services(self, project_id: str) -> list[dict[str, Any]]:
        data = self.query(PROJECT_SERVICES_QUERY, {"projectId": project_id})
        return _nodes((data.get("project") or {}).get("services"))

    def get_service_deployments(self, service_id: str) -> list[dict[str, Any]]:
        data = self.query(SERVICE_DEPLOYMENTS_QUERY, {"serviceId": service_id})
        return _nodes((data.get("service") or {}).get("deployments"))

    def trigger_deployment(self, service_id: str) -> dict[str, Any]:
        """Redeploy the latest deployment of a service."""
        data = self.query(REDEPLOY_MUTATION, {"serviceId": service_id})
        return data.get("serviceRedeploy") or {}

    def get_variables(self, service_id: str, environment_id: str) -> list[dict[str, Any]]:
        data = self.query(
            VARIABLES_QUERY,
            {"serviceId": service_id, "environmentId": environment_id},
        )
        return _nodes(data.get("variables"))

    def set_variable(
        self,
        service_id: str,
        environment_id: str,
        name: str,
        value: str,
    ) -> dict[str, Any]:
        data = self.query(
            VARIABLE_UPSERT_MUTATION,
            {
                "input": {
                    "serviceId": service_id,
                    "environmentId": environment_id,
                    "name": name,
                    "value": value,
                }
            },
        )
        return data.get("variableUpsert") or {}

    def find_project(self, project_name: str) -> dict[str, Any]:
        """
        Look up a project by partial, case-insensitive name.

        Raises:
            DeploymentError: If no project matches.
        """
        project = _find_by_name(self.get_projects(), project_name)
        if not project:
            raise DeploymentError(f"Project {project_name} not found")
        return project

    def resolve_service(
        self,
        project_name: str,
        service_name: str,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """
        Look up a project and one of its services by partial name.

        Returns:
            The matching ``(project, service)`` nodes.

        Raises:
            DeploymentError: If the project or service cannot be found.
        """
        project = self.find_project(project_name)
        service = _find_by_name(self.get_project_services(project["id"]), service_name)
        if not service:
            raise DeploymentError(
                f"Service {service_name} not found in project {project_name}"
            )
        return project, service

    def create_deployment_ticket(
        self,
        project_name: str,
        service_name: str,
        action: str = "deploy",
    ) -> DeploymentTicket:
        """
        Resolve a project and service by name and build a pending ticket.

        Args:
            project_name: Partial, case-insensitive project name.
            service_name: Partial, case-insensitive service name.
            action: One of ``deploy``, ``redeploy`` or ``status``.

        Returns:
            Pending DeploymentTicket with the three most recent deployments.

        Raises:
            DeploymentError: If the project or service cannot be found.
        """
        logger.info(f"Creating {action} ticket for {service_name} in {project_name}")

        project, service = self.resolve_service(project_name, service_name)
        deployments = self.get_service_deployments(service["id"])

        ticket = DeploymentTicket(
            id=f"ticket-{int(datetime.now(timezone.utc).timestamp() * 1000)}",
            project=project["name"],
            service=service["name"],
            action=action,
            status="pending",
            service_id=service["id"],
            project_id=project["id"],
            recent_deployments=deployments[:3],
        )
        logger.info(f"Deployment ticket created: {ticket.id}")
        return ticket

    def execute_ticket(self, ticket: DeploymentTicket) -> DeploymentTicket:
        """
        Perform the ticket's action.

        Never raises for Railway or action errors; the returned copy is
        ``failed`` and carries the error message instead.
        """
        logger.info(f"Executing ticket: {ticket.action} for {ticket.service}")

        try:
            if ticket.action in DEPLOY_ACTIONS:
                deployment = self.trigger_deployment(ticket.service_id)
                logger.info(f"Deployment triggered: {deployment}")
                return ticket.model_copy(update={
                    "status": "completed",
                    "deployment_id": deployment.get("id"),
                })

            if ticket.action == STATUS_ACTION:
                deployments = self.get_service_deployments(ticket.service_id)
                latest = deployments[0] if deployments else None
                logger.info(f"Service status: {latest}")
                return ticket.model_copy(update={
                    "status": "completed",
                    "latest_deployment": latest,
                })

            raise DeploymentError(f"Unknown action: {ticket.action}")

        except (DeploymentError, httpx.HTTPError) as e:
            logger.error(f"Error executing ticket {ticket.id}: {e}")
            return ticket.model_copy(update={"status": "failed", "error": str(e)})
