"""
Command-line entry point for Plane Agent.

Commands:
- test / workspaces / projects / issues   inspect the Plane API
- create / bulk                           classify prompts and create tickets
- serve / setup-webhooks                  run and register the webhook listener
- railway ...                             Railway deployments and variables
- validate                                check configuration
"""

import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

import click
import yaml

from .assembler import TicketAssembler
from .batch import BatchOrchestrator
from .config import AppConfig, get_config
from .models import BatchResult, IssueRoute, Ticket, ValidationError
from .plane_client import PlaneClient, TrackerError
from .railway_client import DeploymentError, RailwayClient
from .report import ReportError, generate_batch_report
from .server import run_server
from .webhook_setup import setup_webhooks


def setup_logging(level: str) -> None:
    """
    Configure application logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def _require_valid(config: AppConfig) -> None:
    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        raise click.ClickException(
            f"Configuration validation failed with {len(errors)} error(s)"
        )


def _route(config: AppConfig, workspace: Optional[str], project: Optional[str]) -> IssueRoute:
    workspace = workspace or config.plane.workspace
    project = project or config.plane.project_id
    if not workspace or not project:
        raise click.UsageError(
            "Workspace and project are required (--workspace/--project or "
            "PLANE_WORKSPACE/PLANE_PROJECT_ID)"
        )
    return IssueRoute(workspace_slug=workspace, project_id=project)


def load_prompts(path: Path) -> list[str]:
    """
    Load prompts from a YAML file.

    Accepts either a top-level list or a mapping with a ``prompts`` list.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if isinstance(data, dict):
        data = data.get("prompts")
    if not isinstance(data, list):
        raise click.BadParameter(
            "YAML must be a list of prompts or contain a 'prompts' list",
            param_hint="--file",
        )
    return [str(item) for item in data if item is not None]


def echo_ticket(ticket: Ticket) -> None:
    """Print a ticket card."""
    c = ticket.classification
    click.echo("━" * 40)
    click.echo(f"📝 Title: {ticket.title}")
    click.echo(f"🆔 ID: {ticket.id} ({ticket.status.value})")
    click.echo(f"📂 Category: {c.category.value}")
    click.echo(f"⚡ Priority: {c.priority.value}")
    click.echo(f"🧩 Complexity: {c.complexity.value}")
    click.echo(f"🏷️  Labels: {', '.join(c.sorted_labels()) or 'none'}")
    click.echo(f"📅 Created: {ticket.created_at.isoformat()}")
    if ticket.error:
        click.echo(f"❌ Error: {ticket.error}")
    if ticket.comment_error:
        click.echo(f"⚠️  Comment not posted: {ticket.comment_error}")
    click.echo("━" * 40)


def echo_summary(result: BatchResult) -> None:
    """Print the batch summary."""
    total = len(result)
    click.echo("\n📊 Bulk creation results:")
    click.echo(f"✅ Successful: {result.successful_count}/{total}")
    click.echo(f"❌ Failed: {result.failed_count}/{total}")
    if result.category_counts:
        click.echo("\n📂 Categories:")
        for category, count in sorted(result.category_counts.items()):
            click.echo(f"   {category}: {count}")
    if result.priority_counts:
        click.echo("\n📈 Priority Distribution:")
        for priority, count in sorted(result.priority_counts.items()):
            click.echo(f"   {priority}: {count}")
    for index, entry in enumerate(result.entries, 1):
        if not entry.success:
            click.echo(f"   #{index} failed: {entry.error}")


@click.group()
@click.option("--debug", is_flag=True, default=False, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, debug: bool) -> None:
    """
    Plane Agent: automated ticket management.

    Classifies free-text prompts into Plane issues, listens for Plane
    webhooks and drives Railway deployments.
    """
    config = get_config()
    if debug:
        config = replace(config, log_level="DEBUG")
    setup_logging(config.log_level)
    ctx.obj = config


@cli.command()
@click.pass_obj
def validate(config: AppConfig) -> None:
    """Validate configuration without contacting any service."""
    _require_valid(config)
    click.echo("Configuration is valid!")


@cli.command()
@click.pass_obj
def test(config: AppConfig) -> None:
    """Test the Plane API connection."""
    _require_valid(config)
    with PlaneClient(config.plane) as client:
        ok = client.test_connection()
    if not ok:
        raise click.ClickException("Connection failed")
    click.echo("✅ Connection successful!")


def _echo_items(items: list[dict[str, Any]], label: str) -> None:
    click.echo(f"{label}: {len(items)}")
    for item in items:
        ident = item.get("slug") or item.get("identifier") or item.get("id")
        click.echo(f"  - {item.get('name')} ({ident})")


@cli.command()
@click.pass_obj
def workspaces(config: AppConfig) -> None:
    """List workspaces."""
    _require_valid(config)
    try:
        with PlaneClient(config.plane) as client:
            _echo_items(client.get_workspaces(), "🏢 Workspaces")
    except TrackerError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
@click.argument("workspace_slug")
@click.pass_obj
def projects(config: AppConfig, workspace_slug: str) -> None:
    """List projects in a workspace."""
    _require_valid(config)
    try:
        with PlaneClient(config.plane) as client:
            _echo_items(client.get_projects(workspace_slug), f"📁 Projects in {workspace_slug}")
    except TrackerError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
@click.argument("workspace_slug")
@click.argument("project_id")
@click.pass_obj
def issues(config: AppConfig, workspace_slug: str, project_id: str) -> None:
    """List issues in a project."""
    _require_valid(config)
    route = IssueRoute(workspace_slug=workspace_slug, project_id=project_id)
    try:
        with PlaneClient(config.plane) as client:
            _echo_items(client.get_issues(route), f"🎫 Issues in {workspace_slug}/{project_id}")
    except TrackerError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
@click.option("--workspace", "-w", help="Workspace slug (default: PLANE_WORKSPACE)")
@click.option("--project", "-p", help="Project id (default: PLANE_PROJECT_ID)")
@click.option("--local", is_flag=True, default=False, help="Only classify, do not call Plane")
@click.argument("prompt", nargs=-1, required=True)
@click.pass_obj
def create(
    config: AppConfig,
    workspace: Optional[str],
    project: Optional[str],
    local: bool,
    prompt: tuple[str, ...],
) -> None:
    """Classify PROMPT and create a ticket from it."""
    text = " ".join(prompt)
    assembler = TicketAssembler(post_comments=config.webhook.post_comments)

    try:
        if local:
            ticket = assembler.assemble(text)
        else:
            _require_valid(config)
            route = _route(config, workspace, project)
            with PlaneClient(config.plane) as client:
                ticket = assembler.assemble_and_submit(text, client, route)
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint="PROMPT") from e

    echo_ticket(ticket)
    if ticket.error:
        raise click.ClickException(f"Ticket creation failed: {ticket.error}")


@cli.command()
@click.option("--workspace", "-w", help="Workspace slug (default: PLANE_WORKSPACE)")
@click.option("--project", "-p", help="Project id (default: PLANE_PROJECT_ID)")
@click.option("--local", is_flag=True, default=False, help="Only classify, do not call Plane")
@click.option(
    "--file",
    "-f",
    "prompts_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML file with prompts",
)
@click.option(
    "--report",
    "-r",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write an Excel report of the results",
)
@click.argument("prompts", nargs=-1)
@click.pass_obj
def bulk(
    config: AppConfig,
    workspace: Optional[str],
    project: Optional[str],
    local: bool,
    prompts_file: Optional[Path],
    report: Optional[Path],
    prompts: tuple[str, ...],
) -> None:
    """Create one ticket per prompt, sequentially and rate limited."""
    all_prompts = list(prompts)
    if prompts_file:
        all_prompts.extend(load_prompts(prompts_file))
    if not all_prompts:
        raise click.UsageError("Provide prompts as arguments or with --file")

    assembler = TicketAssembler(post_comments=config.webhook.post_comments)

    if local:
        result = BatchOrchestrator(assembler).run_local(all_prompts)
    else:
        _require_valid(config)
        route = _route(config, workspace, project)
        with PlaneClient(config.plane) as client:
            orchestrator = BatchOrchestrator(
                assembler,
                client=client,
                route=route,
                rate_limit_delay=config.batch.rate_limit_delay,
            )
            result = orchestrator.run_batch(all_prompts)

    for ticket in result.tickets:
        echo_ticket(ticket)
    echo_summary(result)

    report = report or config.batch.report_path
    if report:
        try:
            path = generate_batch_report(result, report)
        except ReportError as e:
            raise click.ClickException(str(e)) from e
        click.echo(f"\n📄 Report saved to: {path}")

    if result.failed_count:
        sys.exit(1)


@cli.command()
@click.option("--host", help="Bind address (default: WEBHOOK_HOST)")
@click.option("--port", type=int, help="Port (default: PORT)")
@click.pass_obj
def serve(config: AppConfig, host: Optional[str], port: Optional[int]) -> None:
    """Run the Plane webhook listener."""
    run_server(config, host=host, port=port)


@cli.command("setup-webhooks")
@click.option("--url", help="Public webhook endpoint (default: WEBHOOK_URL/plane-webhook)")
@click.pass_obj
def setup_webhooks_command(config: AppConfig, url: Optional[str]) -> None:
    """Register the webhook listener in every workspace."""
    _require_valid(config)
    url = url or config.webhook.endpoint_url

    try:
        with PlaneClient(config.plane) as client:
            created = setup_webhooks(client, url)
    except TrackerError as e:
        raise click.ClickException(f"Error setting up webhooks: {e}") from e

    for slug, webhook_id in created.items():
        mark = "✅" if webhook_id else "❌"
        click.echo(f"{mark} {slug}: {webhook_id or 'failed'}")
    if any(webhook_id is None for webhook_id in created.values()):
        sys.exit(1)


@cli.group()
@click.pass_obj
def railway(config: AppConfig) -> None:
    """Railway deployment commands."""
    if not config.railway.token:
        raise click.ClickException("RAILWAY_TOKEN is required for Railway commands")


@railway.command("projects")
@click.pass_obj
def railway_projects(config: AppConfig) -> None:
    """List Railway projects."""
    try:
        with RailwayClient(config.railway) as client:
            _echo_items(client.get_projects(), "📁 Projects")
    except DeploymentError as e:
        raise click.ClickException(str(e)) from e


@railway.command("services")
@click.argument("project_name")
@click.pass_obj
def railway_services(config: AppConfig, project_name: str) -> None:
    """List services of a Railway project (partial name match)."""
    try:
        with RailwayClient(config.railway) as client:
            project = client.find_project(project_name)
            _echo_items(
                client.get_project_services(project["id"]),
                f"🛠️  Services in {project['name']}",
            )
    except DeploymentError as e:
        raise click.ClickException(str(e)) from e


@railway.command("variables")
@click.argument("project_name")
@click.argument("service_name")
@click.argument("environment_id")
@click.pass_obj
def railway_variables(
    config: AppConfig,
    project_name: str,
    service_name: str,
    environment_id: str,
) -> None:
    """List a service's variables in one environment."""
    try:
        with RailwayClient(config.railway) as client:
            _, service = client.resolve_service(project_name, service_name)
            variables = client.get_variables(service["id"], environment_id)
    except DeploymentError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"🔧 Variables for {service['name']}: {len(variables)}")
    for variable in variables:
        click.echo(f"  - {variable.get('name')}={variable.get('value')}")


@railway.command("set-var")
@click.argument("project_name")
@click.argument("service_name")
@click.argument("environment_id")
@click.argument("name")
@click.argument("value")
@click.pass_obj
def railway_set_var(
    config: AppConfig,
    project_name: str,
    service_name: str,
    environment_id: str,
    name: str,
    value: str,
) -> None:
    """Create or update a service variable."""
    try:
        with RailwayClient(config.railway) as client:
            _, service = client.resolve_service(project_name, service_name)
            client.set_variable(service["id"], environment_id, name, value)
    except DeploymentError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"✅ {name} set on {service['name']}")


@railway.command("ticket")
@click.argument("project_name")
@click.argument("service_name")
@click.argument("action", type=click.Choice(["deploy", "redeploy", "status"]))
@click.pass_obj
def railway_ticket(
    config: AppConfig,
    project_name: str,
    service_name: str,
    action: str,
) -> None:
    """Create and execute a deployment ticket."""
    try:
        with RailwayClient(config.railway) as client:
            ticket = client.create_deployment_ticket(project_name, service_name, action)
            result = client.execute_ticket(ticket)
    except DeploymentError as e:
        raise click.ClickException(str(e)) from e

    click.echo(result.model_dump_json(indent=2))
    click.echo(f"🎯 Final result: {result.status}")
    if result.status != "completed":
        sys.exit(1)


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
