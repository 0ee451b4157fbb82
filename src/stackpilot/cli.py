"""CLI entrypoint for stackpilot."""

import functools
import logging
import sys

import click
from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console
from rich.logging import RichHandler

from stackpilot.aws.factory import ClientFactory
from stackpilot.changeset import ChangeSetManager
from stackpilot.config import DEFAULT_CONFIG_FILE, FileConfigProvider
from stackpilot.deployer import Deployer
from stackpilot.differ import Differ
from stackpilot.errors import NoChangesError, StackpilotError
from stackpilot.formatter import format_event, format_json, format_stack_info, format_text
from stackpilot.models import DiffOptions, ResolvedStack
from stackpilot.resolver import StackResolver

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # botocore is chatty at DEBUG
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _handle_errors(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (StackpilotError, ClientError, BotoCoreError) as err:
            click.echo(f"Error: {err}", err=True)
            sys.exit(1)

    return wrapper


class Services:
    """Collaborators shared by the commands of one invocation."""

    def __init__(self, config_path: str):
        self.config = FileConfigProvider(config_path)
        self.clients = ClientFactory()
        self.resolver = StackResolver(self.config, self.clients)

    def stack_names(self, context: str, requested: tuple[str, ...]) -> list[str]:
        return list(requested) or self.config.list_stacks(context)


def _echo_event(event) -> None:
    click.echo(format_event(event))


context_option = click.option(
    "--context", "-c", "context_name", required=True, help="Deployment context to use."
)
yes_option = click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")


@click.group()
@click.option(
    "--config",
    "-f",
    "config_path",
    envvar="STACKPILOT_CONFIG",
    default=DEFAULT_CONFIG_FILE,
    show_default=True,
    help="Path to the stack configuration file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx, config_path, verbose):
    """Resolve, diff and deploy CloudFormation stacks."""
    _configure_logging(verbose)
    ctx.obj = Services(config_path)


@main.command()
@click.argument("stacks", nargs=-1)
@context_option
@yes_option
@click.pass_obj
@_handle_errors
def deploy(services: Services, stacks, context_name, yes):
    """Deploy stacks and their dependencies in dependency order."""
    names = services.stack_names(context_name, stacks)
    if not names:
        click.echo(f"No stacks configured for context {context_name}")
        return

    order = services.resolver.get_dependency_order(context_name, names)
    logger.debug("Deployment order: %s", ", ".join(order))

    differ = Differ(services.clients)
    deployer = Deployer(services.clients)
    for name in order:
        # resolved late so stack-output parameters see freshly deployed dependencies
        resolved = services.resolver.resolve_stack(context_name, name)
        _deploy_stack(services, differ, deployer, resolved, yes)


def _deploy_stack(
    services: Services,
    differ: Differ,
    deployer: Deployer,
    resolved: ResolvedStack,
    yes: bool,
) -> None:
    result = differ.diff_stack(resolved, DiffOptions(keep_change_set=True))

    if not result.stack_exists:
        click.echo(format_text(result))
        if not yes and not click.confirm(f"Create stack {resolved.name}?"):
            click.echo(f"Skipped stack {resolved.name}")
            return
        try:
            deployer.deploy(resolved, on_event=_echo_event)
        except NoChangesError as err:
            click.echo(str(err))
            return
        click.echo(f"Stack {resolved.name} deployed")
        return

    if not result.has_changes() or isinstance(result.change_set_error, NoChangesError):
        click.echo(f"Stack {resolved.name} is already up to date - no changes to deploy")
        return
    if result.change_set is None:
        raise result.change_set_error or StackpilotError(
            f"no changeset was prepared for stack {resolved.name}"
        )

    click.echo(format_text(result))
    if not yes:
        manager = ChangeSetManager(services.clients.for_region(resolved.context.region))
        try:
            confirmed = click.confirm(f"Apply these changes to stack {resolved.name}?")
        except click.Abort:
            manager.delete(result.change_set.change_set_id)
            raise
        if not confirmed:
            manager.delete(result.change_set.change_set_id)
            click.echo(f"Skipped stack {resolved.name}")
            return

    deployer.execute_change_set(resolved, result.change_set, on_event=_echo_event)
    click.echo(f"Stack {resolved.name} deployed")


@main.command()
@click.argument("stack")
@context_option
@click.option("--template", "template_only", is_flag=True, help="Compare only the template.")
@click.option("--parameters", "parameters_only", is_flag=True, help="Compare only parameters.")
@click.option("--tags", "tags_only", is_flag=True, help="Compare only tags.")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format.",
)
@click.option("--redact-values", is_flag=True, help="Mask parameter values in the output.")
@click.pass_obj
@_handle_errors
def diff(
    services: Services,
    stack,
    context_name,
    template_only,
    parameters_only,
    tags_only,
    output_format,
    redact_values,
):
    """Show what deploying STACK would change."""
    resolved = services.resolver.resolve_stack(context_name, stack)
    options = DiffOptions(
        template_only=template_only,
        parameters_only=parameters_only,
        tags_only=tags_only,
    )
    result = Differ(services.clients).diff_stack(resolved, options)

    formatters = {"text": format_text, "json": format_json}
    click.echo(formatters[output_format](result, redact=redact_values))


@main.command()
@click.argument("stacks", nargs=-1)
@context_option
@click.pass_obj
@_handle_errors
def validate(services: Services, stacks, context_name):
    """Validate the configuration and the templates of STACKS."""
    services.config.validate()
    region = services.config.load_config(context_name).context.region
    client = services.clients.for_region(region)

    for name in services.stack_names(context_name, stacks):
        body = services.resolver.render_template(context_name, name)
        client.validate_template(body)
        click.echo(f"Template for stack {name} is valid")


@main.command()
@click.argument("stack")
@context_option
@click.pass_obj
@_handle_errors
def describe(services: Services, stack, context_name):
    """Show the deployed state of STACK."""
    region = services.config.load_config(context_name).context.region
    info = services.clients.for_region(region).get_stack(stack)
    if info is None:
        click.echo(f"Error: stack {stack} does not exist in {region}", err=True)
        sys.exit(1)
    click.echo(format_stack_info(info))


@main.command()
@click.argument("stacks", nargs=-1)
@context_option
@yes_option
@click.pass_obj
@_handle_errors
def delete(services: Services, stacks, context_name, yes):
    """Delete stacks, dependents first."""
    names = services.stack_names(context_name, stacks)
    region = services.config.load_config(context_name).context.region
    order = services.resolver.get_dependency_order(context_name, names)
    # only delete what was asked for, not the dependencies pulled in for ordering
    targets = [n for n in reversed(order) if n in names]

    deployer = Deployer(services.clients)
    for name in targets:
        if not yes and not click.confirm(f"Delete stack {name}?"):
            click.echo(f"Skipped stack {name}")
            continue
        if deployer.delete(name, region, on_event=_echo_event):
            click.echo(f"Stack {name} deleted")
        else:
            click.echo(f"Stack {name} does not exist")
