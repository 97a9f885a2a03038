"""Command-line interface for deploy-cli."""

from __future__ import annotations

import argparse
import signal
from dataclasses import dataclass
from typing import Callable, Optional

from rich.console import Console
from rich.table import Table

from .config import AppConfig, load_config
from .errors import DeployError, DeploymentCancelled
from .orchestrator import DeploymentRequest
from .profiles import Environment
from .utils.logging import configure_logging, set_verbosity, verbosity_to_level
from .workflow import DeploymentWorkflow, LogTail

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

ENVIRONMENTS = [env.value for env in Environment]

WorkflowFactory = Callable[[AppConfig, Console], DeploymentWorkflow]


@dataclass
class CLIContext:
    """Context captured from CLI arguments."""

    config: AppConfig
    workflow: DeploymentWorkflow
    console: Console


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deploy-cli",
        description="Build, upload and restart a project on a remote server over SSH.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON settings file overriding defaults.",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="Increase log output (-v info, -vv debug)",
    )

    subparsers = parser.add_subparsers(dest="command")

    deploy_parser = subparsers.add_parser("deploy", help="Deploy the current repository")
    deploy_parser.add_argument("-e", "--env", default=None, help="Target environment (default: staging)")
    deploy_parser.add_argument("-b", "--branch", default=None, help="Branch to deploy (default: main)")
    deploy_parser.add_argument("-f", "--force", action="store_true", help="Skip confirmation prompts")
    deploy_parser.add_argument(
        "-d", "--dry-run", action="store_true", dest="dry_run",
        help="Rehearse the pipeline without touching the server",
    )

    config_parser = subparsers.add_parser("config", help="Manage server profiles")
    group = config_parser.add_mutually_exclusive_group()
    group.add_argument("--init", action="store_true", help="Create the profile store")
    group.add_argument("--add-server", metavar="NAME", help="Add a server profile interactively")
    group.add_argument("--list", action="store_true", dest="list_servers", help="List server profiles")
    group.add_argument("--remove", metavar="NAME", help="Remove a server profile")
    config_parser.set_defaults(print_help=config_parser.print_help)

    status_parser = subparsers.add_parser("status", help="Show server and deployment status")
    status_parser.add_argument("-e", "--env", default=None, help="Environment (default: staging)")

    logs_parser = subparsers.add_parser("logs", help="Show application logs")
    logs_parser.add_argument("-e", "--env", default=None, help="Environment (default: staging)")
    logs_parser.add_argument("-n", "--lines", type=int, default=50, help="Number of lines")
    logs_parser.add_argument("-f", "--follow", action="store_true", help="Follow the log")

    subparsers.add_parser("quick", help="Interactive quick deployment")
    return parser


def _default_workflow(config: AppConfig, console: Console) -> DeploymentWorkflow:
    from .interaction import CLIInteractionHandler
    from .reporting import ConsoleReporter

    return DeploymentWorkflow(
        config=config,
        prompter=CLIInteractionHandler(console),
        reporter=ConsoleReporter(console),
    )


def handle_deploy_command(args: argparse.Namespace, context: CLIContext) -> int:
    defaults = context.config.deployment
    request = DeploymentRequest(
        environment=args.env or defaults.default_environment,
        target_branch=args.branch or defaults.default_branch,
        force=args.force,
        dry_run=args.dry_run,
    )
    context.console.print(f"\n[cyan]Deploying to {request.environment}[/cyan]\n")
    context.workflow.deploy(request)
    return EXIT_OK


def handle_config_command(args: argparse.Namespace, context: CLIContext) -> int:
    workflow = context.workflow
    console = context.console

    if args.init:
        workflow.store.init()
        console.print(f"[green]Profile store ready at {workflow.store.path}[/green]")
        if not workflow.store.names() and workflow.prompter.confirm("Add the first server now?", default=True):
            workflow.wizard().add_server()
        return EXIT_OK

    if args.add_server:
        workflow.wizard().add_server(args.add_server)
        return EXIT_OK

    if args.list_servers:
        profiles = workflow.store.list()
        if not profiles:
            console.print("[yellow]No servers configured; run `deploy-cli config --add-server NAME`[/yellow]")
            return EXIT_OK
        table = Table(title="Servers")
        for column in ("Name", "Environment", "Host", "User", "Auth", "Deploy path"):
            table.add_column(column)
        for profile in profiles:
            table.add_row(
                profile.name,
                profile.environment.value,
                f"{profile.host}:{profile.port}",
                profile.username,
                profile.auth_method,
                profile.deploy_path,
            )
        console.print(table)
        return EXIT_OK

    if args.remove:
        workflow.wizard().remove_server(args.remove)
        return EXIT_OK

    args.print_help()
    return EXIT_OK


def handle_status_command(args: argparse.Namespace, context: CLIContext) -> int:
    console = context.console
    environment = args.env or context.config.deployment.default_environment
    console.print(f"\n[cyan]{environment} status[/cyan]\n")
    report = context.workflow.status(environment)
    profile = report.profile

    console.print("[yellow]Server[/yellow]")
    console.print(f"   Host: {profile.host}:{profile.port}")
    console.print(f"   System: {report.facts.os_short}")
    console.print(f"   Hostname: {report.facts.hostname}")

    console.print("\n[yellow]Deployment[/yellow]")
    console.print(f"   Deploy path: {profile.deploy_path}")
    console.print(f"   Last deploy: {report.deploy_info.last_deploy or 'unknown'}")
    console.print(f"   Version: {report.deploy_info.current_version or 'unknown'}")

    if report.services:
        console.print("\n[yellow]Services[/yellow]")
        for service in report.services:
            state = "[green]running[/green]" if service.active else f"[red]{service.status}[/red]"
            console.print(f"   {service.name}: {state}")

    if profile.public_url:
        console.print(f"\n[yellow]URL[/yellow]\n   {profile.public_url}")
    return EXIT_OK


def handle_logs_command(args: argparse.Namespace, context: CLIContext) -> int:
    console = context.console
    environment = args.env or context.config.deployment.default_environment
    result = context.workflow.logs(environment, lines=args.lines, follow=args.follow)
    console.print(f"[dim]Log file: {result.path}[/dim]\n")

    if not isinstance(result, LogTail):
        console.print(result.text, markup=False, highlight=False)
        return EXIT_OK

    console.print("[yellow]Following log (Ctrl+C to stop)[/yellow]\n")
    previous = signal.signal(signal.SIGINT, lambda signum, frame: result.stop())
    try:
        with result:
            for line in result:
                console.print(line, markup=False, highlight=False)
    finally:
        signal.signal(signal.SIGINT, previous)
    return EXIT_OK


def handle_quick_command(args: argparse.Namespace, context: CLIContext) -> int:
    prompter = context.workflow.prompter
    defaults = context.config.deployment
    environment = prompter.choose("Environment", ENVIRONMENTS, default=defaults.default_environment)
    branch = prompter.text("Branch", default=defaults.default_branch)
    if not prompter.confirm("Deploy now?", default=False):
        context.console.print("[yellow]Deployment cancelled[/yellow]")
        return EXIT_OK
    context.workflow.deploy(DeploymentRequest(environment=environment, target_branch=branch or defaults.default_branch))
    return EXIT_OK


def dispatch_command(
    args: argparse.Namespace,
    workflow_factory: Optional[WorkflowFactory] = None,
    console: Optional[Console] = None,
) -> int:
    config = load_config(args.config)
    configure_logging(config.logging.level, config.logging.format)
    if args.verbose:
        set_verbosity(verbosity_to_level(args.verbose))

    console = console or Console()
    workflow = (workflow_factory or _default_workflow)(config, console)
    context = CLIContext(config=config, workflow=workflow, console=console)

    if args.command == "deploy":
        return handle_deploy_command(args, context)
    if args.command == "config":
        return handle_config_command(args, context)
    if args.command == "status":
        return handle_status_command(args, context)
    if args.command == "logs":
        return handle_logs_command(args, context)
    if args.command == "quick":
        return handle_quick_command(args, context)
    raise ValueError(f"Unsupported command: {args.command}")


def run_cli(
    argv: Optional[list[str]] = None,
    workflow_factory: Optional[WorkflowFactory] = None,
    console: Optional[Console] = None,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return EXIT_OK

    err_console = console or Console(stderr=True)
    try:
        return dispatch_command(args, workflow_factory, console)
    except DeploymentCancelled as exc:
        err_console.print(f"[yellow]{exc.describe()}[/yellow]")
        return EXIT_FAILURE
    except DeployError as exc:
        err_console.print(f"[red]Error:[/red] {exc.describe()}")
        return EXIT_FAILURE
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Interrupted[/yellow]")
        return EXIT_INTERRUPTED
