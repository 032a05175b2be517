"""CLI entrypoint for cortex."""

import logging

import rich_click as click

from cortex import __version__
from cortex.workflow.backend import AgentRunError
from cortex.workflow.controllers import (
    InitWorkflowCommand,
    RunWorkflowCommand,
    SessionsCommand,
    ValidateWorkflowCommand,
    WorkflowCliController,
)
from cortex.workflow.errors import ConfigError, ConfigErrors, CycleDetectedError

click.rich_click.USE_MARKDOWN = True
WORKFLOW_CONTROLLER = WorkflowCliController()

_USER_ERRORS = (
    AgentRunError,
    ConfigError,
    ConfigErrors,
    CycleDetectedError,
    FileNotFoundError,
    FileExistsError,
    ValueError,
)


@click.group()
@click.version_option(version=__version__, prog_name="cortex")
def cortex() -> None:
    """Run dependency-aware workflows of AI-agent CLIs defined in a `Cortexfile.yml`."""


@cortex.command("run")
@click.option(
    "-f",
    "--file",
    "files",
    multiple=True,
    help="Workflow file or glob pattern. Can be repeated. Defaults to ./Cortexfile.yml.",
)
@click.option(
    "--parallel/--sequential",
    default=None,
    help="Run independent tasks concurrently or one at a time. Overrides config.",
)
@click.option(
    "--max-parallel",
    type=click.IntRange(min=0),
    default=None,
    help="Max concurrent tasks per level (0 = number of CPUs).",
)
@click.option("--verbose", is_flag=True, default=False, help="Show task output and log progress.")
@click.option("--no-color", is_flag=True, default=False, help="Disable coloured output.")
def run_workflow(  # noqa: PLR0913
    files: tuple[str, ...],
    parallel: bool | None,
    max_parallel: int | None,
    verbose: bool,
    no_color: bool,
) -> None:
    """Execute workflow tasks in dependency order.

    Each run is stored under `~/.cortex/sessions/<project>/run-<id>/`.
    """

    logging.basicConfig(level=logging.INFO if verbose else logging.WARNING)
    try:
        outcome = WORKFLOW_CONTROLLER.run(
            RunWorkflowCommand(
                files=files,
                parallel=parallel,
                max_parallel=max_parallel,
                verbose=verbose,
                no_color=no_color,
            ),
        )
    except _USER_ERRORS as error:
        raise click.ClickException(str(error)) from error

    _emit_lines(outcome.lines)
    if not outcome.success:
        raise click.ClickException("Workflow run failed.")


@cortex.command("validate")
@click.option("-f", "--file", "file", default=None, help="Workflow file to validate.")
@click.option(
    "--check-agents",
    is_flag=True,
    default=False,
    help="Also probe that the agent CLIs used by the workflow are installed.",
)
def validate_workflow(file: str | None, check_agents: bool) -> None:
    """Check a workflow file and print its execution plan."""

    try:
        lines = WORKFLOW_CONTROLLER.validate(
            ValidateWorkflowCommand(file=file, check_agents=check_agents),
        )
    except _USER_ERRORS as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@cortex.command("sessions")
@click.option("--project", default=None, help="Only show sessions of this project.")
@click.option(
    "--limit",
    type=click.IntRange(min=0),
    default=10,
    show_default=True,
    help="Max number of sessions to print (0 = all).",
)
@click.option("--failed", "failed_only", is_flag=True, default=False, help="Only failed runs.")
def sessions(project: str | None, limit: int, failed_only: bool) -> None:
    """List stored workflow runs, newest first."""

    try:
        lines = WORKFLOW_CONTROLLER.sessions(
            SessionsCommand(project=project, limit=limit, failed_only=failed_only),
        )
    except _USER_ERRORS as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@cortex.command("init")
@click.option("--minimal", is_flag=True, default=False, help="Write a two-task starter file.")
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing Cortexfile.yml.")
def init_workflow(minimal: bool, force: bool) -> None:
    """Create a starter `Cortexfile.yml` in the current directory."""

    try:
        lines = WORKFLOW_CONTROLLER.init(InitWorkflowCommand(minimal=minimal, force=force))
    except _USER_ERRORS as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    cortex()
