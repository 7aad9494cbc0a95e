"""CLI entry point for onboarding sessions."""

import asyncio
import sys
from pathlib import Path
from typing import Any

import click
import structlog
import yaml

from onboarding_flow.catalog.steps import generate
from onboarding_flow.config.settings import OnboardingSettings
from onboarding_flow.engine.orchestrator import OnboardingOrchestrator
from onboarding_flow.engine.persistence import create_state_backend
from onboarding_flow.engine.session_store import SessionStore
from onboarding_flow.enums import DeveloperRole, HealthStatus, UserType
from onboarding_flow.exceptions import ConfigurationError, OnboardingError, StepValidationError
from onboarding_flow.integrations.documentation import FileSystemDocumentationManager
from onboarding_flow.integrations.version_control import GitVersionControl
from onboarding_flow.resilience.coordinator import ResilienceCoordinator
from onboarding_flow.utils.logging_config import (
    bind_session_context,
    clear_session_context,
    configure_logging,
)

log = structlog.get_logger(__name__)

ROLE_CHOICES = [role.value for role in DeveloperRole]
USER_TYPE_CHOICES = [user_type.value for user_type in UserType]


@click.group()
@click.option("--config", default=None, help="Path to a YAML configuration file")
@click.option("--log-level", default=None, help="Logging level, overrides the configured log_level")
@click.pass_context
def cli(ctx: click.Context, config: str | None, log_level: str | None) -> None:
    """onboard: Guided developer and agent onboarding."""
    if config is None:
        settings = OnboardingSettings()
        configure_logging(log_level or settings.log_level)
        ctx.obj = {"settings": settings}
        return

    if not Path(config).exists():
        configure_logging(log_level or "INFO")
        click.echo(f"Error: Configuration file not found: {config}", err=True)
        sys.exit(1)

    try:
        settings = OnboardingSettings.from_yaml(config)
    except ConfigurationError as e:
        configure_logging(log_level or "INFO")
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)

    configure_logging(log_level or settings.log_level)
    ctx.obj = {"settings": settings}


def _orchestrator(settings: OnboardingSettings) -> OnboardingOrchestrator:
    store = SessionStore(create_state_backend(settings.persistence))
    return OnboardingOrchestrator(store, settings=settings)


def _parse_data(pairs: tuple[str, ...]) -> dict[str, Any] | None:
    """Turn ``key=value`` pairs into validation data; values are YAML scalars."""
    if not pairs:
        return None
    data: dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"Expected key=value, got {pair!r}", param_hint="--data")
        data[key.strip()] = yaml.safe_load(value) if value else ""
    return data


def _run(coro_factory, event: str) -> Any:
    """Run a coroutine, mapping onboarding errors to exit code 1."""
    try:
        return asyncio.run(coro_factory())
    except StepValidationError as e:
        click.echo(f"Error: {e.message}", err=True)
        for error in e.errors:
            click.echo(f"  - {error}", err=True)
        for suggestion in e.suggestions:
            click.echo(f"  Suggestion: {suggestion}", err=True)
        sys.exit(1)
    except OnboardingError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug(f"{event}_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    finally:
        clear_session_context()


@cli.command()
@click.option("--role", type=click.Choice(ROLE_CHOICES), default=None, help="Developer role")
@click.option("--platform", default=None, help="darwin, linux or win32")
@click.option("--user-type", type=click.Choice(USER_TYPE_CHOICES), default="human", help="human or agent")
@click.pass_context
def steps(ctx: click.Context, role: str | None, platform: str | None, user_type: str) -> None:
    """List the step catalog for a role."""
    settings: OnboardingSettings = ctx.obj["settings"]
    catalog = generate(
        DeveloperRole(role) if role else None,
        platform or settings.session.default_platform,
        UserType(user_type),
    )
    for index, step in enumerate(catalog, 1):
        requires = f" (after {', '.join(sorted(step.dependencies))})" if step.dependencies else ""
        click.echo(f"{index:2d}. {step.id} - {step.title} [{step.estimated_time} min]{requires}")
    click.echo(f"\nTotal: {len(catalog)} steps, {sum(s.estimated_time for s in catalog)} minutes")


@cli.command()
@click.option("--user-type", type=click.Choice(USER_TYPE_CHOICES), default="human", help="human or agent")
@click.option("--role", type=click.Choice(ROLE_CHOICES), default=None, help="Developer role")
@click.option("--user-id", default=None, help="User id; defaults to the session id")
@click.option("--platform", default=None, help="darwin, linux or win32")
@click.pass_context
def start(ctx: click.Context, user_type: str, role: str | None, user_id: str | None, platform: str | None) -> None:
    """Start a new onboarding session and save it."""
    orchestrator = _orchestrator(ctx.obj["settings"])

    async def _start():
        session = orchestrator.start_onboarding(
            UserType(user_type), DeveloperRole(role) if role else None, user_id, platform
        ).unwrap()
        bind_session_context(session.session_id)
        (await orchestrator.save_session_state(session.session_id)).unwrap()
        return session

    session = _run(_start, "start")
    click.echo(f"Session: {session.session_id}")
    click.echo(f"Current step: {session.current_step}")
    click.echo(f"Steps: {session.progress.total_steps}")


@cli.command()
@click.argument("session_id")
@click.argument("step_id")
@click.option("--data", "data", multiple=True, help="Validation data as key=value (repeatable)")
@click.pass_context
def complete(ctx: click.Context, session_id: str, step_id: str, data: tuple[str, ...]) -> None:
    """Complete a step of a saved session."""
    orchestrator = _orchestrator(ctx.obj["settings"])
    validation_data = _parse_data(data)

    async def _complete():
        bind_session_context(session_id, step_id=step_id)
        (await orchestrator.recover_session(session_id)).unwrap()
        completion = await orchestrator.complete_step(session_id, step_id, validation_data)
        # Failed validations still count against the saved session
        (await orchestrator.save_session_state(session_id)).unwrap()
        return completion.unwrap()

    completion = _run(_complete, "complete")

    if completion.already_completed:
        click.echo(f"Step {step_id} was already completed")
    else:
        click.echo(f"Completed {step_id} ({completion.percent_complete}%)")
    for warning in completion.warnings:
        click.echo(f"Warning: {warning}")
    for milestone in completion.new_milestones:
        click.echo(f"Milestone: {milestone.name}")
    click.echo(f"Next step: {completion.next_step or 'none, all steps completed'}")


@cli.command()
@click.argument("session_id")
@click.pass_context
def status(ctx: click.Context, session_id: str) -> None:
    """Show progress of a saved session."""
    orchestrator = _orchestrator(ctx.obj["settings"])

    async def _status():
        bind_session_context(session_id)
        resume = (await orchestrator.recover_session(session_id)).unwrap()
        progress = orchestrator.get_progress(session_id).unwrap()
        available = orchestrator.get_available_steps(session_id).unwrap()
        return resume, progress, available

    resume, progress, available = _run(_status, "status")
    click.echo(f"Session: {session_id}")
    if resume.was_interrupted:
        click.echo("Resuming an interrupted session")
    click.echo(
        f"Progress: {len(progress.completed_steps)}/{progress.total_steps} steps ({progress.percent_complete}%)"
    )
    click.echo(f"Estimated time remaining: {progress.estimated_time_remaining} min")
    click.echo(f"Current step: {progress.current_step}")
    if available:
        click.echo(f"Available: {', '.join(step.id for step in available)}")


@cli.command()
@click.option("--project-path", default=".", help="Project root holding docs/onboarding")
@click.pass_context
def health(ctx: click.Context, project_path: str) -> None:
    """Initialize collaborators and report component health."""
    settings: OnboardingSettings = ctx.obj["settings"]
    coordinator = ResilienceCoordinator(
        _orchestrator(settings),
        documentation=FileSystemDocumentationManager(project_path),
        version_control=GitVersionControl(project_path),
        settings=settings,
    )

    async def _health():
        init = (await coordinator.initialize_system(project_path)).unwrap()
        report = coordinator.perform_health_check()
        await coordinator.shutdown()
        return init, report

    init, report = _run(_health, "health")
    if init.git is not None:
        branch = init.git.branch if init.git.is_git_repository else "not a git repository"
        click.echo(f"Git: {branch}")
    for name, component in report.components.items():
        click.echo(f"{name}: {component.status} (failures: {component.failure_count})")
    click.echo(f"Overall: {report.overall_status}")
    if report.overall_status != HealthStatus.HEALTHY:
        sys.exit(1)


if __name__ == "__main__":
    cli()
