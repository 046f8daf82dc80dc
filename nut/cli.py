from __future__ import annotations

import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import anyio
import click

from nut import __version__

T = TypeVar("T")


class NutGroup(click.Group):
    """Command group that renders domain errors as a short message plus help hint."""

    def invoke(self, ctx: click.Context) -> object:
        from nut.engine.errors import NutError

        try:
            return super().invoke(ctx)
        except NutError as exc:
            click.secho(f"Error: {exc}", fg="red", err=True)
            if exc.help:
                click.echo(f"  help: {exc.help}", err=True)
            ctx.exit(1)


def _run(fn: Callable[..., Awaitable[T]], *args: object) -> T:
    return anyio.run(fn, *args)


def _engine(ctx: click.Context, parallel: int | None = None):
    from nut.engine.context import Engine

    settings = ctx.obj
    if parallel is not None:
        settings = settings.model_copy(update={"parallel": parallel})
    return Engine.from_settings(settings)


def _resolve(ctx: click.Context, engine, workspace_id: str | None):
    return engine.store.resolve(workspace_id or ctx.obj.workspace_id)


def _ensure_not_in_workspace(ctx: click.Context, engine) -> None:
    from nut.engine.errors import AlreadyInWorkspaceError, NotInWorkspaceError

    if ctx.obj.workspace_id:
        raise AlreadyInWorkspaceError
    try:
        engine.store.resolve()
    except NotInWorkspaceError:
        return
    raise AlreadyInWorkspaceError


def _write_path(path: Path) -> None:
    # Raw bytes so paths that are not valid UTF-8 survive intact.
    sys.stdout.buffer.write(bytes(path) + b"\n")
    sys.stdout.flush()


workspace_option = click.option(
    "-w",
    "--workspace",
    "workspace_id",
    default=None,
    help="Workspace ID (default: the entered workspace or the one containing the CWD).",
)
parallel_option = click.option(
    "-p",
    "--parallel",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum repositories processed at once (default: from NUT_PARALLEL or 8).",
)


@click.group(cls=NutGroup)
@click.version_option(__version__, prog_name="nut")
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-v info, -vv debug).")
@click.pass_context
def main(ctx: click.Context, verbose: int) -> None:
    """nut - run git operations, commands and scripts across many repositories."""
    from nut.engine.log import setup_logging, verbosity_to_level
    from nut.engine.settings import get_settings

    settings = get_settings()
    setup_logging(verbosity_to_level(verbose, settings.log_level))
    ctx.obj = settings


# ---------------------------------------------------------------------------
# Workspaces
# ---------------------------------------------------------------------------


@main.command()
@click.option("-d", "--description", required=True, help="What this workspace is for.")
@click.option("--no-enter", is_flag=True, default=False, help="Only create the workspace, do not start a shell.")
@click.pass_context
def create(ctx: click.Context, description: str, no_enter: bool) -> None:
    """Create a new workspace and enter it."""
    from nut.engine import shell

    engine = _engine(ctx)
    _ensure_not_in_workspace(ctx, engine)
    workspace = engine.store.create(description)
    click.echo(workspace.id)
    if not no_enter:
        ctx.exit(shell.enter(workspace))


@main.command()
@click.argument("workspace_id")
@click.pass_context
def enter(ctx: click.Context, workspace_id: str) -> None:
    """Enter an existing workspace."""
    from nut.engine import shell

    engine = _engine(ctx)
    _ensure_not_in_workspace(ctx, engine)
    ctx.exit(shell.enter(engine.store.get(workspace_id)))


@main.command("list")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON instead of text.")
@click.pass_context
def list_workspaces(ctx: click.Context, as_json: bool) -> None:
    """List existing workspaces, newest first."""
    from pydantic import TypeAdapter

    from nut.engine.models import Workspace

    workspaces = _engine(ctx).store.list()
    if as_json:
        click.echo(TypeAdapter(list[Workspace]).dump_json(workspaces, indent=2).decode())
        return
    for workspace in workspaces:
        click.echo(workspace.id)
        click.echo(f"  Created: {workspace.created_at:%Y-%m-%d %H:%M:%S}")
        click.echo(f"  {workspace.description}")
        click.echo()


@main.command()
@click.argument("workspace_id")
@click.option("-y", "--yes", is_flag=True, default=False, help="Do not ask for confirmation.")
@click.pass_context
def delete(ctx: click.Context, workspace_id: str, yes: bool) -> None:
    """Delete a workspace and all its clones (the shared cache is kept)."""
    engine = _engine(ctx)
    workspace = engine.store.get(workspace_id)
    if not yes:
        click.confirm(f"Delete workspace {workspace.id} ({workspace.description}) at {workspace.directory}?", abort=True)
    engine.store.delete(workspace.id)
    click.echo(f"Deleted {workspace.id}")


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


@main.command()
@workspace_option
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON instead of text.")
@click.pass_context
def status(ctx: click.Context, workspace_id: str | None, as_json: bool) -> None:
    """Show status of a workspace."""
    engine = _engine(ctx)
    workspace = _resolve(ctx, engine, workspace_id)
    report = _run(engine.status.collect, workspace)

    if as_json:
        click.echo(report.model_dump_json(indent=2))
        return

    changed = report.changed
    errored = report.errored
    click.echo("Workspace status:")
    click.echo(f"  {report.total} repositories total")
    click.echo(f"  {report.clean_count} clean, {len(changed)} with changes")
    if errored:
        click.echo(f"  {len(errored)} could not be inspected")
    click.echo()

    if not changed and not errored:
        click.echo("All repositories are clean.")
        return

    if changed:
        click.echo("Repositories with changes:")
        click.echo()
        for entry in changed:
            click.echo(f"  {entry.repo_name} ({entry.branch})")
            if entry.staged_count:
                click.echo(f"    {entry.staged_count} file(s) with staged changes")
            if entry.modified_count:
                click.echo(f"    {entry.modified_count} file(s) with unstaged changes")
            if entry.untracked_count:
                click.echo(f"    {entry.untracked_count} untracked file(s)")
            click.echo()

    for entry in errored:
        click.secho(f"  {entry.repo_name}: {entry.error}", fg="yellow")


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------


@main.command()
@workspace_option
@click.option("-s", "--script", type=click.Path(dir_okay=False), default=None, help="Executable script to run.")
@parallel_option
@click.option("--json", "as_json", is_flag=True, default=False, help="Print a JSON summary instead of output blocks.")
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def apply(
    ctx: click.Context,
    workspace_id: str | None,
    script: str | None,
    parallel: int | None,
    as_json: bool,
    command: tuple[str, ...],
) -> None:
    """Run a command in each repository.

    Everything after ``--`` is passed verbatim: ``nut apply -- git log -1``.
    With ``--script``, arguments after ``--`` are passed to the script.
    """
    from nut.engine.apply import ApplyTarget

    engine = _engine(ctx, parallel)
    workspace = _resolve(ctx, engine, workspace_id)
    target = ApplyTarget.script(script, command) if script else ApplyTarget.command(command)

    def _echo_block(block: str) -> None:
        click.echo(block, nl=False)

    summary = _run(lambda: engine.runner.apply(workspace, target, output=None if as_json else _echo_block))

    if as_json:
        click.echo(summary.model_dump_json(indent=2))
    if not summary.results:
        click.echo("No repositories found in workspace", err=True)
    summary.raise_for_failures()


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


def _validate_import_args(query: str | None, names: tuple[str, ...]) -> None:
    from nut.engine.errors import ImportArgumentsError

    if query and names:
        raise ImportArgumentsError(
            "Please provide either a query using --query or positional repository arguments, but not both."
        )
    if not query and not names:
        raise ImportArgumentsError("Please provide either a query using --query or positional repository arguments.")


@main.command("import")
@workspace_option
@click.option("-q", "--query", default=None, help='GitHub search query, e.g. "owner:acme language:rust -fork:true".')
@click.option("-n", "--dry-run", is_flag=True, default=False, help="Only print the repository names.")
@click.option("--github-token", default=None, help="GitHub token (default: GITHUB_TOKEN or 'gh auth token').")
@click.option("--update", is_flag=True, default=False, help="Also refresh clones that already exist.")
@parallel_option
@click.argument("names", nargs=-1)
@click.pass_context
def import_(
    ctx: click.Context,
    workspace_id: str | None,
    query: str | None,
    dry_run: bool,
    github_token: str | None,
    update: bool,
    parallel: int | None,
    names: tuple[str, ...],
) -> None:
    """Import repositories (owner/repo ...) into a workspace."""
    from nut.engine.github import GitHubClient, resolve_token
    from nut.engine.models import ProvisionResult, RepoKey

    _validate_import_args(query, names)
    engine = _engine(ctx, parallel)
    workspace = _resolve(ctx, engine, workspace_id)
    settings = engine.settings

    if query:
        token = resolve_token(settings, github_token)

        async def _search() -> list[str]:
            async with GitHubClient(token, base_url=settings.github_api_url) as gh:
                return await gh.resolve(query)

        repo_names = _run(_search)
    else:
        repo_names = [RepoKey.parse(name, settings.git_host).full_name for name in names]

    if dry_run:
        for name in repo_names:
            click.echo(name)
        return

    def _report(result: ProvisionResult) -> None:
        if result.failed:
            click.secho(f"FAILED {result.repo_name}: {result.error}", fg="red")
        else:
            click.echo(f"{'cloned' if result.created else 'ok':>7} {result.repo_name}")

    summary = _run(lambda: engine.provisioner.provision_many(workspace, repo_names, update=update, on_result=_report))
    summary.raise_for_failures()


# ---------------------------------------------------------------------------
# Paths and configuration
# ---------------------------------------------------------------------------


@main.command("cache-dir")
@click.pass_context
def cache_dir(ctx: click.Context) -> None:
    """Print git cache directory."""
    _write_path(ctx.obj.cache_root())


@main.command("data-dir")
@click.pass_context
def data_dir(ctx: click.Context) -> None:
    """Print data directory containing workspaces."""
    _write_path(ctx.obj.data_root())


@main.command("workspace-dir")
@workspace_option
@click.pass_context
def workspace_dir(ctx: click.Context, workspace_id: str | None) -> None:
    """Print workspace directory."""
    engine = _engine(ctx)
    _write_path(_resolve(ctx, engine, workspace_id).directory)


@main.command()
@click.option("--workspace-dir", "workspace_dir_", type=click.Path(file_okay=False), default=None)
@click.option("--cache-dir", "cache_dir_", type=click.Path(file_okay=False), default=None)
def config(workspace_dir_: str | None, cache_dir_: str | None) -> None:
    """Configure nut settings."""
    from nut.engine.settings import save_config

    workspace_path = Path(workspace_dir_).expanduser().absolute() if workspace_dir_ else None
    cache_path = Path(cache_dir_).expanduser().absolute() if cache_dir_ else None
    path = save_config(workspace_dir=workspace_path, cache_dir=cache_path)
    if workspace_path:
        click.echo(f"Workspace directory set to: {workspace_path}")
    if cache_path:
        click.echo(f"Cache directory set to: {cache_path}")
    if not workspace_path and not cache_path:
        click.echo(f"Configuration file: {path}")
