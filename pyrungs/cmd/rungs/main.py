"""CLI entry point."""

import os
import sys
import click
import logging
from typing import Any, Dict, NoReturn, Optional, Tuple
from click import Context
from github import Auth, Github, GithubException

from ... import setup_logging
from ...config import Config, default_config
from ...config.config_parser import (
    REPO_CONFIG_FILE, get_config_value, list_config_values, parse_config, set_config_value,
)
from ...errors import GitError, RungsError
from ...git import RealGit, StackGit
from ...github import GitHubClient, find_github_token
from ...github.adapters import PyGithubAdapter
from ...pretty import format_stack, print_header
from ...stack import StackOperations
from ...state import StateStore

# Get module logger
logger = logging.getLogger(__name__)

def fail(err: Exception, verbose: int = 0) -> NoReturn:
    """Log a single error line and exit; tracebacks only at -vv."""
    logger.error(f"{err}")
    if verbose >= 2:
        logger.debug("Traceback:", exc_info=err)
    sys.exit(1)

class AliasedGroup(click.Group):
    """Command group with support for aliases."""

    def __init__(self, name: Optional[str] = None, commands: Optional[Dict[str, click.Command]] = None, **attrs: Any) -> None:
        """Initialize with aliases map."""
        super().__init__(name, commands, **attrs)
        self.aliases: Dict[str, str] = {}

    def add_alias(self, alias: str, command: str) -> None:
        """Add an alias for a command."""
        self.aliases[alias] = command

    def get_command(self, ctx: Context, cmd_name: str) -> Optional[click.Command]:
        """Get a command by name, supporting aliases."""
        # Check if cmd_name is a registered alias
        if cmd_name in self.aliases:
            cmd_name = self.aliases[cmd_name]
        return super().get_command(ctx, cmd_name)

@click.group(cls=AliasedGroup)
@click.pass_context
def cli(ctx: Context) -> None:
    """rungs - stacked pull requests from commits on trunk."""
    ctx.obj = {}

def make_github_client(config: Config) -> GitHubClient:
    """GitHubClient backed by PyGithub, or an unconfigured one when no token is found."""
    host = config.repo.github_host
    token = find_github_token(host)
    if not token:
        logger.debug("No GitHub token found")
        return GitHubClient(config, None)
    if host == "github.com":
        real_github = Github(auth=Auth.Token(token))
    else:
        real_github = Github(base_url=f"https://{host}/api/v3", auth=Auth.Token(token))
    return GitHubClient(config, PyGithubAdapter(real_github))

def setup(directory: Optional[str] = None) -> Tuple[Config, StackOperations]:
    """Load config and wire git, GitHub and the state file together."""
    if directory:
        os.chdir(directory)

    # Check git dir
    git_cmd = RealGit(default_config())
    try:
        git_cmd.must_git("rev-parse --git-dir")
    except GitError as e:
        logger.error(f"{e}")
        sys.exit(2)

    try:
        config = Config(parse_config(git_cmd))
    except RungsError as e:
        fail(e)
    git_cmd = RealGit(config)
    stack_git = StackGit(config, git_cmd)
    if config.tool.state_file:
        store = StateStore(config.tool.state_file)
    else:
        store = StateStore.for_git_dir(stack_git.git_dir())
    return config, StackOperations(config, stack_git, make_github_client(config), store)

@cli.command(name="stack", help="Push all new commits on trunk as a new PR on top of the stack")
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if rungs was started in DIRECTORY instead of the current working directory')
@click.option('--auto-publish', is_flag=True, help="Create the PR ready for review instead of as a draft")
@click.option('--force', is_flag=True, help="Skip the check that trunk is in sync with its upstream")
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def stack(directory: Optional[str], auto_publish: bool, force: bool, verbose: int) -> None:
    """Stack command."""
    setup_logging(verbose)
    _config, ops = setup(directory)
    try:
        entry = ops.create_next_entry(auto_publish=auto_publish, force=force)
    except (RungsError, GithubException) as e:
        fail(e, verbose)
    if entry is None:
        click.echo("Nothing to do: no new commits to stack.")
    else:
        click.echo(f"Created PR #{entry.number}: {entry.url}")

@cli.command(name="status", help="Show the stack, unstacked commits and working tree state")
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if rungs was started in DIRECTORY instead of the current working directory')
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def status(directory: Optional[str], verbose: int) -> None:
    """Status command."""
    setup_logging(verbose)
    config, ops = setup(directory)
    try:
        report = ops.get_status()
    except (RungsError, GithubException) as e:
        fail(e, verbose)
    git_status = report.git
    tree = "clean" if git_status.is_clean else "dirty"
    print_header(f"On {git_status.current_branch} ({tree}, {git_status.ahead} ahead, {git_status.behind} behind)")
    click.echo(format_stack(report.stack, config.repo.default_branch))

@cli.command(name="merge", help="Merge a PR (top of the stack by default) and repair the stack")
@click.argument('number', type=int, required=False)
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if rungs was started in DIRECTORY instead of the current working directory')
@click.option('--squash', 'method', flag_value='squash', help="Squash and merge")
@click.option('--merge', 'method', flag_value='merge', help="Create a merge commit")
@click.option('--rebase', 'method', flag_value='rebase', help="Rebase and merge")
@click.option('--delete-branch/--no-delete-branch', default=None,
              help="Delete the head branch after merging (default from config)")
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def merge(number: Optional[int], directory: Optional[str], method: Optional[str],
          delete_branch: Optional[bool], verbose: int) -> None:
    """Merge command."""
    setup_logging(verbose)
    config, ops = setup(directory)
    try:
        state = ops.merge_entry(number, method, delete_branch)  # type: ignore[arg-type]
    except (RungsError, GithubException) as e:
        fail(e, verbose)
    click.echo(format_stack(state, config.repo.default_branch))

@cli.command(name="publish", help="Mark a draft PR ready for review (top of the stack by default)")
@click.argument('number', type=int, required=False)
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if rungs was started in DIRECTORY instead of the current working directory')
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def publish(number: Optional[int], directory: Optional[str], verbose: int) -> None:
    """Publish command."""
    setup_logging(verbose)
    _config, ops = setup(directory)
    try:
        published = ops.publish_entry(number)
    except (RungsError, GithubException) as e:
        fail(e, verbose)
    click.echo(f"PR #{published} is ready for review.")

@cli.command(name="rebase", hidden=True, help="Restack the PR that followed a merged PR")
@click.argument('number', type=int)
@click.option('-C', '--directory', type=click.Path(exists=True, file_okay=False, dir_okay=True),
              help='Run as if rungs was started in DIRECTORY instead of the current working directory')
@click.option('-v', '--verbose', count=True, help="Increase verbosity (can be used multiple times for more verbosity)")
def rebase(number: int, directory: Optional[str], verbose: int) -> None:
    """Manual rebase command."""
    setup_logging(verbose)
    config, ops = setup(directory)
    try:
        state = ops.manually_rebase(number)
    except (RungsError, GithubException) as e:
        fail(e, verbose)
    click.echo(format_stack(state, config.repo.default_branch))

@cli.group(name="config", help="Show or change configuration")
def config_group() -> None:
    """Config command group."""
    setup_logging(0)

def _load_config_dict() -> Dict[str, Dict[str, Any]]:
    return parse_config(RealGit(default_config()))

@config_group.command(name="list", help="Show all settings with defaults applied")
def config_list() -> None:
    try:
        values = list_config_values(_load_config_dict())
    except RungsError as e:
        fail(e)
    for key, value in values.items():
        click.echo(f"{key}={value}")

@config_group.command(name="get", help="Show a single setting")
@click.argument('key')
def config_get(key: str) -> None:
    try:
        value = get_config_value(_load_config_dict(), key)
    except RungsError as e:
        fail(e)
    click.echo(f"{value}")

@config_group.command(name="set", help="Change a setting in the user config file")
@click.argument('key')
@click.argument('value')
@click.option('--repo', 'repo_file', is_flag=True, help=f"Write to {REPO_CONFIG_FILE} in the current directory instead")
def config_set(key: str, value: str, repo_file: bool) -> None:
    try:
        stored = set_config_value(key, value, REPO_CONFIG_FILE if repo_file else None)
    except RungsError as e:
        fail(e)
    click.echo(f"{key}={stored}")


cli.add_alias("st", "status")  # type: ignore[attr-defined]
cli.add_alias("push", "stack")  # type: ignore[attr-defined]

def main() -> None:
    """Main entry point."""
    cli(obj={})

if __name__ == "__main__":
    main()
