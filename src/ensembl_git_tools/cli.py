"""
Command-line interface for the Ensembl git tools.
"""

import click
import functools
import json
import logging
import sys
from typing import List, Optional, Tuple
from pathlib import Path

import yaml

from . import __version__
from .config import get_config_manager, reset_config_manager
from .error_handling import EnsGitError, WorkflowError, ConfigurationError
from .logging import LoggerConfig, setup_logging, close_logging
from .models import Identity
from .registry import PUBLIC_GROUP, Registry
from .repository import (
    GitRunner, GitWrapper, GitHubClient, BranchProtectionRules, RepositoryManager,
    OperationResult, parse_oauth_token
)
from .repository.github_client import summarise_protection
from .workflows import (
    Console, MergePushWorkflow, SyncPushWorkflow, AuthorRewriter, SharedUser, CvsExporter
)
from .workflows.merge_push import STRATEGIES

logger = logging.getLogger(__name__)


def handle_errors(func):
    """Turn tool errors into messages on stderr and the matching exit status."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except WorkflowError as e:
            click.echo(f"!! {e.message}", err=True)
            for hint in e.hints:
                click.echo(f"!! {hint}", err=True)
            sys.exit(e.exit_code)
        except EnsGitError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    return wrapper


@click.group()
@click.version_option(version=__version__)
@click.option(
    '--config', '-c',
    type=click.Path(exists=True, path_type=Path),
    help='Path to configuration file'
)
@click.option(
    '--verbose', '-v',
    count=True,
    help='Increase verbosity (use -v or -vv)'
)
@click.option(
    '--no-prompt',
    is_flag=True,
    help='Never ask for confirmation (same as setting NO_PROMPT)'
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[Path], verbose: int, no_prompt: bool) -> None:
    """
    Ensembl git tools - work with groups of Ensembl repositories.

    Clone, switch, update and inspect many repositories at once, promote
    topic branches with the Minimal Git Workflow, maintain author
    identities, export to CVS and manage GitHub branch protection and
    pull requests.
    """
    ctx.ensure_object(dict)

    reset_config_manager()
    try:
        config_manager = get_config_manager(config)
        if no_prompt:
            config_manager.apply_overrides({"git.prompt": False})
        app_config = config_manager.get_config()
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    setup_logging(LoggerConfig.from_app_config(app_config, verbose))
    ctx.call_on_close(close_logging)

    ctx.obj['config_file'] = config
    ctx.obj['verbose'] = verbose
    ctx.obj['config'] = app_config


def _console(ctx: click.Context, assume_yes: bool = False) -> Console:
    return Console(prompt=ctx.obj['config'].git.prompt and not assume_yes)


def _git(ctx: click.Context, working_dir: Optional[Path] = None) -> GitWrapper:
    verbose = ctx.obj['config'].git.verbose
    return GitWrapper(GitRunner(working_dir, verbose=verbose), verbose=verbose)


def _github_client(ctx: click.Context, token_file: Optional[Path] = None) -> GitHubClient:
    """
    GitHub client for the selected token.

    An explicit token file wins over the configured token file, which
    wins over a configured or environment token.
    """
    config = ctx.obj['config']
    path = token_file or config.github.token_file
    token = parse_oauth_token(path) if path else None
    return GitHubClient(access_token=token)


def _resolve(ctx: click.Context, names: Tuple[str, ...],
             github: Optional[GitHubClient] = None):
    if github is None and PUBLIC_GROUP in names:
        github = _github_client(ctx)
    registry = Registry.from_config(ctx.obj['config'], github_client=github)
    return registry.resolve(names)


def _manager(ctx: click.Context, base_dir: Optional[Path], remote: Optional[str]) -> RepositoryManager:
    config = ctx.obj['config']
    return RepositoryManager(base_dir=base_dir, remote=remote or config.git.remote, verbose=config.git.verbose)


def display_results(results: List[OperationResult], title: str) -> None:
    """Print a per-module summary and exit 1 if any module failed."""
    click.echo(f"\n{title}")
    click.echo("-" * 60)
    width = max((len(result.module) for result in results), default=0)
    for result in results:
        if result.skipped:
            mark = "skip"
        else:
            mark = "ok" if result.ok else "FAIL"
        click.echo(f"  {result.module:<{width}}  {mark:<4}  {result.message}")

    failed = [result for result in results if not result.ok]
    click.echo("-" * 60)
    click.echo(f"{len(results)} modules, {len(failed)} failed")
    if failed:
        sys.exit(1)


dir_option = click.option(
    '--dir', '-d', 'base_dir',
    type=click.Path(file_okay=False, path_type=Path),
    help='Directory holding the module checkouts (defaults to the current directory)'
)
remote_option = click.option(
    '--remote', '-r',
    help='Remote to work against (defaults to git.remote, usually origin)'
)


@cli.command()
@click.option(
    '--groups-only',
    is_flag=True,
    help='Only list groups'
)
@click.pass_context
@handle_errors
def modules(ctx: click.Context, groups_only: bool) -> None:
    """List the known groups and modules."""
    registry = Registry.from_config(ctx.obj['config'])

    click.echo("Groups:")
    for group in registry.list_groups():
        click.echo(f"  {group.name}: {' '.join(group.modules)}")

    if groups_only:
        return

    click.echo("\nModules:")
    for name in sorted(registry.modules):
        click.echo(f"  {name}: {registry.remote_for(name)}")


@cli.command()
@click.option(
    '--format', '-f',
    type=click.Choice(['table', 'json', 'yaml'], case_sensitive=False),
    default='table',
    help='Output format for configuration display'
)
@click.pass_context
def config(ctx: click.Context, format: str) -> None:
    """
    Display current configuration settings.

    Shows defaults merged with the configuration file, environment
    variables and command-line overrides. Tokens are masked.
    """
    config_dict = ctx.obj['config'].to_dict(mask_secrets=True)

    if format == 'json':
        click.echo(json.dumps(config_dict, indent=2, default=str))
    elif format == 'yaml':
        click.echo(yaml.dump(config_dict, default_flow_style=False))
    else:
        display_config_table(config_dict)


@cli.command()
@click.argument('names', nargs=-1, required=True)
@dir_option
@remote_option
@click.option(
    '--branch', '-b',
    help='Branch to switch to after cloning'
)
@click.option(
    '--depth',
    type=int,
    help='Git clone depth (full history when omitted)'
)
@click.pass_context
@handle_errors
def clone(ctx: click.Context, names: Tuple[str, ...], base_dir: Optional[Path], remote: Optional[str],
          branch: Optional[str], depth: Optional[int]) -> None:
    """
    Clone modules and groups.

    Examples:

        # Everything the web site needs, on the dev branch
        ens-git clone web --branch dev

        # Every public repository of the organisation
        ens-git clone public --dir ~/src
    """
    modules = _resolve(ctx, names)
    results = _manager(ctx, base_dir, remote).clone(modules, branch=branch, depth=depth)
    display_results(results, "CLONE RESULTS")


@cli.command()
@click.argument('branch')
@click.argument('names', nargs=-1, required=True)
@dir_option
@remote_option
@click.pass_context
@handle_errors
def checkout(ctx: click.Context, branch: str, names: Tuple[str, ...], base_dir: Optional[Path],
             remote: Optional[str]) -> None:
    """Switch modules to BRANCH, creating tracking branches where needed."""
    modules = _resolve(ctx, names)
    results = _manager(ctx, base_dir, remote).checkout(modules, branch)
    display_results(results, f"CHECKOUT {branch}")


@cli.command()
@click.argument('names', nargs=-1, required=True)
@dir_option
@remote_option
@click.option(
    '--update-only-clean',
    is_flag=True,
    help='Skip modules with local modifications'
)
@click.pass_context
@handle_errors
def pull(ctx: click.Context, names: Tuple[str, ...], base_dir: Optional[Path], remote: Optional[str],
         update_only_clean: bool) -> None:
    """Pull the current branch of each module."""
    modules = _resolve(ctx, names)
    results = _manager(ctx, base_dir, remote).pull(modules, only_clean=update_only_clean)
    display_results(results, "PULL RESULTS")


@cli.command()
@click.argument('names', nargs=-1, required=True)
@dir_option
@remote_option
@click.pass_context
@handle_errors
def fetch(ctx: click.Context, names: Tuple[str, ...], base_dir: Optional[Path], remote: Optional[str]) -> None:
    """Fetch each module from the remote."""
    modules = _resolve(ctx, names)
    results = _manager(ctx, base_dir, remote).fetch(modules)
    display_results(results, "FETCH RESULTS")


@cli.command()
@click.argument('names', nargs=-1, required=True)
@dir_option
@remote_option
@click.pass_context
@handle_errors
def status(ctx: click.Context, names: Tuple[str, ...], base_dir: Optional[Path], remote: Optional[str]) -> None:
    """Show branch, cleanliness and remote relation of each module."""
    modules = _resolve(ctx, names)
    results = _manager(ctx, base_dir, remote).status(modules)
    display_results(results, "STATUS")


@cli.command()
@click.argument('target', required=False)
@click.option(
    '--primary',
    help='Branch to merge into (defaults to git.primary_branch)'
)
@remote_option
@click.option(
    '--strategy',
    type=click.Choice(STRATEGIES),
    default='rebase',
    help='Rebase the target and fast-forward, or merge it with --no-ff'
)
@click.option(
    '--abort-on-conflict',
    is_flag=True,
    help='Abort a conflicting rebase instead of leaving it to resolve'
)
@click.option(
    '--dry-run',
    is_flag=True,
    help='Run the checks and print the plan without changing anything'
)
@click.pass_context
@handle_errors
def mgw(ctx: click.Context, target: Optional[str], primary: Optional[str], remote: Optional[str],
        strategy: str, abort_on_conflict: bool, dry_run: bool) -> None:
    """
    Merge a local topic branch into the primary branch and push it.

    TARGET defaults to git.default_topic_branch (dev). It must be a local
    branch that does not track a remote.
    """
    config = ctx.obj['config']
    workflow = MergePushWorkflow(
        _git(ctx),
        _console(ctx),
        target=target or config.git.default_topic_branch,
        primary=primary or config.git.primary_branch,
        remote=remote or config.git.remote,
        strategy=strategy,
        abort_on_conflict=abort_on_conflict,
        dry_run=dry_run
    )
    workflow.run()


@cli.command()
@remote_option
@click.option(
    '--merge', 'use_merge',
    is_flag=True,
    help='Merge a diverged remote branch instead of rebasing onto it'
)
@click.pass_context
@handle_errors
def mpush(ctx: click.Context, remote: Optional[str], use_merge: bool) -> None:
    """Bring the current branch up to date with its remote branch and push it."""
    workflow = SyncPushWorkflow(
        _git(ctx),
        _console(ctx),
        remote=remote or ctx.obj['config'].git.remote,
        use_merge=use_merge
    )
    workflow.run()


@cli.command(name='cvs-export')
@click.option(
    '--git-dir', '-g',
    type=click.Path(path_type=Path),
    help='Git working copy used as the source of patches'
)
@click.option(
    '--cvs-dir', '-c',
    type=click.Path(path_type=Path),
    help='CVS sandbox to apply the patches to'
)
@click.option(
    '--commit', '-C',
    is_flag=True,
    help='Commit every applied change in CVS'
)
@click.option(
    '--list-configs', '-l',
    is_flag=True,
    help='List every recorded last-export commit'
)
@click.option(
    '--unset-configs', '-u',
    is_flag=True,
    help='Remove every recorded last-export commit'
)
@click.option(
    '--max-commits-back',
    type=int,
    help='How far back in the HEAD reflog to look for the last export'
)
@remote_option
@click.pass_context
@handle_errors
def cvs_export(ctx: click.Context, git_dir: Optional[Path], cvs_dir: Optional[Path], commit: bool,
               list_configs: bool, unset_configs: bool, max_commits_back: Optional[int],
               remote: Optional[str]) -> None:
    """
    Export new Git commits into a CVS sandbox.

    Merge into the exported branch with 'git merge --no-ff --log' so every
    exported commit has a parent to diff against.
    """
    config = ctx.obj['config']
    if commit:
        click.echo("* Committing is on")

    exporter = CvsExporter(
        git_dir,
        cvs_dir,
        commit=commit,
        remote=remote or config.git.remote,
        config_prefix=config.cvs.last_export_config,
        max_commits_back=max_commits_back if max_commits_back is not None else config.cvs.max_commits_back,
        console=_console(ctx)
    )
    exporter.check_repository()

    if list_configs:
        for key, values in exporter.list_configs().items():
            for value in values:
                click.echo(f"{key} {value}")
        return

    if unset_configs:
        for key in exporter.unset_configs():
            click.echo(f"Unset {key}")
        return

    exported = exporter.export()
    if exported:
        click.echo(f"** Exported {len(exported)} commit(s)")


@cli.command(name='rewrite-authors')
@click.option(
    '--old-email',
    required=True,
    help='Email of the commits to rewrite'
)
@click.option(
    '--new', 'new_identity',
    required=True,
    help='Replacement identity as "Name <email>"'
)
@click.option(
    '--range', 'rev_range',
    default='HEAD',
    help='Revisions to rewrite'
)
@click.option(
    '--committer/--no-committer',
    default=True,
    help='Also rewrite the committer of matching commits'
)
@click.option(
    '--force',
    is_flag=True,
    help='Overwrite an existing filter-branch backup'
)
@click.option(
    '--yes', '-y',
    is_flag=True,
    help='Do not ask for confirmation'
)
@click.pass_context
@handle_errors
def rewrite_authors(ctx: click.Context, old_email: str, new_identity: str, rev_range: str,
                    committer: bool, force: bool, yes: bool) -> None:
    """Rewrite the author of every commit made with OLD_EMAIL."""
    identity = Identity.parse(new_identity)
    rewriter = AuthorRewriter(_git(ctx), _console(ctx, assume_yes=yes))
    rewriter.rewrite(old_email, identity, rev_range=rev_range, rewrite_committer=committer, force=force)


@cli.group(name='shared-user')
def shared_user() -> None:
    """Per-repository identity for shared accounts."""


@shared_user.command(name='set')
@click.argument('identity')
@click.pass_context
@handle_errors
def shared_user_set(ctx: click.Context, identity: str) -> None:
    """Set IDENTITY ("Name <email>") in the repository's local config."""
    parsed = Identity.parse(identity)
    SharedUser(_git(ctx)).set(parsed)
    click.echo(f"*  Commits in this repository will be made as {parsed}")


@shared_user.command(name='show')
@click.pass_context
@handle_errors
def shared_user_show(ctx: click.Context) -> None:
    """Show the identity commits would be made with."""
    shared = SharedUser(_git(ctx))
    local = shared.local_identity()
    if local:
        click.echo(f"{local} (local)")
        return

    effective = shared.effective_identity()
    if effective:
        click.echo(f"{effective} (inherited)")
    else:
        click.echo("No identity configured")


@shared_user.command(name='clear')
@click.pass_context
@handle_errors
def shared_user_clear(ctx: click.Context) -> None:
    """Remove the local identity."""
    SharedUser(_git(ctx)).clear()
    click.echo("*  Local identity removed")


@shared_user.command(name='check')
@click.pass_context
@handle_errors
def shared_user_check(ctx: click.Context) -> None:
    """Exit 1 unless a local identity is set (for pre-commit hooks)."""
    identity = SharedUser(_git(ctx)).check()
    click.echo(f"*  Committing as {identity}")


@cli.group()
@click.option(
    '--token-file',
    type=click.Path(path_type=Path),
    help='File holding a GitHub OAuth token (must be private to its owner)'
)
@click.pass_context
def github(ctx: click.Context, token_file: Optional[Path]) -> None:
    """GitHub repository administration."""
    ctx.obj['token_file'] = token_file


def _github_context(ctx: click.Context) -> Tuple[GitHubClient, str]:
    client = _github_client(ctx, ctx.obj.get('token_file'))
    return client, ctx.obj['config'].github.organisation


@github.command(name='public-repos')
@click.option(
    '--org',
    help='Organisation to list (defaults to github.organisation)'
)
@click.pass_context
@handle_errors
def public_repos(ctx: click.Context, org: Optional[str]) -> None:
    """List the public repositories of the organisation."""
    client, organisation = _github_context(ctx)
    for name in client.public_repositories(org or organisation):
        click.echo(name)


@github.command()
@click.argument('branch')
@click.argument('names', nargs=-1, required=True)
@click.option(
    '--reviews',
    type=int,
    default=1,
    help='Required approving reviews (0 disables review requirements)'
)
@click.option(
    '--enforce-admins/--no-enforce-admins',
    default=False,
    help='Apply the rules to administrators too'
)
@click.option(
    '--dismiss-stale/--no-dismiss-stale',
    default=True,
    help='Dismiss approvals when new commits are pushed'
)
@click.option(
    '--code-owners',
    is_flag=True,
    help='Require a review from code owners'
)
@click.option(
    '--status-check',
    multiple=True,
    help='Required status check context (repeatable)'
)
@click.option(
    '--strict',
    is_flag=True,
    help='Require branches to be up to date before merging'
)
@click.option(
    '--linear-history',
    is_flag=True,
    help='Forbid merge commits'
)
@click.pass_context
@handle_errors
def protect(ctx: click.Context, branch: str, names: Tuple[str, ...], reviews: int, enforce_admins: bool,
            dismiss_stale: bool, code_owners: bool, status_check: Tuple[str, ...], strict: bool,
            linear_history: bool) -> None:
    """Protect BRANCH in every named module."""
    client, organisation = _github_context(ctx)
    rules = BranchProtectionRules(
        required_approving_review_count=reviews,
        dismiss_stale_reviews=dismiss_stale,
        require_code_owner_reviews=code_owners,
        enforce_admins=enforce_admins,
        status_check_contexts=list(status_check),
        strict_status_checks=strict,
        required_linear_history=linear_history
    )
    for module in _resolve(ctx, names, client):
        client.set_branch_protection(organisation, module.name, branch, rules)
        click.echo(f"*  {module.name}:{branch} protected")


@github.command()
@click.argument('branch')
@click.argument('names', nargs=-1, required=True)
@click.pass_context
@handle_errors
def unprotect(ctx: click.Context, branch: str, names: Tuple[str, ...]) -> None:
    """Remove protection from BRANCH in every named module."""
    client, organisation = _github_context(ctx)
    for module in _resolve(ctx, names, client):
        if client.remove_branch_protection(organisation, module.name, branch):
            click.echo(f"*  {module.name}:{branch} unprotected")
        else:
            click.echo(f"*  {module.name}:{branch} was not protected")


@github.command()
@click.argument('branch')
@click.argument('names', nargs=-1, required=True)
@click.pass_context
@handle_errors
def protection(ctx: click.Context, branch: str, names: Tuple[str, ...]) -> None:
    """Show the protection of BRANCH in every named module."""
    client, organisation = _github_context(ctx)
    for module in _resolve(ctx, names, client):
        summary = summarise_protection(client.get_branch_protection(organisation, module.name, branch))
        click.echo(f"{module.name}:{branch}: {summary}")


@github.command()
@click.argument('names', nargs=-1, required=True)
@click.option(
    '--state',
    type=click.Choice(['open', 'closed', 'all']),
    default='open',
    help='Pull request state to list'
)
@click.option(
    '--base',
    help='Only pull requests into this branch'
)
@click.option(
    '--stale-days',
    type=int,
    help='Only pull requests not updated for this many days'
)
@click.option(
    '--close-stale',
    is_flag=True,
    help='Close the listed stale pull requests'
)
@click.option(
    '--comment',
    help='Comment left on each pull request before it is closed'
)
@click.option(
    '--yes', '-y',
    is_flag=True,
    help='Do not ask before closing'
)
@click.pass_context
@handle_errors
def pulls(ctx: click.Context, names: Tuple[str, ...], state: str, base: Optional[str],
          stale_days: Optional[int], close_stale: bool, comment: Optional[str], yes: bool) -> None:
    """
    List pull requests of every named module.

    With --stale-days and --close-stale, old pull requests are closed
    after confirmation, leaving --comment on each.
    """
    if close_stale and stale_days is None:
        raise click.UsageError("--close-stale needs --stale-days")

    client, organisation = _github_context(ctx)
    selected = []
    for module in _resolve(ctx, names, client):
        for pull_request in client.list_pull_requests(organisation, module.name, state=state, base=base):
            if stale_days is not None and not pull_request.is_stale(stale_days):
                continue
            selected.append(pull_request)
            click.echo(
                f"{pull_request.module}#{pull_request.number}\t{pull_request.age_days()}d\t"
                f"{pull_request.author}\t{pull_request.title}\t{pull_request.html_url}"
            )

    click.echo(f"{len(selected)} pull request(s)")
    if not close_stale or not selected:
        return

    console = _console(ctx, assume_yes=yes)
    if not console.confirm(f"About to close {len(selected)} pull request(s)"):
        click.echo("Nothing closed")
        return

    for pull_request in selected:
        client.close_pull_request(organisation, pull_request.module, pull_request.number, comment=comment)
        click.echo(f"*  Closed {pull_request.module}#{pull_request.number}")


def display_config_table(config_dict) -> None:
    """Display configuration in table format."""
    click.echo("\nCurrent Configuration:")
    click.echo("-" * 50)

    for section_name, section in config_dict.items():
        click.echo(f"\n[{section_name}]")
        for key, value in section.items():
            click.echo(f"  {key}: {value}")


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == '__main__':
    main()
