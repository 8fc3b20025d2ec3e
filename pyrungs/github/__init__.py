"""GitHub interfaces and implementation."""

import os
import logging
from pathlib import Path
from typing import Dict, List, Optional, Protocol, runtime_checkable

import yaml
from github import GithubException

from ..config.models import RungsConfig
from ..errors import MutationError, PreconditionError
from ..typing import Commit, MergeMethod, PRState
from ..util import ensure
from .types import PRRecord, decode_pr_state

# Get module logger
logger = logging.getLogger(__name__)

# GitHub rejects refs longer than this when creating pull requests
MAX_BRANCH_NAME_LENGTH = 63

# Define protocols for GitHub objects
@runtime_checkable
class GitHubUserProtocol(Protocol):
    """Protocol for GitHub user objects (real or fake)."""
    @property
    def login(self) -> str:
        """Get the user's login name."""
        ...

@runtime_checkable
class GitHubRefProtocol(Protocol):
    """Protocol for GitHub ref objects (base/head references)."""
    @property
    def ref(self) -> str:
        """Get the ref name (e.g., 'main', 'dev/fix-issue')."""
        ...

    @property
    def sha(self) -> str:
        """Get the commit SHA."""
        ...

@runtime_checkable
class GitHubPullRequestProtocol(Protocol):
    """Protocol for GitHub pull request objects (real or fake)."""
    @property
    def number(self) -> int:
        ...

    @property
    def title(self) -> str:
        ...

    @property
    def body(self) -> Optional[str]:
        ...

    @property
    def state(self) -> str:
        """Get the PR state (open, closed)."""
        ...

    @property
    def merged(self) -> bool:
        ...

    @property
    def draft(self) -> bool:
        ...

    @property
    def html_url(self) -> str:
        ...

    @property
    def base(self) -> GitHubRefProtocol:
        ...

    @property
    def head(self) -> GitHubRefProtocol:
        ...

    @property
    def user(self) -> GitHubUserProtocol:
        """Get the user who created the PR."""
        ...

    def edit(self, title: Optional[str] = None, body: Optional[str] = None, state: Optional[str] = None,
             base: Optional[str] = None) -> None:
        """Edit the pull request."""
        ...

    def merge(self, merge_method: str = "merge") -> None:
        """Merge the pull request."""
        ...

    def mark_ready_for_review(self) -> None:
        """Turn a draft into a regular pull request."""
        ...

@runtime_checkable
class GitHubRepoProtocol(Protocol):
    """Protocol for GitHub repository objects (real or fake)."""
    def get_pull(self, number: int) -> GitHubPullRequestProtocol:
        ...

    def get_pulls(self, state: str = "open") -> List[GitHubPullRequestProtocol]:
        ...

    def create_pull(self, title: str, body: str, base: str, head: str,
                    draft: bool = False) -> GitHubPullRequestProtocol:
        ...

    def delete_branch(self, branch: str) -> None:
        """Delete a branch on the remote."""
        ...

@runtime_checkable
class PyGithubProtocol(Protocol):
    """Protocol for PyGithub implementations (real or fake)."""
    def get_repo(self, full_name_or_id: str) -> GitHubRepoProtocol:
        ...

    def get_user(self) -> Optional[GitHubUserProtocol]:
        """Get the authenticated user."""
        ...

def find_github_token(host: str = "github.com") -> Optional[str]:
    """Find GitHub token from env var or gh CLI config."""
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token

    # Then try gh CLI config at ~/.config/gh/hosts.yml
    gh_config_path = Path.home() / ".config" / "gh" / "hosts.yml"
    try:
        if gh_config_path.exists():
            with open(gh_config_path, "r") as f:
                gh_config = yaml.safe_load(f) or {}
            host_config: Dict[str, object] = gh_config.get(host) or {}
            token = host_config.get("oauth_token")
            if isinstance(token, str) and token:
                return token
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Error reading gh CLI config: {e}")
    return None

def _decoded_state(pr: GitHubPullRequestProtocol) -> PRState:
    # `merged` is not part of list responses; only ask for it on closed PRs
    merged = pr.state == 'closed' and bool(pr.merged)
    return decode_pr_state(pr.state, merged)

def _to_record(pr: GitHubPullRequestProtocol) -> PRRecord:
    return PRRecord(
        number=pr.number,
        title=pr.title,
        url=pr.html_url or "",
        head=pr.head.ref,
        base=pr.base.ref,
        draft=bool(pr.draft),
        state=_decoded_state(pr),
        body=pr.body,
        author=pr.user.login if pr.user else None,
    )

class GitHubClient:
    """GitHub client implementation."""
    def __init__(self, config: RungsConfig, github_client: Optional[PyGithubProtocol] = None):
        """Initialize with config and GitHub client implementation.

        Args:
            config: The configuration
            github_client: GitHub client implementation (real or fake).
                If None, every call raises PreconditionError.
        """
        self.config = config
        self.client = github_client
        self._repo: Optional[GitHubRepoProtocol] = None
        self._login: Optional[str] = None

    def ensure_available(self) -> None:
        if self.client is None:
            raise PreconditionError(
                "No GitHub token found. Set GITHUB_TOKEN or log in with 'gh auth login'.")
        if not (self.config.repo.github_repo_owner and self.config.repo.github_repo_name):
            raise PreconditionError(
                "Could not determine the GitHub repository. Set repo.github_repo_owner and "
                "repo.github_repo_name in .rungs.yaml or add an 'origin' remote.")

    @property
    def repo(self) -> GitHubRepoProtocol:
        """Get GitHub repository."""
        if self._repo is None:
            self.ensure_available()
            owner = self.config.repo.github_repo_owner
            name = self.config.repo.github_repo_name
            self._repo = ensure(self.client, "GitHub client").get_repo(f"{owner}/{name}")
        return self._repo

    @repo.setter
    def repo(self, value: GitHubRepoProtocol) -> None:
        """Set the GitHub repository."""
        self._repo = value

    @property
    def login(self) -> str:
        if self._login is None:
            self.ensure_available()
            self._login = ensure(ensure(self.client, "GitHub client").get_user(), "authenticated user").login
        return self._login

    def list_open_pull_requests(self, head_prefix: str = "") -> List[PRRecord]:
        """Open PRs authored by the current user, optionally filtered by head prefix."""
        logger.info("> github fetch pull requests")
        me = self.login.lower()
        records: List[PRRecord] = []
        for pr in self.repo.get_pulls(state='open'):
            if not pr.user or pr.user.login.lower() != me:
                continue
            if head_prefix and not pr.head.ref.startswith(head_prefix):
                continue
            records.append(_to_record(pr))
        logger.debug(f"Found {len(records)} open PRs by {me} with prefix '{head_prefix}'")
        return records

    def get_pull_request(self, number: int) -> PRRecord:
        return _to_record(self.repo.get_pull(number))

    def create_pull_request(self, title: str, body: str, head: str, base: str,
                            draft: bool = True) -> PRRecord:
        """Create pull request."""
        logger.info(f"> github create {head} -> {base} : {title}")
        try:
            pr = self.repo.create_pull(title=title, body=body, base=base, head=head, draft=draft)
        except GithubException as e:
            message = f"Failed to create pull request for {head}: {e}"
            if len(head) > MAX_BRANCH_NAME_LENGTH:
                message += (f"\n\nHint: Branch name may be too long. GitHub branch names must be "
                            f"{MAX_BRANCH_NAME_LENGTH} characters or less.")
            raise MutationError(message) from e
        return _to_record(pr)

    def update_pull_request_base(self, number: int, base: str) -> None:
        logger.info(f"> github update #{number} base -> {base}")
        try:
            self.repo.get_pull(number).edit(base=base)
        except GithubException as e:
            raise MutationError(f"Failed to update pull request #{number} base to {base}: {e}") from e

    def publish_pull_request(self, number: int) -> None:
        """Mark a draft pull request as ready for review."""
        logger.info(f"> github ready #{number}")
        pr = self.repo.get_pull(number)
        if not pr.draft:
            raise MutationError(f"Pull request #{number} is already published (not a draft).")
        try:
            pr.mark_ready_for_review()
        except GithubException as e:
            raise MutationError(f"Failed to publish pull request #{number}: {e}") from e

    def merge_pull_request(self, number: int, merge_method: MergeMethod = 'squash',
                           delete_branch: bool = True) -> None:
        """Merge pull request, optionally deleting its head branch."""
        logger.info(f"> github merge #{number} ({merge_method})")
        pr = self.repo.get_pull(number)
        head = pr.head.ref
        try:
            pr.merge(merge_method=merge_method)
        except GithubException as e:
            raise MutationError(f"Failed to merge PR #{number}: {e}") from e
        if delete_branch:
            logger.info(f"> github delete branch {head}")
            try:
                self.repo.delete_branch(head)
            except GithubException as e:
                logger.warning(f"Merged PR #{number} but could not delete branch {head}: {e}")

    def close_pull_request(self, number: int) -> None:
        logger.info(f"> github close #{number}")
        try:
            self.repo.get_pull(number).edit(state="closed")
        except GithubException as e:
            raise MutationError(f"Failed to close pull request #{number}: {e}") from e

    @staticmethod
    def generate_pr_title(commits: List[Commit]) -> str:
        """Title from newest-first commits."""
        if not commits:
            return "Empty stack"
        if len(commits) == 1:
            return commits[0].message
        return f"{commits[0].message} (+{len(commits) - 1} more)"

    @staticmethod
    def generate_pr_body(commits: List[Commit]) -> str:
        if not commits:
            return "Empty stack - no commits to include."
        if len(commits) == 1:
            return f"Single commit stack:\n\n- {commits[0].message}"
        commit_list = "\n".join(f"- {c.message}" for c in commits)
        return f"Stack of {len(commits)} commits:\n\n{commit_list}"
