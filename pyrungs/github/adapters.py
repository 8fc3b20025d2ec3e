"""Wrap PyGithub objects so they satisfy the protocols in pyrungs.github."""

from typing import Any, List, Optional, Union

from github import Github
from github.AuthenticatedUser import AuthenticatedUser
from github.GithubObject import NotSet
from github.NamedUser import NamedUser
from github.PullRequest import PullRequest
from github.Repository import Repository

from . import GitHubPullRequestProtocol, GitHubRepoProtocol, GitHubUserProtocol

def _passthrough(name: str) -> Any:
    """Read-only property forwarding to the wrapped PyGithub object.

    Stays lazy: attributes such as `merged` cost an extra request on PRs
    that came from a listing, so they are only fetched when read.
    """
    return property(lambda self: getattr(self._wrapped, name))

def _or_not_set(value: Optional[str]) -> Any:
    return NotSet if value is None else value

class PyGithubUserAdapter:
    login = _passthrough("login")

    def __init__(self, user: Union[NamedUser, AuthenticatedUser]) -> None:
        self._wrapped = user

class PyGithubPullRequestAdapter:
    """A pull request; `base`/`head` are PyGithub's own ref objects."""
    number = _passthrough("number")
    title = _passthrough("title")
    body = _passthrough("body")
    state = _passthrough("state")
    draft = _passthrough("draft")
    merged = _passthrough("merged")
    html_url = _passthrough("html_url")
    base = _passthrough("base")
    head = _passthrough("head")

    def __init__(self, pr: PullRequest) -> None:
        self._wrapped = pr

    @property
    def user(self) -> GitHubUserProtocol:
        return PyGithubUserAdapter(self._wrapped.user)

    def edit(self, title: Optional[str] = None, body: Optional[str] = None,
             state: Optional[str] = None, base: Optional[str] = None) -> None:
        self._wrapped.edit(title=_or_not_set(title), body=_or_not_set(body),
                           state=_or_not_set(state), base=_or_not_set(base))

    def merge(self, merge_method: str = "merge") -> None:
        self._wrapped.merge(merge_method=merge_method)

    def mark_ready_for_review(self) -> None:
        # PyGithub sends this as a GraphQL mutation
        self._wrapped.mark_ready_for_review()

class PyGithubRepoAdapter:
    def __init__(self, repo: Repository) -> None:
        self._wrapped = repo

    def get_pull(self, number: int) -> GitHubPullRequestProtocol:
        return PyGithubPullRequestAdapter(self._wrapped.get_pull(number))

    def get_pulls(self, state: str = "open") -> List[GitHubPullRequestProtocol]:
        return [PyGithubPullRequestAdapter(pr) for pr in self._wrapped.get_pulls(state=state)]

    def create_pull(self, title: str, body: str, base: str, head: str,
                    draft: bool = False) -> GitHubPullRequestProtocol:
        pr = self._wrapped.create_pull(title=title, body=body, base=base, head=head, draft=draft)
        return PyGithubPullRequestAdapter(pr)

    def delete_branch(self, branch: str) -> None:
        """Delete refs/heads/<branch> on GitHub."""
        self._wrapped.get_git_ref(f"heads/{branch}").delete()

class PyGithubAdapter:
    """Entry point handed to GitHubClient when a token is available."""
    def __init__(self, github: Github) -> None:
        self._wrapped = github

    def get_repo(self, full_name_or_id: str) -> GitHubRepoProtocol:
        return PyGithubRepoAdapter(self._wrapped.get_repo(full_name_or_id))

    def get_user(self) -> Optional[GitHubUserProtocol]:
        user = self._wrapped.get_user()
        return PyGithubUserAdapter(user) if user else None
