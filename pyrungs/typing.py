"""Common types used across the codebase."""

from dataclasses import dataclass, field
from typing import List, Literal, NewType, Optional, Protocol, Set

# Create NewTypes for commit identifiers
CommitHash = NewType('CommitHash', str)

# Decoded review-request state; never passed around as raw API data
PRState = Literal['open', 'merged', 'closed']
MergeMethod = Literal['merge', 'squash', 'rebase']
BranchNaming = Literal['commit-message', 'sequential', 'timestamp']
SyncStatusName = Literal['clean', 'ahead', 'behind', 'diverged']


@dataclass(frozen=True)
class Commit:
    """A commit as reported by git log."""
    hash: CommitHash
    message: str
    author: str = ""
    date: str = ""

    @classmethod
    def from_strings(cls, commit_hash: str, message: str, author: str = "", date: str = "") -> 'Commit':
        """Create a Commit from plain strings."""
        return cls(CommitHash(commit_hash), message, author, date)

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


@dataclass
class StackEntry:
    """One link of the chain: a branch plus its pull request."""
    number: int
    head: str
    base: str
    title: str = ""
    url: str = ""
    status: PRState = 'open'
    draft: bool = False
    commits: List[Commit] = field(default_factory=list)

    def __str__(self) -> str:
        return f"PR #{self.number}: {self.head} <- {self.base}"


@dataclass
class StackState:
    """Result of a sync: the ordered chain plus what is not yet stacked."""
    entries: List[StackEntry] = field(default_factory=list)
    unstacked_commits: List[Commit] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def last_branch(self) -> Optional[str]:
        return self.entries[-1].head if self.entries else None

    def attributed_hashes(self) -> Set[CommitHash]:
        return {c.hash for entry in self.entries for c in entry.commits}


@dataclass
class GitStatus:
    """Working tree status of the current branch."""
    current_branch: str
    is_clean: bool
    ahead: int = 0
    behind: int = 0


@dataclass
class SyncStatus:
    """How the local trunk relates to its upstream."""
    status: SyncStatusName
    ahead_count: int = 0
    behind_count: int = 0


class GitInterface(Protocol):
    """Protocol for running raw git commands."""
    def run_cmd(self, command: str) -> str:
        ...

    def must_git(self, command: str) -> str:
        ...
