"""Stack synchronization: discover, repair, populate and attribute commits.

One sync pass rebuilds the chain from GitHub, fixes base pointers left
behind by merged or closed entries, fills each entry's commit list and
works out which local commits are not stacked yet. Failures on a single
entry are reported as warnings and never abort the pass.
"""

import logging
from typing import Dict, List, Optional, Tuple

from ..config.models import RungsConfig
from ..errors import GitError
from ..git import StackGit
from ..github import GitHubClient
from ..state import PersistedState, StateStore, state_from_chain
from ..typing import Commit, StackEntry, StackState

# Get module logger
logger = logging.getLogger(__name__)

def order_chain(entries: List[StackEntry], trunk: str, warnings: Optional[List[str]] = None,
                previous_order: Optional[List[int]] = None) -> List[StackEntry]:
    """Order entries by following base pointers up from trunk.

    When several entries share a base, and for entries that do not hang off
    the walk, the previously persisted order decides, then PR number. GitHub
    lists newest first, so listing order is never used. Repair re-points
    whatever falls off the walk.
    """
    rank = {number: i for i, number in enumerate(previous_order or [])}
    remaining = sorted(entries, key=lambda e: (rank.get(e.number, len(rank)), e.number))
    ordered: List[StackEntry] = []
    current_base = trunk
    while remaining:
        next_entry = next((e for e in remaining if e.base == current_base), None)
        if next_entry is None:
            break
        ordered.append(next_entry)
        remaining.remove(next_entry)
        current_base = next_entry.head
    if remaining:
        message = (f"Broken chain: {len(remaining)} PR(s) do not follow the base chain "
                   f"({', '.join(str(e) for e in remaining)})")
        logger.warning(message)
        if warnings is not None:
            warnings.append(message)
        ordered.extend(remaining)
    return ordered

def merge_tracked(discovered: List[StackEntry], previous: PersistedState) -> List[StackEntry]:
    """Discovered entries plus persisted ones GitHub no longer lists as open.

    A persisted-only entry goes right before its next persisted successor
    that is still discovered, or at the end when there is none.
    """
    tracked = list(discovered)
    by_number = {e.number: e for e in discovered}
    persisted = previous.numbers_to_branches()
    for i, (number, branch) in enumerate(persisted):
        if number in by_number:
            continue
        missing = StackEntry(number=number, head=branch, base="")
        successor = next((by_number[n] for n, _ in persisted[i + 1:] if n in by_number), None)
        if successor is None:
            tracked.append(missing)
        else:
            tracked.insert(tracked.index(successor), missing)
    return tracked

def dedupe_unstacked(entries: List[StackEntry], unstacked: List[Commit]) -> List[Commit]:
    """Drop every unstacked commit that some entry already contains."""
    attributed = {c.hash for entry in entries for c in entry.commits}
    result = [c for c in unstacked if c.hash not in attributed]
    if len(result) != len(unstacked):
        logger.debug(f"Removed {len(unstacked) - len(result)} attributed commit(s) from unstacked list")
    return result

class StackSynchronizer:
    """Keeps the chain of stacked PRs consistent with GitHub and local history."""
    def __init__(self, config: RungsConfig, git: StackGit, github: GitHubClient,
                 store: Optional[StateStore] = None):
        self.config = config
        self.git = git
        self.github = github
        self.store = store
        self.warnings: List[str] = []
        # Open entries left out of the last repair because a call about them failed
        self.held: List[StackEntry] = []
        self._refetched = False

    @property
    def trunk(self) -> str:
        return self.config.repo.default_branch

    @property
    def head_prefix(self) -> str:
        return f"{self.config.user.user_prefix}/"

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    def discover_chain(self, previous: Optional[PersistedState] = None) -> List[StackEntry]:
        """Open PRs by the current user under the user prefix, in chain order."""
        records = self.github.list_open_pull_requests(self.head_prefix)
        entries = [
            StackEntry(
                number=r.number,
                head=r.head,
                base=r.base,
                title=r.title,
                url=r.url,
                status=r.state,
                draft=r.draft,
            )
            for r in records
        ]
        previous_order = [n for n, _ in previous.numbers_to_branches()] if previous else None
        return order_chain(entries, self.trunk, self.warnings, previous_order)

    def load_previous(self) -> PersistedState:
        if self.store is None:
            return PersistedState()
        return self.store.load()

    def _refresh_entries(self, tracked: List[StackEntry]) -> List[Tuple[StackEntry, bool]]:
        """Query every tracked entry; drop merged and closed ones.

        Returns (entry, queried) pairs. Entries whose query failed keep the
        fields they were discovered or persisted with.
        """
        refreshed: List[Tuple[StackEntry, bool]] = []
        for entry in tracked:
            try:
                record = self.github.get_pull_request(entry.number)
            except Exception as e:
                self._warn(f"Could not query PR #{entry.number} ({entry.head}), skipping it this sync: {e}")
                refreshed.append((entry, False))
                continue
            entry.status = record.state
            if record.state == 'merged':
                logger.info(f"PR #{entry.number} ({entry.head}) was merged, removing from stack")
                continue
            if record.state == 'closed':
                logger.debug(f"PR #{entry.number} ({entry.head}) was closed, removing from stack")
                continue
            entry.head = record.head
            entry.base = record.base
            entry.title = record.title or entry.title
            entry.url = record.url or entry.url
            entry.draft = record.draft
            refreshed.append((entry, True))
        return refreshed

    def repair_chain(self, entries: List[StackEntry],
                     previous: Optional[PersistedState] = None) -> List[StackEntry]:
        """Drop merged/closed entries and point every survivor at its expected base.

        The expected base is the head of the nearest earlier open entry whose
        branch still exists upstream, else trunk. A base update is only sent
        when the live base differs, so a second run with nothing changed is
        a no-op.

        An entry whose query or base update failed is left out of the result
        and collected in `held`, but its head still counts as the expected
        base of the entries after it. Only merged, closed or deleted branches
        cause the entries above them to be re-pointed.
        """
        tracked = merge_tracked(entries, previous or PersistedState())
        self.held = []

        head_exists: Dict[str, bool] = {}
        repaired: List[StackEntry] = []
        anchor: Optional[str] = None
        for entry, queried in self._refresh_entries(tracked):
            expected = anchor or self.trunk
            usable = queried
            if queried and entry.base != expected:
                logger.info(f"Fixing base of PR #{entry.number}: {entry.base} -> {expected}")
                try:
                    self.github.update_pull_request_base(entry.number, expected)
                    entry.base = expected
                except Exception as e:
                    self._warn(f"Could not update base of PR #{entry.number} ({entry.head}), "
                               f"skipping it this sync: {e}")
                    usable = False
            if usable:
                repaired.append(entry)
            else:
                self.held.append(entry)

            if entry.head not in head_exists:
                head_exists[entry.head] = self.git.remote_branch_exists(entry.head)
            if head_exists[entry.head]:
                anchor = entry.head
            else:
                logger.debug(f"{entry.head} is missing upstream, next entry keeps base {expected}")
        return repaired

    def populate_commits(self, entries: List[StackEntry]) -> List[StackEntry]:
        """Fill each entry with commits on its head that are not on its base."""
        for entry in entries:
            try:
                entry.commits = self.git.commits_between(entry.base, entry.head)
                continue
            except GitError as e:
                first_error = e
            if not self._refetched:
                self._refetched = True
                logger.debug(f"Commit lookup for {entry.head} failed ({first_error}), refreshing remote refs")
                try:
                    self.git.fetch(prune=False)
                except GitError as e:
                    logger.debug(f"Refresh failed: {e}")
            try:
                entry.commits = self.git.commits_between(entry.base, entry.head)
            except GitError as e:
                entry.commits = []
                self._warn(f"Could not list commits of PR #{entry.number} ({entry.head}): {e}")
        return entries

    def exclusion_candidates(self, entries: List[StackEntry]) -> List[str]:
        """Ranked refs to search from: upstream trunk, then each entry's upstream head."""
        return [self.git.remote_ref(self.trunk)] + [self.git.remote_ref(e.head) for e in entries]

    def find_unstacked_commits(self, entries: List[StackEntry]) -> List[Commit]:
        """Smallest commit set on HEAD not covered by trunk or any entry.

        A candidate giving zero commits wins outright: HEAD sits exactly on
        that ref and nothing is unstacked.
        """
        best: Optional[List[Commit]] = None
        best_ref = None
        for ref in self.exclusion_candidates(entries):
            if not self.git.ref_exists(ref):
                logger.debug(f"Exclusion candidate {ref} does not exist")
                continue
            commits = self.git.commits_since(ref)
            logger.debug(f"{len(commits)} commit(s) since {ref}")
            if best is None or len(commits) < len(best):
                best, best_ref = commits, ref
            if not commits:
                break

        if best is not None:
            logger.debug(f"Using {best_ref} as base ({len(best)} unstacked commit(s))")
            return best

        if self.git.current_branch() != self.trunk and self.git.ref_exists(f"refs/heads/{self.trunk}"):
            logger.debug(f"No upstream candidates, using local {self.trunk}")
            return self.git.commits_since(self.trunk)

        root = self.git.root_commit()
        logger.debug(f"No upstream candidates, using root commit {root[:7]}")
        return self.git.commits_since(root)

    def persist(self, entries: List[StackEntry]) -> None:
        """Rewrite the cache from the chain, unless the last repair held entries back."""
        if self.store is None:
            return
        if self.held:
            logger.debug(f"Keeping previous state, PR(s) {[e.number for e in self.held]} were skipped this sync")
            return
        self.store.save(state_from_chain(entries))

    def sync(self) -> StackState:
        """Full pass: fetch, discover, repair, populate, attribute, persist."""
        self.warnings = []
        self._refetched = False
        try:
            self.git.fetch(prune=True)
        except GitError as e:
            self._warn(f"Could not fetch from {self.config.repo.github_remote}, using cached refs: {e}")

        previous = self.load_previous()
        entries = self.discover_chain(previous)
        entries = self.repair_chain(entries, previous)
        self.populate_commits(entries)
        unstacked = dedupe_unstacked(entries, self.find_unstacked_commits(entries))
        self.persist(entries)
        return StackState(entries=entries, unstacked_commits=unstacked, warnings=list(self.warnings))
