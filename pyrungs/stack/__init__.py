"""Stack operations: the verbs the CLI exposes."""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from github import GithubException

from ..config.models import RungsConfig
from ..errors import BranchExistsError, GitError, MutationError, PreconditionError, StackError, SyncError
from ..git import StackGit
from ..github import GitHubClient
from ..naming import generate_branch_name
from ..state import StateStore
from ..sync import StackSynchronizer
from ..typing import GitStatus, MergeMethod, StackEntry, StackState

# Get module logger
logger = logging.getLogger(__name__)

@dataclass
class StatusReport:
    """Working tree status plus the freshly synced stack."""
    git: GitStatus
    stack: StackState

class StackOperations:
    """Create, inspect, merge and restack entries of the stack."""
    def __init__(self, config: RungsConfig, git: StackGit, github: GitHubClient,
                 store: Optional[StateStore] = None):
        self.config = config
        self.git = git
        self.github = github
        self.store = store
        self.synchronizer = StackSynchronizer(config, git, github, store)

    @property
    def trunk(self) -> str:
        return self.config.repo.default_branch

    def sync(self) -> StackState:
        return self.synchronizer.sync()

    def validate_sync(self) -> None:
        """Make sure local trunk can be stacked on top of its upstream.

        Ahead is fine unless the extra commits look like squash-merged
        leftovers. Behind or diverged is rebased away when auto_rebase is set.
        """
        trunk = self.trunk
        upstream = self.git.remote_ref(trunk)
        try:
            self.git.fetch()
        except GitError as e:
            logger.warning(f"Could not fetch before sync check: {e}")

        status = self.git.get_sync_status(trunk)
        logger.debug(f"{trunk} vs {upstream}: {status.status} (+{status.ahead_count}/-{status.behind_count})")
        if status.status == 'clean':
            return

        if status.status == 'ahead':
            duplicates = self.git.detect_duplicate_commits(trunk)
            if not duplicates:
                return
            listing = "\n".join(f"  - {msg}" for msg in duplicates)
            raise SyncError(
                f"Cannot create PR: local {trunk} has {status.ahead_count} commit(s) that may already be "
                f"merged into {upstream}.\nDuplicate commit messages found:\n{listing}\n\n"
                f"To resolve:\n  git reset --hard {upstream}    # Reset to remote state\n"
                f"  git cherry-pick <specific-commits>    # Re-apply only new commits\n"
                f"Or:\n  git rebase {upstream}\n\n"
                "Use --force to create the PR anyway (not recommended)")

        if self.config.user.auto_rebase:
            logger.info(f"Local {trunk} is {status.status}, rebasing onto {upstream}")
            self.git.rebase_onto(trunk)
            return

        if status.status == 'behind':
            detail = (f"Your local {trunk} is {status.behind_count} commit(s) behind {upstream}.\n"
                      f"To resolve:\n  git pull {self.git.remote} {trunk}\n\n")
        else:
            detail = (f"Your local {trunk} has diverged from {upstream}: {status.ahead_count} ahead, "
                      f"{status.behind_count} behind.\nTo resolve:\n  git rebase {upstream}\n"
                      f"Or:\n  git reset --hard {upstream}    # Loses local changes\n\n")
        raise SyncError(f"Cannot create PR: local branch is out of sync with remote.\n{detail}"
                        "Use --force to create the PR anyway (not recommended)")

    def create_next_entry(self, auto_publish: bool = False, force: bool = False) -> Optional[StackEntry]:
        """Turn every unstacked commit on trunk into one new PR on top of the stack."""
        self.github.ensure_available()
        trunk = self.trunk
        status = self.git.get_status()
        if status.current_branch != trunk:
            raise PreconditionError(
                f"Must be on {trunk} branch to push stack. Currently on {status.current_branch}.")
        if not status.is_clean:
            raise PreconditionError("Working directory is not clean. Please commit or stash changes.")

        if not force:
            self.validate_sync()

        state = self.sync()
        commits = state.unstacked_commits
        if not commits:
            logger.info("No new commits to stack, nothing to do")
            return None

        user = self.config.user
        branch = generate_branch_name(commits, user.user_prefix, user.branch_naming)
        if self.git.branch_exists(branch):
            raise BranchExistsError(
                f"Branch {branch} already exists. Please delete it or use a different naming strategy.")

        base = state.last_branch or trunk
        draft = user.draft_prs and not auto_publish
        title = self.github.generate_pr_title(commits)
        body = self.github.generate_pr_body(commits)
        logger.info(f"Stacking {len(commits)} commit(s) as {branch} on {base}")

        try:
            self.git.create_branch(branch)
            try:
                self.git.push_branch(branch)
            except GitError as e:
                raise MutationError(f"Failed to push branch {branch}: {e}") from e
            record = self.github.create_pull_request(title, body, branch, base, draft=draft)
        finally:
            self.git.checkout(trunk)

        entry = StackEntry(
            number=record.number,
            head=branch,
            base=base,
            title=record.title,
            url=record.url,
            status=record.state,
            draft=record.draft,
            commits=list(commits),
        )
        logger.info(f"Created PR #{entry.number}: {entry.url}")
        state.entries.append(entry)
        self.synchronizer.persist(state.entries)
        return entry

    def get_status(self) -> StatusReport:
        return StatusReport(git=self.git.get_status(), stack=self.sync())

    def _top_entry_number(self, state: StackState) -> int:
        if not state.entries:
            raise StackError("No PRs found in current stack")
        return state.entries[-1].number

    def _restack(self, dependents: List[StackEntry], old_tip: str, new_base: str) -> None:
        """Replay dependents onto new_base, dropping commits up to old_tip.

        Failures are per dependent; the original branch is checked out again.
        """
        if not dependents:
            return
        original = self.git.current_branch()
        logger.info(f"Restacking {len(dependents)} dependent branch(es) onto {new_base}")
        try:
            for entry in dependents:
                try:
                    self.git.checkout(entry.head)
                    self.git.fetch_branch(new_base)
                    self.git.rebase_onto_target(self.git.remote_ref(new_base), old_tip)
                    self.git.push_branch(entry.head, force_with_lease=True)
                    logger.info(f"Restacked PR #{entry.number} ({entry.head})")
                except GitError as e:
                    logger.warning(f"Failed to restack PR #{entry.number}: {e}")
        finally:
            try:
                self.git.checkout(original)
            except GitError as e:
                logger.warning(f"Could not return to branch {original}: {e}")

    def _restore_bases(self, repointed: List[Tuple[StackEntry, str]]) -> None:
        """Put dependents back on the head they had before a merge that did not happen."""
        for entry, old_base in repointed:
            logger.info(f"Restoring PR #{entry.number} base: {entry.base} -> {old_base}")
            try:
                self.github.update_pull_request_base(entry.number, old_base)
                entry.base = old_base
            except MutationError as e:
                logger.warning(f"Could not restore PR #{entry.number} base to {old_base}: {e}")

    def merge_entry(self, number: Optional[int] = None, method: Optional[MergeMethod] = None,
                    delete_branch: Optional[bool] = None) -> StackState:
        """Merge an entry (top of the stack by default) and repair what depends on it."""
        self.github.ensure_available()
        method = method or self.config.user.merge_method
        if delete_branch is None:
            delete_branch = self.config.user.delete_branch

        state = self.sync()
        if number is None:
            number = self._top_entry_number(state)

        entries = state.entries
        index = next((i for i, e in enumerate(entries) if e.number == number), None)
        target = entries[index] if index is not None else None
        if target is None:
            logger.warning(f"PR #{number} is not tracked in the current stack, merging anyway")

        dependents: List[StackEntry] = []
        new_base = self.trunk
        if target is not None and index is not None:
            new_base = entries[index - 1].head if index > 0 else self.trunk
            dependents = [e for e in entries if e.base == target.head and e.number != number]

        repointed: List[Tuple[StackEntry, str]] = []
        if target is not None and delete_branch:
            # The branch is about to go away; GitHub closes PRs based on it
            for entry in dependents:
                logger.info(f"Updating PR #{entry.number}: {entry.base} -> {new_base}")
                try:
                    self.github.update_pull_request_base(entry.number, new_base)
                    repointed.append((entry, entry.base))
                    entry.base = new_base
                except MutationError as e:
                    logger.warning(f"Could not pre-update PR #{entry.number} base: {e}")

        old_tip: Optional[str] = None
        if target is not None and delete_branch and method == 'squash' and dependents:
            try:
                old_tip = self.git.resolve_ref(self.git.remote_ref(target.head))
            except GitError as e:
                logger.warning(f"Could not resolve {target.head} before merge, dependents will not be restacked: {e}")

        logger.info(f"Merging PR #{number} using {method} merge...")
        try:
            self.github.merge_pull_request(number, method, delete_branch)
        except (MutationError, GithubException):
            self._restore_bases(repointed)
            raise
        logger.info(f"Merged PR #{number}")

        if old_tip:
            self._restack(dependents, old_tip, new_base)

        try:
            self.git.pull_latest(self.trunk)
        except GitError as e:
            logger.warning(f"Could not update local {self.trunk}: {e}")

        return self.sync()

    def manually_rebase(self, merged_number: int) -> StackState:
        """Restack the entry that followed a merged entry whose branch is gone."""
        self.github.ensure_available()
        record = self.github.get_pull_request(merged_number)
        if record.state != 'merged':
            raise StackError(f"PR #{merged_number} is {record.state}, only merged PRs can be rebased on")

        # Resolve before sync, the fetch prunes the remote-tracking ref
        try:
            old_tip = self.git.resolve_ref(self.git.remote_ref(record.head))
        except GitError as e:
            raise StackError(
                f"Cannot find the last commit of {record.head}. "
                f"Hint: the branch was already pruned locally, run 'git rebase --onto "
                f"{self.git.remote_ref(self.trunk)} <old-tip>' on the dependent branch.") from e

        previous = self.synchronizer.load_previous().numbers_to_branches()
        numbers = [n for n, _ in previous]
        follower_number = None
        if merged_number in numbers:
            position = numbers.index(merged_number)
            if position + 1 < len(numbers):
                follower_number = numbers[position + 1]

        state = self.sync()
        follower = next((e for e in state.entries if e.number == follower_number), None)
        if follower is None:
            logger.info(f"Nothing depends on PR #{merged_number}, nothing to rebase")
            return state

        self._restack([follower], old_tip, follower.base)
        return self.sync()

    def publish_entry(self, number: Optional[int] = None) -> int:
        """Mark a draft PR ready for review. Returns its number."""
        self.github.ensure_available()
        state = self.sync()
        if number is None:
            number = self._top_entry_number(state)
        elif all(e.number != number for e in state.entries):
            logger.warning(f"PR #{number} is not tracked in the current stack, publishing anyway")
        self.github.publish_pull_request(number)
        logger.info(f"Published PR #{number}")
        return number
