"""Git interfaces and implementation."""

import os
import shlex
import logging
from typing import List, Optional
import git
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from ..config.models import RungsConfig
from ..errors import GitError, RebaseConflictError
from ..typing import Commit, GitInterface, GitStatus, SyncStatus

# Get module logger
logger = logging.getLogger(__name__)

# Unit separator between fields of one log line; never appears in subjects
FIELD_SEP = "\x1f"
LOG_FORMAT = "--pretty=format:%H%x1f%s%x1f%an%x1f%ad"
SQUASH_SUFFIX_SEP = " (#"

def parse_commit_log(commit_log: str) -> List[Commit]:
    """Parse `git log` output produced with LOG_FORMAT. Order is kept (newest first)."""
    commits: List[Commit] = []
    for line in commit_log.splitlines():
        if not line.strip():
            continue
        parts = line.split(FIELD_SEP)
        # Missing trailing fields are tolerated, extra separators are not expected
        parts += [""] * (4 - len(parts))
        commit_hash, message, author, date = parts[:4]
        commits.append(Commit.from_strings(commit_hash.strip(), message, author, date))
    return commits

def normalize_subject(subject: str) -> str:
    """Strip the ' (#123)' suffix GitHub appends to squash-merge subjects."""
    subject = subject.strip()
    idx = subject.rfind(SQUASH_SUFFIX_SEP)
    if idx > 0 and subject.endswith(")") and subject[idx + len(SQUASH_SUFFIX_SEP):-1].isdigit():
        return subject[:idx]
    return subject

class RealGit:
    """Real Git implementation backed by GitPython."""
    def __init__(self, config: RungsConfig, repo_path: Optional[str] = None):
        """Initialize with config."""
        self.config: RungsConfig = config
        self.repo_path = repo_path

    def run_cmd(self, command: str) -> str:
        """Run git command."""
        cmd_str = command.strip()
        logger.debug(f"> git {cmd_str}")
        try:
            repo = git.Repo(self.repo_path or os.getcwd(), search_parent_directories=True)
            cmd_parts = shlex.split(cmd_str)
            git_command = cmd_parts[0]
            git_args = cmd_parts[1:]
            method = getattr(repo.git, git_command.replace('-', '_'))
            result = method(*git_args)
            return result if isinstance(result, str) else str(result)
        except GitCommandError as e:
            stderr = (e.stderr or "").strip()
            raise GitError(f"git {cmd_str} failed: {stderr or e}") from e
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise GitError("Not in a git repository. Run 'git init' to initialize a repository.") from e

    def must_git(self, command: str) -> str:
        """Run git command, failing on error."""
        return self.run_cmd(command)

class StackGit:
    """Commit source for the stack: history queries and branch mutations.

    Remote refs are addressed as `<remote>/<branch>`; everything else is a
    plain ref name understood by git.
    """
    def __init__(self, config: RungsConfig, git_cmd: GitInterface):
        self.config = config
        self.git_cmd = git_cmd

    @property
    def remote(self) -> str:
        return self.config.repo.github_remote

    def remote_ref(self, branch: str) -> str:
        return f"{self.remote}/{branch}"

    def git_dir(self) -> str:
        """Absolute path of the .git directory."""
        return self.git_cmd.must_git("rev-parse --absolute-git-dir").strip()

    def current_branch(self) -> str:
        return self.git_cmd.must_git("rev-parse --abbrev-ref HEAD").strip()

    def ref_exists(self, ref: str) -> bool:
        try:
            self.git_cmd.must_git(f"rev-parse --verify --quiet {ref}^{{commit}}")
            return True
        except GitError:
            return False

    def remote_branch_exists(self, branch: str) -> bool:
        """Whether the last fetch saw the branch upstream."""
        return self.ref_exists(f"refs/remotes/{self.remote}/{branch}")

    def branch_exists(self, branch: str) -> bool:
        """Whether the branch exists locally or upstream."""
        return self.ref_exists(f"refs/heads/{branch}") or self.remote_branch_exists(branch)

    def resolve_ref(self, ref: str) -> str:
        return self.git_cmd.must_git(f"rev-parse --verify {ref}^{{commit}}").strip()

    def root_commit(self) -> str:
        output = self.git_cmd.must_git("rev-list --max-parents=0 HEAD").strip()
        return output.splitlines()[0]

    def _count(self, range_spec: str) -> int:
        output = self.git_cmd.must_git(f"rev-list --count {range_spec}").strip()
        return int(output or 0)

    def get_status(self) -> GitStatus:
        """Current branch, cleanliness and ahead/behind counts against upstream."""
        current = self.current_branch()
        porcelain = self.git_cmd.must_git("status --porcelain")
        status = GitStatus(current_branch=current, is_clean=porcelain.strip() == "")
        upstream = self.remote_ref(current)
        if self.ref_exists(upstream):
            status.behind = self._count(f"HEAD..{upstream}")
            status.ahead = self._count(f"{upstream}..HEAD")
        else:
            logger.debug(f"No upstream {upstream}, ahead/behind left at 0")
        return status

    def get_sync_status(self, branch: str) -> SyncStatus:
        """Compare local `branch` with its upstream."""
        upstream = self.remote_ref(branch)
        if not self.ref_exists(upstream):
            return SyncStatus('clean')
        ahead = self._count(f"{upstream}..{branch}")
        behind = self._count(f"{branch}..{upstream}")
        if ahead and behind:
            return SyncStatus('diverged', ahead, behind)
        if ahead:
            return SyncStatus('ahead', ahead, 0)
        if behind:
            return SyncStatus('behind', 0, behind)
        return SyncStatus('clean')

    def detect_duplicate_commits(self, branch: str, depth: int = 100) -> List[str]:
        """Subjects of local-only commits that already landed upstream.

        Squash merges rewrite hashes, so a local commit whose subject matches a
        recent upstream subject (ignoring the ' (#N)' suffix) is a leftover.
        """
        upstream = self.remote_ref(branch)
        if not self.ref_exists(upstream):
            return []
        local_only = parse_commit_log(self.git_cmd.must_git(f"log {upstream}..{branch} {LOG_FORMAT}"))
        if not local_only:
            return []
        upstream_log = parse_commit_log(self.git_cmd.must_git(f"log -n {depth} {upstream} {LOG_FORMAT}"))
        landed = {normalize_subject(c.message) for c in upstream_log}
        return [c.message for c in local_only if normalize_subject(c.message) in landed]

    def commits_since(self, ref: str) -> List[Commit]:
        """Commits reachable from HEAD but not from `ref`, newest first."""
        return parse_commit_log(self.git_cmd.must_git(f"log {ref}..HEAD {LOG_FORMAT}"))

    def _branch_ref(self, branch: str) -> str:
        """Prefer the remote-tracking ref, fall back to the local branch."""
        remote = f"refs/remotes/{self.remote}/{branch}"
        if self.ref_exists(remote):
            return remote
        local = f"refs/heads/{branch}"
        if self.ref_exists(local):
            return local
        raise GitError(f"Branch {branch} not found locally or on {self.remote}")

    def commits_between(self, base: str, head: str) -> List[Commit]:
        """Commits on branch `head` not reachable from branch `base`, newest first."""
        base_ref = self._branch_ref(base)
        head_ref = self._branch_ref(head)
        return parse_commit_log(self.git_cmd.must_git(f"log {base_ref}..{head_ref} {LOG_FORMAT}"))

    def fetch(self, prune: bool = True) -> None:
        cmd = f"fetch {self.remote}"
        if prune:
            cmd += " --prune"
        self.git_cmd.must_git(cmd)

    def fetch_branch(self, branch: str) -> None:
        self.git_cmd.must_git(f"fetch {self.remote} {branch}")

    def remote_url(self) -> str:
        return self.git_cmd.must_git(f"remote get-url {self.remote}").strip()

    def create_branch(self, branch: str, start_point: Optional[str] = None) -> None:
        cmd = f"checkout -b {branch}"
        if start_point:
            cmd += f" {start_point}"
        self.git_cmd.must_git(cmd)

    def checkout(self, branch: str) -> None:
        self.git_cmd.must_git(f"checkout {branch}")

    def delete_branch(self, branch: str) -> None:
        self.git_cmd.must_git(f"branch -D {branch}")

    def push_branch(self, branch: str, force_with_lease: bool = False) -> None:
        cmd = f"push {self.remote} {branch}"
        if force_with_lease:
            cmd += " --force-with-lease"
        self.git_cmd.must_git(cmd)

    def abort_rebase(self) -> None:
        try:
            self.git_cmd.run_cmd("rebase --abort")
        except GitError as e:
            logger.debug(f"rebase --abort: {e}")

    def rebase_onto(self, branch: str) -> None:
        """Rebase the current branch onto the upstream of `branch`, aborting on conflict."""
        target = self.remote_ref(branch)
        try:
            self.git_cmd.must_git(f"rebase {target}")
        except GitError as e:
            self.abort_rebase()
            raise RebaseConflictError(
                f"Failed to rebase onto {target}. The rebase was aborted; "
                f"resolve conflicts manually with 'git rebase {target}'.") from e

    def rebase_onto_target(self, new_base: str, old_base: str) -> None:
        """`git rebase --onto new_base old_base`, aborting on conflict."""
        try:
            self.git_cmd.must_git(f"rebase --onto {new_base} {old_base}")
        except GitError as e:
            self.abort_rebase()
            raise RebaseConflictError(
                f"Failed to rebase onto {new_base}. The rebase was aborted.") from e

    def pull_latest(self, branch: str) -> None:
        """Bring local `branch` up to date with upstream, staying on the current branch."""
        self.fetch()
        current = self.current_branch()
        if current != branch:
            self.checkout(branch)
        try:
            self.rebase_onto(branch)
        finally:
            if current != branch:
                self.checkout(current)
