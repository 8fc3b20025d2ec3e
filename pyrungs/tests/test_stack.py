"""Tests for stack operations against in-memory fakes."""

import pytest

from pyrungs.config import Config
from pyrungs.errors import (
    BranchExistsError, MutationError, PreconditionError, RebaseConflictError, StackError, SyncError,
)
from pyrungs.github import GitHubClient
from pyrungs.stack import StackOperations
from pyrungs.state import StateStore
from pyrungs.typing import SyncStatus
from pyrungs.tests.fakes import FakeCommitSource, FakeGithub, build_stack, mark_merged


class TestCreateNextEntry:
    """Tests for pushing unstacked commits as a new PR."""

    def test_two_commits_no_entries(self, operations: StackOperations, commit_source: FakeCommitSource,
                                    fake_github: FakeGithub, store: StateStore) -> None:
        """Test that c1, c2 on trunk become one PR based on trunk holding both commits."""
        c1 = commit_source.commit("Add parser")
        c2 = commit_source.commit("Add lexer")

        entry = operations.create_next_entry()
        assert entry is not None
        assert entry.head == "dev/add-lexer"
        assert entry.base == "main"
        assert [c.hash for c in entry.commits] == [c2, c1]
        assert commit_source.current_branch() == "main"

        pr = fake_github.repository.pulls[entry.number]
        assert pr.title == "Add lexer (+1 more)"
        assert pr.body == "Stack of 2 commits:\n\n- Add lexer\n- Add parser"
        assert pr.draft is True
        assert store.load().branches == ["dev/add-lexer"]

        state = operations.sync()
        assert len(state.entries) == 1
        assert state.unstacked_commits == []
        assert {c.hash for c in state.entries[0].commits} == {c1, c2}

    def test_single_commit_phrasing(self, operations: StackOperations, commit_source: FakeCommitSource,
                                    fake_github: FakeGithub) -> None:
        commit_source.commit("Fix crash on empty input")
        entry = operations.create_next_entry()
        assert entry is not None
        pr = fake_github.repository.pulls[entry.number]
        assert pr.title == "Fix crash on empty input"
        assert pr.body == "Single commit stack:\n\n- Fix crash on empty input"

    def test_stacks_on_previous_tail(self, operations: StackOperations, commit_source: FakeCommitSource,
                                     fake_github: FakeGithub) -> None:
        """Test that a second entry is based on the first entry's head."""
        build_stack(commit_source, fake_github, ["one"])
        commit_source.commit("Add two")

        entry = operations.create_next_entry()
        assert entry is not None
        assert entry.base == "dev/one"
        assert [c.message for c in entry.commits] == ["Add two"]

    def test_auto_publish_creates_ready_pr(self, operations: StackOperations, commit_source: FakeCommitSource,
                                           fake_github: FakeGithub) -> None:
        commit_source.commit("Add thing")
        entry = operations.create_next_entry(auto_publish=True)
        assert entry is not None
        assert fake_github.repository.pulls[entry.number].draft is False

    def test_nothing_to_do(self, operations: StackOperations, commit_source: FakeCommitSource,
                           fake_github: FakeGithub) -> None:
        """Test that no unstacked commits is not an error and creates nothing."""
        build_stack(commit_source, fake_github, ["one"])
        assert operations.create_next_entry() is None
        assert len(fake_github.repository.pulls) == 1

    def test_must_be_on_trunk(self, operations: StackOperations, commit_source: FakeCommitSource) -> None:
        commit_source.create_branch("topic")
        commit_source.commit("work")
        with pytest.raises(PreconditionError, match="Must be on main"):
            operations.create_next_entry()

    def test_dirty_tree(self, operations: StackOperations, commit_source: FakeCommitSource) -> None:
        commit_source.commit("work")
        commit_source.is_clean = False
        with pytest.raises(PreconditionError, match="not clean"):
            operations.create_next_entry()

    def test_missing_token(self, config: Config, commit_source: FakeCommitSource, store: StateStore) -> None:
        """Test that a missing GitHub client is reported before anything runs."""
        operations = StackOperations(config, commit_source, GitHubClient(config, None), store)  # type: ignore[arg-type]
        with pytest.raises(PreconditionError, match="GITHUB_TOKEN"):
            operations.create_next_entry()
        assert commit_source.calls == []

    def test_branch_exists(self, operations: StackOperations, commit_source: FakeCommitSource,
                           fake_github: FakeGithub) -> None:
        commit_source.commit("Add lexer")
        commit_source.refs["origin/dev/add-lexer"] = commit_source.refs["main"]
        with pytest.raises(BranchExistsError, match="dev/add-lexer"):
            operations.create_next_entry()
        assert fake_github.repository.pulls == {}

    def test_pr_creation_failure_returns_to_trunk(self, operations: StackOperations,
                                                  commit_source: FakeCommitSource,
                                                  fake_github: FakeGithub) -> None:
        commit_source.commit("Add lexer")
        fake_github.repository.fail_create = True
        with pytest.raises(MutationError, match="dev/add-lexer"):
            operations.create_next_entry()
        assert commit_source.current_branch() == "main"

    def test_push_failure(self, operations: StackOperations, commit_source: FakeCommitSource) -> None:
        commit_source.commit("Add lexer")
        commit_source.fail_push.add("dev/add-lexer")
        with pytest.raises(MutationError, match="push"):
            operations.create_next_entry()
        assert commit_source.current_branch() == "main"


class TestSyncValidation:
    """Tests for the trunk-vs-upstream check before stacking."""

    def test_ahead_with_squash_leftovers(self, operations: StackOperations,
                                         commit_source: FakeCommitSource) -> None:
        commit_source.commit("Add parser")
        commit_source.sync_status = SyncStatus('ahead', 1, 0)
        commit_source.duplicates = ["Add parser"]
        with pytest.raises(SyncError, match="Add parser"):
            operations.create_next_entry()

    def test_ahead_with_new_work_is_fine(self, operations: StackOperations,
                                         commit_source: FakeCommitSource) -> None:
        commit_source.commit("Add parser")
        commit_source.sync_status = SyncStatus('ahead', 1, 0)
        assert operations.create_next_entry() is not None

    def test_behind_without_auto_rebase(self, operations: StackOperations, config: Config,
                                        commit_source: FakeCommitSource) -> None:
        config.user.auto_rebase = False
        commit_source.commit("Add parser")
        commit_source.sync_status = SyncStatus('behind', 0, 2)
        with pytest.raises(SyncError, match="2 commit"):
            operations.create_next_entry()

    def test_diverged_with_auto_rebase(self, operations: StackOperations, commit_source: FakeCommitSource) -> None:
        commit_source.commit("Add parser")
        commit_source.sync_status = SyncStatus('diverged', 1, 2)
        operations.create_next_entry()
        assert "rebase origin/main" in commit_source.calls

    def test_rebase_conflict_propagates(self, operations: StackOperations,
                                        commit_source: FakeCommitSource) -> None:
        commit_source.commit("Add parser")
        commit_source.sync_status = SyncStatus('behind', 0, 1)

        def conflict(branch: str) -> None:
            raise RebaseConflictError("conflict, rebase aborted")
        commit_source.rebase_onto = conflict  # type: ignore[method-assign]
        with pytest.raises(RebaseConflictError):
            operations.create_next_entry()

    def test_force_skips_check(self, operations: StackOperations, config: Config,
                               commit_source: FakeCommitSource) -> None:
        config.user.auto_rebase = False
        commit_source.commit("Add parser")
        commit_source.sync_status = SyncStatus('diverged', 1, 2)
        assert operations.create_next_entry(force=True) is not None


class TestMergeEntry:
    """Tests for merging entries and restacking dependents."""

    def test_merges_top_by_default(self, operations: StackOperations, commit_source: FakeCommitSource,
                                   fake_github: FakeGithub) -> None:
        e1, e2 = build_stack(commit_source, fake_github, ["one", "two"])
        state = operations.merge_entry()
        assert fake_github.repository.merges == [(e2.number, "squash")]
        assert fake_github.repository.deleted_branches == ["dev/two"]
        assert "pull main" in commit_source.calls
        assert [e.number for e in state.entries] == [e1.number]

    def test_merge_bottom_repoints_and_restacks(self, operations: StackOperations,
                                                commit_source: FakeCommitSource,
                                                fake_github: FakeGithub) -> None:
        """Test that dependents move to trunk before the merge and get rebased after it."""
        e1, e2 = build_stack(commit_source, fake_github, ["one", "two"])
        old_tip = commit_source.refs["origin/dev/one"]

        state = operations.merge_entry(e1.number)
        assert fake_github.repository.base_updates[0] == (e2.number, "main")
        assert f"rebase --onto origin/main {old_tip}" in commit_source.calls
        assert "push dev/two --force-with-lease" in commit_source.calls
        assert commit_source.current_branch() == "main"
        assert [e.number for e in state.entries] == [e2.number]
        assert state.entries[0].base == "main"

    def test_merge_commit_does_not_restack(self, operations: StackOperations, commit_source: FakeCommitSource,
                                           fake_github: FakeGithub) -> None:
        e1, _e2 = build_stack(commit_source, fake_github, ["one", "two"])
        operations.merge_entry(e1.number, method="merge")
        assert not any(c.startswith("rebase --onto") for c in commit_source.calls)
        assert fake_github.repository.merges == [(e1.number, "merge")]

    def test_keep_branch_skips_pre_update(self, operations: StackOperations, commit_source: FakeCommitSource,
                                          fake_github: FakeGithub) -> None:
        e1, e2 = build_stack(commit_source, fake_github, ["one", "two"])
        operations.merge_entry(e1.number, delete_branch=False)
        assert fake_github.repository.deleted_branches == []
        # Re-pointed by the sync after the merge instead
        assert fake_github.repository.base_updates == [(e2.number, "main")]

    def test_restack_failure_is_a_warning(self, operations: StackOperations, commit_source: FakeCommitSource,
                                          fake_github: FakeGithub) -> None:
        e1, _e2 = build_stack(commit_source, fake_github, ["one", "two"])
        commit_source.fail_rebase.add("dev/two")
        operations.merge_entry(e1.number)
        assert "push dev/two --force-with-lease" not in commit_source.calls
        assert commit_source.current_branch() == "main"

    def test_empty_stack(self, operations: StackOperations) -> None:
        with pytest.raises(StackError, match="No PRs"):
            operations.merge_entry()

    def test_rejected_merge(self, operations: StackOperations, commit_source: FakeCommitSource,
                            fake_github: FakeGithub) -> None:
        e1, = build_stack(commit_source, fake_github, ["one"])
        fake_github.repository.fail_merge.add(e1.number)
        with pytest.raises(MutationError, match=f"#{e1.number}"):
            operations.merge_entry()

    def test_rejected_merge_restores_dependents(self, operations: StackOperations,
                                                commit_source: FakeCommitSource,
                                                fake_github: FakeGithub) -> None:
        """Test that a failed merge puts pre-updated dependents back and keeps the chain order."""
        e1, e2 = build_stack(commit_source, fake_github, ["one", "two"])
        operations.sync()
        fake_github.repository.fail_merge.add(e1.number)

        with pytest.raises(MutationError):
            operations.merge_entry(e1.number)
        assert fake_github.repository.base_updates == [(e2.number, "main"), (e2.number, "dev/one")]
        assert e2.base.ref == "dev/one"

        state = operations.sync()
        assert [(e.number, e.base) for e in state.entries] == [(e1.number, "main"), (e2.number, "dev/one")]


class TestManuallyRebase:
    """Tests for restacking after a merge done outside the tool."""

    def test_restacks_follower(self, operations: StackOperations, commit_source: FakeCommitSource,
                               fake_github: FakeGithub) -> None:
        e1, e2 = build_stack(commit_source, fake_github, ["one", "two"])
        operations.sync()
        old_tip = commit_source.refs["origin/dev/one"]
        mark_merged(e1)

        state = operations.manually_rebase(e1.number)
        assert f"rebase --onto origin/main {old_tip}" in commit_source.calls
        assert [e.number for e in state.entries] == [e2.number]
        assert state.entries[0].base == "main"

    def test_requires_merged(self, operations: StackOperations, commit_source: FakeCommitSource,
                             fake_github: FakeGithub) -> None:
        e1, _e2 = build_stack(commit_source, fake_github, ["one", "two"])
        with pytest.raises(StackError, match="only merged"):
            operations.manually_rebase(e1.number)

    def test_unknown_old_tip(self, operations: StackOperations, commit_source: FakeCommitSource,
                             fake_github: FakeGithub) -> None:
        e1, _e2 = build_stack(commit_source, fake_github, ["one", "two"])
        mark_merged(e1)
        del commit_source.refs["origin/dev/one"]
        with pytest.raises(StackError, match="Hint"):
            operations.manually_rebase(e1.number)


class TestPublishAndStatus:
    """Tests for publishing drafts and reporting status."""

    def test_publish_top(self, operations: StackOperations, commit_source: FakeCommitSource,
                         fake_github: FakeGithub) -> None:
        _e1, e2 = build_stack(commit_source, fake_github, ["one", "two"])
        e2.draft = True
        assert operations.publish_entry() == e2.number
        assert e2.draft is False

    def test_publish_untracked_number(self, operations: StackOperations, fake_github: FakeGithub) -> None:
        other = fake_github.repository.add_pull("feature/x", "main", draft=True)
        assert operations.publish_entry(other.number) == other.number
        assert other.draft is False

    def test_publish_already_ready(self, operations: StackOperations, commit_source: FakeCommitSource,
                                   fake_github: FakeGithub) -> None:
        build_stack(commit_source, fake_github, ["one"])
        with pytest.raises(MutationError, match="already published"):
            operations.publish_entry()

    def test_status(self, operations: StackOperations, commit_source: FakeCommitSource,
                    fake_github: FakeGithub) -> None:
        build_stack(commit_source, fake_github, ["one"])
        commit_source.commit("Add two")
        report = operations.get_status()
        assert report.git.current_branch == "main"
        assert [e.head for e in report.stack.entries] == ["dev/one"]
        assert [c.message for c in report.stack.unstacked_commits] == ["Add two"]
