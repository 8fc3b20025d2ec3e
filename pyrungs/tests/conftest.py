"""Shared fixtures."""

from pathlib import Path
from typing import Tuple

import pytest

from pyrungs.config import Config
from pyrungs.github import GitHubClient
from pyrungs.state import StateStore
from pyrungs.sync import StackSynchronizer
from pyrungs.stack import StackOperations
from pyrungs.tests.fakes import FakeCommitSource, FakeGithub
from pyrungs.tests.utils import make_repos

@pytest.fixture
def config() -> Config:
    return Config({
        'repo': {
            'github_remote': 'origin',
            'default_branch': 'main',
            'github_repo_owner': 'testowner',
            'github_repo_name': 'testrepo',
        },
        'user': {'user_prefix': 'dev'},
        'tool': {},
    })

@pytest.fixture
def fake_github() -> FakeGithub:
    return FakeGithub()

@pytest.fixture
def github(config: Config, fake_github: FakeGithub) -> GitHubClient:
    return GitHubClient(config, fake_github)

@pytest.fixture
def commit_source() -> FakeCommitSource:
    return FakeCommitSource()

@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "rungs" / "state.json")

@pytest.fixture
def synchronizer(config: Config, commit_source: FakeCommitSource, github: GitHubClient,
                 store: StateStore) -> StackSynchronizer:
    return StackSynchronizer(config, commit_source, github, store)  # type: ignore[arg-type]

@pytest.fixture
def operations(config: Config, commit_source: FakeCommitSource, github: GitHubClient,
               store: StateStore) -> StackOperations:
    return StackOperations(config, commit_source, github, store)  # type: ignore[arg-type]

@pytest.fixture
def git_repos(tmp_path: Path) -> Tuple[Path, Path]:
    """A bare 'origin' and a clone of it with one pushed commit on main."""
    return make_repos(tmp_path)
