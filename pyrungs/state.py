"""On-disk cache of the last computed chain."""

import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, Field, ValidationError

from .typing import StackEntry

logger = logging.getLogger(__name__)

STATE_DIR = "rungs"
STATE_FILE = "state.json"

class PersistedState(BaseModel):
    """Index-aligned branch names and PR numbers, serialized with camelCase keys."""
    last_processed_commit: Optional[str] = Field(default=None, alias="lastProcessedCommit")
    branches: List[str] = Field(default_factory=list)
    pull_requests: List[int] = Field(default_factory=list, alias="pullRequests")
    last_branch: Optional[str] = Field(default=None, alias="lastBranch")

    class Config:
        """Pydantic config."""
        populate_by_name = True
        extra = "ignore"

    def numbers_to_branches(self) -> List[Tuple[int, str]]:
        """(number, branch) pairs in chain order. Misaligned tails are dropped."""
        return list(zip(self.pull_requests, self.branches))

    def to_json(self) -> str:
        return json.dumps(self.model_dump(by_alias=True, exclude_none=True), indent=2)

def state_from_chain(entries: List[StackEntry]) -> PersistedState:
    """Build the cache from a freshly computed chain; never patched incrementally."""
    last_processed = None
    if entries and entries[-1].commits:
        last_processed = str(entries[-1].commits[0].hash)
    return PersistedState(
        last_processed_commit=last_processed,
        branches=[e.head for e in entries],
        pull_requests=[e.number for e in entries],
        last_branch=entries[-1].head if entries else None,
    )

class StateStore:
    """Reads and writes PersistedState as JSON at a fixed path."""
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    @classmethod
    def for_git_dir(cls, git_dir: str) -> 'StateStore':
        return cls(Path(git_dir) / STATE_DIR / STATE_FILE)

    def load(self) -> PersistedState:
        """Read the cache. Missing or unreadable files count as empty."""
        try:
            raw = self.path.read_text()
        except FileNotFoundError:
            return PersistedState()
        except OSError as e:
            logger.warning(f"Could not read state file {self.path}: {e}")
            return PersistedState()
        try:
            return PersistedState.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.warning(f"Ignoring corrupt state file {self.path}: {e}")
            return PersistedState()

    def save(self, state: PersistedState) -> bool:
        """Write the cache when it differs from what is on disk. Returns True if written."""
        if self.path.exists() and self.load() == state:
            logger.debug(f"State unchanged at {self.path}")
            return False
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(state.to_json() + "\n")
        logger.debug(f"Wrote state to {self.path}: {state.pull_requests}")
        return True
