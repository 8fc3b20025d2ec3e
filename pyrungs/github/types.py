"""Type definitions for GitHub API responses."""

from typing import Optional
from pydantic import BaseModel

from ..typing import PRState

class PRRecord(BaseModel):
    """A pull request as seen through the REST API, decoded at the boundary."""
    number: int
    title: str
    url: str = ""
    head: str
    base: str
    draft: bool = False
    state: PRState = 'open'
    body: Optional[str] = None
    author: Optional[str] = None

def decode_pr_state(state: str, merged: bool) -> PRState:
    """Map REST `state` + `merged` onto open | merged | closed."""
    if merged:
        return 'merged'
    normalized = (state or "").lower()
    if normalized == 'open':
        return 'open'
    if normalized == 'closed':
        return 'closed'
    raise TypeError(f"Unknown pull request state: {state!r}")
