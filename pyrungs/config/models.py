"""Pydantic models for config types."""

from typing import Optional
from pydantic import BaseModel, Field

from ..typing import BranchNaming, MergeMethod

class RepoConfig(BaseModel):
    """Repository configuration."""
    github_remote: str = "origin"
    default_branch: str = "main"
    github_host: str = "github.com"
    github_repo_owner: Optional[str] = None
    github_repo_name: Optional[str] = None

    class Config:
        """Pydantic config."""
        extra = "allow"  # Allow extra fields for forward compatibility

class UserConfig(BaseModel):
    """User configuration."""
    user_prefix: str = "dev"
    draft_prs: bool = True
    auto_rebase: bool = True
    branch_naming: BranchNaming = "commit-message"
    merge_method: MergeMethod = "squash"
    delete_branch: bool = True

    class Config:
        """Pydantic config."""
        extra = "allow"

class ToolConfig(BaseModel):
    """Tool configuration."""
    state_file: Optional[str] = None  # Defaults to <git-dir>/rungs/state.json

    class Config:
        """Pydantic config."""
        extra = "allow"

class RungsConfig(BaseModel):
    """Full pyrungs configuration."""
    repo: RepoConfig = Field(default_factory=RepoConfig)
    user: UserConfig = Field(default_factory=UserConfig)
    tool: ToolConfig = Field(default_factory=ToolConfig)

    class Config:
        """Pydantic config."""
        extra = "allow"
