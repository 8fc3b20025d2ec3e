"""Exceptions raised by pyrungs.

Every error carries a single user-facing message; the CLI prints it as is.
"""


class RungsError(Exception):
    """Base class for all pyrungs errors."""


class PreconditionError(RungsError):
    """The repository is not in a state where the operation can run."""


class SyncError(PreconditionError):
    """Local trunk is out of sync with its upstream."""


class GitError(RungsError):
    """A git command failed."""


class MutationError(RungsError):
    """GitHub or the remote rejected a change (create, push, base update, merge)."""


class BranchExistsError(MutationError):
    """The branch name picked for a new entry is already taken."""


class RebaseConflictError(GitError):
    """A rebase hit conflicts. The rebase has already been aborted."""


class StackError(RungsError):
    """The request does not make sense for the current stack."""


class ConfigError(RungsError):
    """Invalid configuration key or value."""
