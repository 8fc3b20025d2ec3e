"""Branch naming for new stack entries."""

import re
import time
from datetime import datetime, timezone
from typing import List, Optional

from .errors import ConfigError
from .typing import Commit

# GitHub refuses longer head refs when opening a pull request
MAX_BRANCH_LENGTH = 63
MAX_SLUG_LENGTH = 50

def timestamp_slug(now: Optional[datetime] = None) -> str:
    """UTC time as YYYY-MM-DDTHH-MM-SS."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")

def slugify(message: str, max_length: int = MAX_SLUG_LENGTH) -> str:
    """Lowercase, keep [a-z0-9 -], hyphenate whitespace, collapse and trim hyphens."""
    slug = re.sub(r'[^a-z0-9\s-]', '', message.lower())
    slug = re.sub(r'\s+', '-', slug)
    slug = re.sub(r'-+', '-', slug).strip('-')
    return slug[:max_length].strip('-')

def generate_branch_name(commits: List[Commit], prefix: str, strategy: str,
                         now: Optional[datetime] = None) -> str:
    """Name the branch for a new entry.

    Args:
        commits: Unstacked commits, newest first (git log order)
        prefix: User prefix, e.g. 'dev'
        strategy: 'commit-message', 'sequential' or 'timestamp'
        now: Clock override for tests
    """
    if strategy not in ('commit-message', 'sequential', 'timestamp'):
        raise ConfigError(f"Unknown branch naming strategy '{strategy}'. "
                          "Use commit-message, sequential or timestamp.")

    if not commits:
        return f"{prefix}/empty-{timestamp_slug(now)}"

    if strategy == 'timestamp':
        return f"{prefix}/{timestamp_slug(now)}"

    if strategy == 'sequential':
        millis = int(now.timestamp() * 1000) if now else int(time.time() * 1000)
        return f"{prefix}/stack-{millis}"

    slug_length = max(1, min(MAX_SLUG_LENGTH, MAX_BRANCH_LENGTH - len(prefix) - 1))
    slug = slugify(commits[0].message, slug_length)
    if not slug:
        slug = f"commit-{commits[0].short_hash}"
    return f"{prefix}/{slug}"
