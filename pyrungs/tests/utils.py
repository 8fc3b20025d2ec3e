"""Shared utilities for pyrungs tests."""
import os
import subprocess
from pathlib import Path
from typing import Dict, Tuple
import logging

logger = logging.getLogger(__name__)

def run_git(cwd: Path, *args: str) -> str:
    """Run git in cwd with a fixed identity and return stdout."""
    env: Dict[str, str] = dict(os.environ)
    env.update({
        "GIT_AUTHOR_NAME": "Test User",
        "GIT_AUTHOR_EMAIL": "test@example.com",
        "GIT_COMMITTER_NAME": "Test User",
        "GIT_COMMITTER_EMAIL": "test@example.com",
        "GIT_CONFIG_NOSYSTEM": "1",
        "HOME": str(cwd),
    })
    logger.debug(f"Running git {' '.join(args)} in {cwd}")
    result = subprocess.run(["git", *args], cwd=cwd, env=env, check=True,
                            capture_output=True, text=True)
    return result.stdout.strip()

def commit_file(work: Path, name: str, message: str) -> None:
    (work / name).write_text(f"{name}\n")
    run_git(work, "add", name)
    run_git(work, "commit", "-m", message)

def make_repos(root: Path) -> Tuple[Path, Path]:
    """A bare 'origin' and a clone of it with one pushed commit on main."""
    origin = root / "origin.git"
    work = root / "work"
    origin.mkdir()
    run_git(origin, "init", "--bare", "--initial-branch=main")
    run_git(root, "clone", str(origin), str(work))
    run_git(work, "symbolic-ref", "HEAD", "refs/heads/main")
    commit_file(work, "README.md", "Initial commit")
    run_git(work, "push", "-u", "origin", "main")
    return origin, work
