"""Pytest configuration and shared fixtures."""

from pathlib import Path

import git
import pytest
import pytest_asyncio
from git import Actor

from issue_pilot.config.settings import RepositoryConfig
from issue_pilot.git.worktree import WorktreeController
from issue_pilot.models.domain import Comment, Issue

SEED_AUTHOR = Actor("Seed Author", "seed@example.com")
BOT_NAME = "pilot-bot"
BOT_EMAIL = "pilot-bot@example.com"


@pytest.fixture
def sample_issue() -> Issue:
    """Sample issue asking for a readme change."""
    return Issue(
        number=42,
        subject="Update readme",
        body="Make the readme say hi\n---\nfiles: README.md",
        url="https://github.com/acme/widgets/issues/42",
        author="alice",
        labels=["pilot"],
    )


@pytest.fixture
def sample_comment() -> Comment:
    """Sample review comment on the feature branch."""
    return Comment(
        id=101,
        change_request_id=7,
        author="alice",
        body="Please print something else",
        file_path="app.py",
        diff_hunk="@@ -0,0 +1 @@\n+print('feature')",
        url="https://github.com/acme/widgets/pull/7#discussion_r101",
        branch="feature",
        thread_id=100,
    )


@pytest.fixture
def repo_config(tmp_path: Path) -> RepositoryConfig:
    """Repository configuration with one required label."""
    return RepositoryConfig(
        owner="acme",
        name="widgets",
        local_path=str(tmp_path / "clone"),
        users_to_listen_to=["alice"],
        required_issue_labels=["pilot"],
    )


@pytest.fixture
def git_remote(tmp_path: Path) -> Path:
    """Bare repository acting as the hosting server's remote.

    ``main`` holds README.md; ``feature`` additionally holds app.py.
    """
    remote_path = tmp_path / "remote.git"
    remote = git.Repo.init(str(remote_path), bare=True)
    remote.git.symbolic_ref("HEAD", "refs/heads/main")

    seed_path = tmp_path / "seed"
    seed = git.Repo.init(str(seed_path))
    (seed_path / "README.md").write_text("# Old\n")
    seed.index.add(["README.md"])
    seed.index.commit("Initial commit", author=SEED_AUTHOR, committer=SEED_AUTHOR)
    seed.create_remote("origin", str(remote_path))
    seed.git.push("origin", "HEAD:refs/heads/main")

    (seed_path / "app.py").write_text("print('feature')\n")
    seed.index.add(["app.py"])
    seed.index.commit("Add app", author=SEED_AUTHOR, committer=SEED_AUTHOR)
    seed.git.push("origin", "HEAD:refs/heads/feature")

    return remote_path


@pytest_asyncio.fixture
async def worktree(git_remote: Path, tmp_path: Path) -> WorktreeController:
    """WorktreeController over a fresh clone of ``git_remote``."""
    return await WorktreeController.clone(str(git_remote), tmp_path / "clone", BOT_NAME, BOT_EMAIL)


def remote_show(remote_path: Path, ref: str, path: str) -> str:
    """Contents of ``path`` at ``ref`` in the bare remote."""
    return git.Repo(str(remote_path)).git.show(f"{ref}:{path}")
