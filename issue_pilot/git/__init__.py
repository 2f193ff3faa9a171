"""Local git clone handling.

Key Exports:
    WorktreeController: Owns a clone and its commit-session state machine.
"""

from issue_pilot.git.worktree import WorktreeController

__all__ = ["WorktreeController"]
