from .task_updater import CLEAR, UNSET, TaskChanges, TaskUpdater, rewrite_line

__all__ = ["CLEAR", "UNSET", "TaskChanges", "TaskUpdater", "rewrite_line"]
