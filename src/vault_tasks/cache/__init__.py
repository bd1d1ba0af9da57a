from .task_cache import TaskCache

__all__ = ["TaskCache"]
