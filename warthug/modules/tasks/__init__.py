"""Tasks Module: task listing, completion and history."""

from warthug.modules.tasks.service import TaskService, task_to_dict

__all__ = ["TaskService", "task_to_dict"]
