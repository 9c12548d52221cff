"""
Task subsystem.

Components:
- task_models.py: data structures (Board, Task, TaskStatus, ActorType, TaskPriority)
- task_store.py: SQLite-backed boards/tasks/actor configs with a single writer thread
- visibility.py: bounded create-then-fetch retry (await_visible)
- task_graph.py: pure graph helpers (cycles, integrity, eligibility)
- task_scheduler.py: executor that runs a board's tasks to fixpoint
"""
