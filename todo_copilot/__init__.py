"""
Todo Copilot backend package.

Domain model (Todo aggregate with subtasks, tags and description), a
repository contract with in-memory, local-storage, SQLite and remote-API
backends, an application service, and the FastAPI app in `todo_copilot.main`.
"""

__version__ = "0.2.0"
