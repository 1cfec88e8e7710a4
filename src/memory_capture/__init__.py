"""Memory capture hook.

Watches file-mutation tool calls, pulls high-signal fragments out of memory
notes, and persists them as learnings in the encrypted memory store.
"""

__version__ = "0.1.0"
