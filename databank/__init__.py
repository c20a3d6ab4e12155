"""
DataBank — Multi-tenant document repository core.

Folders hold files; administrators manage the hierarchy and decide which
users see which folders. Everything a web layer needs hangs off
``databank.runtime.DataBank``.
"""

__version__ = "1.0.0"
__all__ = ["engine", "db", "documents", "platform_rules", "dashboard", "runtime", "cli"]
