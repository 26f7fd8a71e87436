"""PocketGuard: personal expense tracking backend."""

__version__ = "0.1.0"
