"""feedsync - RSS/Atom to Markdown synchronization daemon."""

__version__ = "0.1.0"
