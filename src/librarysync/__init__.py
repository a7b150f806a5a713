"""LibrarySync: mirror remote file-host folders into a local media catalog."""

__version__ = "0.1.0"
