from .remote_client import RETRYABLE_STATUSES, RemoteClient
from .remote_models import RemoteEntry, RemoteFileInfo, RemoteSession

__all__ = ["RETRYABLE_STATUSES", "RemoteClient", "RemoteEntry", "RemoteFileInfo", "RemoteSession"]
