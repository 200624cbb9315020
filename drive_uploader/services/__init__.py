"""Services for drive_uploader module."""
from .downloads import DirectoryDownloadSink
from .remote_store import HTTPRemoteStore

__all__ = [
    "DirectoryDownloadSink",
    "HTTPRemoteStore",
]
