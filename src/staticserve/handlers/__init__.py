"""
File resolution and the send_file pipeline.
"""

from .resolver import FileInfo, resolve_file, resolve_request_path
from .static import FileStream, SendResult, send_file

__all__ = [
    "FileInfo",
    "FileStream",
    "SendResult",
    "resolve_file",
    "resolve_request_path",
    "send_file",
]
