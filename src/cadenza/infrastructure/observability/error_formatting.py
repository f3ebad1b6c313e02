"""Human-readable formatting for filesystem errors.

Library trees live on NAS shares, Docker volumes and USB disks - the errno zoo is real.
"""

import errno
from pathlib import Path
from typing import Any

# Hey future me - maps errno codes to friendly messages WITH a hint about what to do.
# Users see "Read-only filesystem (Errno 30)" instead of a bare OSError.
ERRNO_MESSAGES = {
    errno.EACCES: (
        "Permission denied",
        "Check file permissions and the user the service runs as.",
    ),
    errno.EROFS: (
        "Read-only filesystem",
        "The library volume might be mounted read-only.",
    ),
    errno.ENOSPC: (
        "No space left on device",
        "Disk is full! Check available space with 'df -h'.",
    ),
    errno.ENOENT: (
        "File or directory not found",
        "Path does not exist. The file may have been moved by another tool.",
    ),
    errno.EEXIST: (
        "File or directory already exists",
        "Target path already exists. Check for concurrent operations.",
    ),
    errno.ENOTDIR: (
        "Not a directory",
        "A path component is a file. Check the library layout.",
    ),
    errno.EXDEV: (
        "Cross-device link not permitted",
        "Source and destination are on different filesystems; copy+delete is used instead.",
    ),
    errno.EBUSY: (
        "Device or resource busy",
        "File is locked by another process. Check for concurrent access.",
    ),
}


def format_oserror_message(
    e: OSError,
    operation: str,
    path: Path | str | None = None,
    extra_context: dict[str, Any] | None = None,
) -> str:
    """Format OSError with human-readable explanation and hints.

    Args:
        e: The OSError exception
        operation: What was being attempted (e.g., "move track", "write cover")
        path: The file/directory path involved
        extra_context: Additional key/value context

    Returns:
        Formatted error message with errno, description and hint
    """
    error_code = e.errno
    error_name = errno.errorcode.get(error_code, f"UNKNOWN_{error_code}") if error_code else "UNKNOWN"

    if error_code in ERRNO_MESSAGES:
        description, hint = ERRNO_MESSAGES[error_code]
    else:
        description = e.strerror or str(e)
        hint = "Check system logs and file permissions."

    parts = [f"Failed to {operation}"]
    if path:
        parts.append(f"'{path}'")
    parts.append(f": {description} (Errno {error_code} / {error_name})")
    message = " ".join(parts)

    if extra_context:
        context_str = ", ".join(f"{k}={v}" for k, v in extra_context.items())
        message += f" [{context_str}]"

    return f"{message}\nHINT: {hint}"
