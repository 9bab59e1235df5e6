# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

import re

MAX_ERROR_LENGTH = 500

_HTML_TAG = re.compile(r"<[^>]*>")
_DANGEROUS_CHARS = re.compile(r"[<>'\"]")
_STACK_FRAME = re.compile(r"^\s*(at\s|File \"|Traceback \(most recent call last\)).*$", re.MULTILINE)
# URLs such as http://host/a/b are left alone
_FS_PATH = re.compile(r"(?<![\w:/.])(?:[A-Za-z]:\\|/)[\w.\-]+(?:[\\/][\w.\-]+)*")


class SocialFlowError(Exception):
    """Base class for every error raised by this package."""


class ApiError(SocialFlowError):
    """The webhook answered, but reported a failure."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NetworkError(ApiError):
    """No response was received from the webhook."""


class ValidationError(SocialFlowError, ValueError):
    """A slug or id was rejected before any request was made."""


def sanitize_error_message(msg) -> str:
    """Make a server or exception message safe to show to an operator.

    Strips HTML, quote characters, stack frames and filesystem paths, then
    caps the length.
    """
    if not isinstance(msg, str):
        return "Unknown error"
    msg = _STACK_FRAME.sub("", msg)
    msg = _HTML_TAG.sub("", msg)
    msg = _FS_PATH.sub("[path]", msg)
    msg = _DANGEROUS_CHARS.sub("", msg)
    msg = re.sub(r"\n\s*\n+", "\n", msg).strip()
    return msg[:MAX_ERROR_LENGTH] or "Unknown error"
