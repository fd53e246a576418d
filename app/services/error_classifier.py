"""Classification of raw platform/vendor errors into actionable messages.

Raw error strings from social platforms are matched case-insensitively against
known patterns. A match rewrites the message into something the user can act
on and keeps the tail of the original text for diagnostics:

    "Facebook rate limit reached. Wait an hour and publish again.
     (details: ...Application request limit reached)"

Unrecognized errors pass through verbatim. publish_service applies
classify_error() at every failure exit, not only the final publish step.
"""

import enum
import re
from dataclasses import dataclass

from app.models import Platform

EXCERPT_LENGTH = 120


class ErrorCategory(str, enum.Enum):
    RATE_LIMITED = "rate_limited"
    TOKEN_EXPIRED = "token_expired"
    MISSING_PERMISSION = "missing_permission"
    SPAM_RESTRICTED = "spam_restricted"
    DUPLICATE_CONTENT = "duplicate_content"
    COPYRIGHT = "copyright"
    UPLOAD_FAILED = "upload_failed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ClassifiedError:
    category: ErrorCategory
    message: str


# Checked in order; the first matching category wins
_PATTERNS: list[tuple[ErrorCategory, re.Pattern[str], str]] = [
    (
        ErrorCategory.RATE_LIMITED,
        re.compile(
            r"request limit reached|rate limit|too many (requests|calls)|quota ?exceeded"
            r"|resource has been exhausted"
            r"|\(#4\)|\(#17\)|\(#32\)|\(#613\)|error code 429",
            re.IGNORECASE,
        ),
        "{platform} rate limit reached. Wait an hour and publish again.",
    ),
    (
        ErrorCategory.TOKEN_EXPIRED,
        re.compile(
            r"session has expired|access token|token has (been )?expired|expired or revoked"
            r"|invalid (oauth|authentication|credentials)|error validating|\(#190\)|unauthorized",
            re.IGNORECASE,
        ),
        "{platform} connection expired. Reconnect the account in settings and try again.",
    ),
    (
        ErrorCategory.MISSING_PERMISSION,
        re.compile(
            r"permission|not authorized|insufficient (scope|privileges)|\(#10\)|\(#200\)|forbidden",
            re.IGNORECASE,
        ),
        "{platform} account is missing a required permission. "
        "Reconnect it and grant all requested permissions.",
    ),
    (
        ErrorCategory.SPAM_RESTRICTED,
        re.compile(
            r"spam|restricted|temporarily blocked|action (is )?blocked|community standards"
            r"|\(#368\)",
            re.IGNORECASE,
        ),
        "{platform} flagged this post or account as restricted. "
        "Wait before posting again and review the account status.",
    ),
    (
        ErrorCategory.DUPLICATE_CONTENT,
        re.compile(r"duplicate|already (been )?(posted|uploaded|published)", re.IGNORECASE),
        "{platform} rejected this as duplicate content. Regenerate or edit the video first.",
    ),
    (
        ErrorCategory.COPYRIGHT,
        re.compile(r"copyright|intellectual property|content id|rights holder", re.IGNORECASE),
        "{platform} reported a copyright claim. Change the music or visuals and try again.",
    ),
    (
        ErrorCategory.UPLOAD_FAILED,
        re.compile(
            r"upload failed|failed to (start|finish) upload|processing (failed|timed out)"
            r"|container processing|media (container|upload)|invalid video|file size",
            re.IGNORECASE,
        ),
        "{platform} could not process the video upload. Try publishing again.",
    ),
]


def _excerpt(raw: str) -> str:
    raw = raw.strip()
    if len(raw) <= EXCERPT_LENGTH:
        return raw
    return "..." + raw[-EXCERPT_LENGTH:]


def _platform_label(platform: Platform | str | None) -> str:
    if platform is None:
        return "Platform"
    value = platform.value if isinstance(platform, Platform) else str(platform)
    return {"YOUTUBE": "YouTube", "INSTAGRAM": "Instagram", "FACEBOOK": "Facebook"}.get(
        value.upper(), value.capitalize() if value.isupper() else value
    )


def classify_error(raw: str, platform: Platform | str | None = None) -> ClassifiedError:
    """Classify a raw error string.

    Args:
        raw: Error text as returned by the platform or HTTP layer.
        platform: Platform the error came from (used in the message).

    Returns:
        ClassifiedError whose message is the actionable rewrite plus
        " (details: <excerpt>)", or the raw text for unknown errors.

    Example:
        >>> classify_error("(#4) Application request limit reached", Platform.FACEBOOK).category
        <ErrorCategory.RATE_LIMITED: 'rate_limited'>
    """
    for category, pattern, template in _PATTERNS:
        if pattern.search(raw):
            message = template.format(platform=_platform_label(platform))
            return ClassifiedError(category, f"{message} (details: {_excerpt(raw)})")
    return ClassifiedError(ErrorCategory.UNKNOWN, raw)


def classify_message(raw: str, platform: Platform | str | None = None) -> str:
    return classify_error(raw, platform).message
