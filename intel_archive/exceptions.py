"""Error taxonomy for ingestion and the archive store."""

import re


class IntelArchiveError(Exception):
    """Base class for all application errors."""


class FetchFailure(IntelArchiveError):
    """A source could not be reached (network, proxy or bot protection)."""


class ExtractionFailure(IntelArchiveError):
    """The extraction collaborator raised or returned unusable data."""


class RateLimited(ExtractionFailure):
    """The extraction collaborator signalled HTTP 429 or an exhausted quota."""


class CrowdAnalysisFailure(ExtractionFailure):
    """Crowd media analysis failed."""


class PersistenceFailure(IntelArchiveError):
    """The archive could not be written to (or read from) its storage backend."""


class StoreBusy(IntelArchiveError):
    """Another batch holds the archive store and the wait timed out."""


# Provider messages that signal throttling; a bare "429" elsewhere in the text
# (an id, a URL) does not count
RATE_LIMIT_TOKENS = (
    "too many requests",
    "resource_exhausted",
    "rate limit",
    "quota exceeded",
    "exceeded your current quota",
)
_LEADING_429 = re.compile(r"^\s*(error\s*)?429\b")


def is_rate_limit_error(error: BaseException | None) -> bool:
    """Detect a rate-limit / quota signal on an arbitrary collaborator exception."""
    if error is None:
        return False
    if isinstance(error, RateLimited):
        return True

    for attr in ("status", "status_code", "code"):
        if str(getattr(error, attr, "")) == "429":
            return True

    message = str(error).lower()
    return bool(_LEADING_429.match(message)) or any(token in message for token in RATE_LIMIT_TOKENS)
