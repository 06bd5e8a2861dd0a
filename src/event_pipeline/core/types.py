"""Core type definitions."""
from enum import Enum


class AuthMethod(str, Enum):
    """Supported authentication methods."""
    # BASIC: username + password
    # TOKEN: username + API token ("user/token:token")
    # OAUTH: bearer access token
    BASIC = "basic"
    TOKEN = "token"
    OAUTH = "oauth"


class RetryDecision(str, Enum):
    """Outcome of classifying a failed request."""
    RETRY = "retry"                # Transient, try again after backoff
    FATAL = "fatal"                # Caller misconfiguration, stop now
    BENIGN_EMPTY = "benign_empty"  # Looks like an error, means "no more records"


class PaginationType(str, Enum):
    """Supported pagination types."""
    PAGE_NUMBER = "page_number"  # e.g., ?page=1&per_page=100
    NEXT_LINK = "next_link"      # Absolute next page URL embedded in the body


class Target(str, Enum):
    """Resources fetched by the user events extractor and their JSON keys."""
    ORGANIZATIONS = "organizations"
    USERS = "users"
    USER_EVENTS = "data"


__all__ = [
    'AuthMethod',
    'RetryDecision',
    'PaginationType',
    'Target'
]
