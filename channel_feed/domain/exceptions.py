"""Custom exception hierarchy for the channel feed service.

Following error taxonomy: retryable, non-retryable, validation.
"""


class ChannelFeedError(Exception):
    """Base exception for all application errors."""

    pass


class RetryableError(ChannelFeedError):
    """Errors that can be retried (network issues, temporary failures)."""

    pass


class NonRetryableError(ChannelFeedError):
    """Errors that should not be retried (validation, auth, logic errors)."""

    pass


class ValidationError(NonRetryableError):
    """Client input validation errors (channel, cursor, limit)."""

    pass


class TelegramAPIError(RetryableError):
    """Telegram Bot API communication errors."""

    pass


class RepositoryError(RetryableError):
    """Database/storage errors."""

    pass
