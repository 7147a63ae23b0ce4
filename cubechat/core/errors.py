class MessagingError(Exception):
    """Base class for errors raised by the messaging services."""

    status_code = 500
    retryable = False

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(MessagingError):
    """Referenced user, conversation or message does not exist."""

    status_code = 404


class Blocked(MessagingError):
    """A send was attempted across a block relation."""

    status_code = 403


class Unauthorized(MessagingError):
    """No authenticated identity, or the identity may not act on the resource."""

    status_code = 401


class TransientIO(MessagingError):
    """The backing store could not be reached. Safe to retry."""

    status_code = 503
    retryable = True


class ValidationError(MessagingError):
    """Malformed input: bad username, empty message body, etc."""

    status_code = 422


class AlreadyExists(MessagingError):
    status_code = 409


class NotParticipant(Unauthorized):
    """The acting user is not a member of the conversation."""

    status_code = 403
