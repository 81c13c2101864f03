"""Exception hierarchy shared by the channel, the uploader and the runner."""


class BackupError(Exception):
    """
    Base exception class for all backup-related errors.
    """
    pass


class TransportError(BackupError):
    """
    Raised when a request to the webhook endpoint fails at the HTTP level.

    Never escapes MessageChannel: the channel retries until delivery succeeds.
    """
    pass


class ProtocolError(BackupError):
    """
    Raised when the webhook answers with a body that is not a created message.
    """
    pass


class LocalIOError(BackupError):
    """
    Raised when a local operation (disk, process spawn, archive) fails.

    Fatal to the current run. The message is short enough to be shown
    on the head status message.
    """

    def __init__(self, reason: str, detail: str = ""):
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail


class MessageNotSentError(BackupError):
    """
    Raised when editing a message that was never delivered.

    Signals a caller bug and is never caught.
    """
    pass


class ConfigError(BackupError):
    """
    Raised when the configuration file or command line is invalid.
    """
    pass
