"""
Exception types for mplogger.
"""


class MPLoggerError(Exception):
    """Base class for all mplogger errors."""
    pass


class ConnectError(MPLoggerError):
    """Raised when the log server socket cannot be reached."""
    pass


class InitError(ConnectError):
    """Raised by init() when the client cannot be set up."""
    pass


class BindError(MPLoggerError):
    """Raised when the server cannot bind or listen on its socket path."""
    pass


class FrameError(MPLoggerError):
    """Raised when a frame on the wire is malformed or truncated."""
    pass


class IncompleteFrame(FrameError):
    """Raised when a buffer does not yet hold a complete frame."""
    pass
