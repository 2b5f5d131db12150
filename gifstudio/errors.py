class InvalidRequestError(ValueError):
    """User input that cannot produce a single prompt. Raised before any remote call."""


class SessionBusyError(RuntimeError):
    """A generation is already running for this session."""
