"""Error types raised by the scoring and prediction core."""


class PreconditionError(RuntimeError):
    """The caller invoked an operation on inputs it must never pass.

    Scoring an unfinished match is the typical case. These are orchestration
    bugs and are never swallowed.
    """


class ProviderError(Exception):
    """A signal provider failed hard (network or parse error)."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
