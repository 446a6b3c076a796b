class CivicLensError(Exception):
    """Base class for errors raised by the report service and its stores."""


class NotFoundError(CivicLensError):
    def __init__(self, kind: str, key):
        super().__init__(f"{kind} {key} not found")
        self.kind = kind
        self.key = key


class InvalidContentError(CivicLensError):
    """Rejected input: empty, oversized or of the wrong type."""


class StoreUnavailableError(CivicLensError):
    """A document or blob store call kept failing after all retries."""
