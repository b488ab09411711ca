"""
Error taxonomy shared by the backend adapters and services.
"""


class StorageError(Exception):
    """A vector or key/value backend is unreachable or rejected a write."""
    pass


class ParseError(Exception):
    """Malformed metadata, model output or timestamp. Always recovered locally."""
    pass


class ModelError(Exception):
    """A completion or embedding call failed."""
    pass
