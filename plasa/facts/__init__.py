from .base import AnchorUnavailable, FactNotFound, FactSource, FactSourceError, account_field
from .http_source import HttpFactSource
from .memory_source import InMemoryFactSource

__all__ = [
    "AnchorUnavailable",
    "FactNotFound",
    "FactSource",
    "FactSourceError",
    "HttpFactSource",
    "InMemoryFactSource",
    "account_field",
]
