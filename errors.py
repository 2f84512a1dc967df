"""
Typed errors raised by the data-access and auth layers.
"""
from typing import Any, List, Optional


class LMSError(Exception):
    """Base class for errors raised by this application."""


class MalformedDocumentError(LMSError):
    """A stored document does not match the record it is read as."""

    def __init__(self, collection: str, doc_id: Optional[str], errors: List[Any]):
        self.collection = collection
        self.doc_id = doc_id
        self.errors = errors
        super().__init__(f"Malformed document {collection}/{doc_id}: {errors}")


class AuthError(LMSError):
    """Credentials were rejected or an account could not be created."""

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code
        super().__init__(message)
