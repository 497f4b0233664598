from __future__ import annotations


class DealFinderError(RuntimeError):
    """Base class for errors raised by deal_finder."""


class InvalidRequestError(DealFinderError):
    """A lookup request is missing or has malformed required fields."""


class AuthorizationError(DealFinderError):
    """The caller is not authenticated."""


class ExternalServiceError(DealFinderError):
    """The search collaborator is unavailable or returned an error."""


class FetchError(DealFinderError):
    """A candidate page could not be fetched."""


class ExtractionError(DealFinderError):
    """A fetched page could not be parsed."""


class CacheError(DealFinderError):
    """The deal cache store rejected a read or write."""
