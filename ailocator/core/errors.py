from __future__ import annotations


class LocatorError(Exception):
    """Base class for locator resolution errors."""


class MissingInputError(LocatorError, ValueError):
    """A selector candidate was empty and cannot be verified."""


class VerificationFailure(LocatorError):
    """A selector candidate matched no node in the live document."""

    def __init__(self, selector: str) -> None:
        super().__init__(f"Selector did not match any node: {selector}")
        self.selector = selector


class BackendFailure(LocatorError):
    """Transport or parsing failure inside a synthesis backend."""


class ResolutionExhausted(LocatorError):
    """Every backend attempt and every candidate failed verification."""

    def __init__(self, description: str, attempts: int) -> None:
        super().__init__(f'Unable to resolve locator for "{description}" after {attempts} attempts')
        self.description = description
        self.attempts = attempts
