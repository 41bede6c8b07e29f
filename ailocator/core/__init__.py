"""Core locator engine: contracts, heuristics, templating, store and the resolution coordinator."""

from ailocator.core.contracts import (
    CacheStrategy,
    LocatorResult,
    Resolution,
    ResolveOptions,
    ResolveRequest,
    TokenUsage,
)
from ailocator.core.errors import (
    BackendFailure,
    LocatorError,
    MissingInputError,
    ResolutionExhausted,
    VerificationFailure,
)

__all__ = [
    "BackendFailure",
    "CacheStrategy",
    "LocatorError",
    "LocatorResult",
    "MissingInputError",
    "Resolution",
    "ResolutionExhausted",
    "ResolveOptions",
    "ResolveRequest",
    "TokenUsage",
    "VerificationFailure",
]
