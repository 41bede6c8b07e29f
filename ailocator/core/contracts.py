from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Union

VariableValue = Union[str, int, float]
Variables = Mapping[str, VariableValue]
VariablesSupplier = Callable[[], Variables]
VariablesInput = Union[Variables, VariablesSupplier, None]


class CacheStrategy(str, Enum):
    TEMPLATE = "template"
    RESOLVED = "resolved"
    SMART = "smart"


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass(frozen=True)
class LocatorResult:
    """A resolved selector plus the ranked alternates the backend offered.

    The same instance is handed to callers, the memory layer and the store.
    Metadata is kept as a read-only view of a private copy.
    """
    best: str
    alternates: tuple[str, ...] = ()
    is_template: bool = False
    metadata: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "alternates", tuple(self.alternates))
        if self.metadata is not None:
            object.__setattr__(self, "metadata", MappingProxyType(copy.deepcopy(dict(self.metadata))))

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "best": self.best,
            "alternates": list(self.alternates),
            "isTemplate": self.is_template,
        }
        if self.metadata is not None:
            payload["metadata"] = copy.deepcopy(dict(self.metadata))
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "LocatorResult":
        return cls(
            best=str(payload.get("best") or ""),
            alternates=tuple(str(alt) for alt in payload.get("alternates") or ()),
            is_template=bool(payload.get("isTemplate", False)),
            metadata=payload.get("metadata"),
        )


@dataclass(frozen=True)
class ResolveOptions:
    always_ai: bool = False
    auto_heal: bool = True
    cache_strategy: CacheStrategy = CacheStrategy.SMART
    variables: VariablesInput = None


@dataclass(frozen=True)
class ResolveRequest:
    context: str
    description: str
    options: ResolveOptions = field(default_factory=ResolveOptions)


@dataclass(frozen=True)
class Resolution:
    """What a caller gets back: the concrete selector and the stored artifact."""
    selector: str
    result: LocatorResult
    cache_key: str
    source: str  # "memory" | "store" | "backend"
