from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Union


class GenerationKind(str, Enum):
    CHARACTER_PORTRAIT = "character_portrait"
    CHARACTER_SKETCH = "character_sketch"
    PAGE_ILLUSTRATION = "page_illustration"
    PAGE_SKETCH = "page_sketch"


@dataclass(frozen=True)
class GenerationResult:
    """
    Discriminated result returned by provider implementations.

    NOTE:
    - success=True carries `artifact`: raw image bytes, or a URL/ref the provider already hosts.
    - success=False carries `error`; ordinary failures are returned, not raised.
    """
    success: bool
    artifact: Optional[Union[bytes, str]] = None
    error: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, artifact: Union[bytes, str], details: Optional[Dict[str, Any]] = None) -> "GenerationResult":
        return cls(success=True, artifact=artifact, details=details)

    @classmethod
    def failed(cls, error: str, details: Optional[Dict[str, Any]] = None) -> "GenerationResult":
        return cls(success=False, error=error or "unknown error", details=details)


class GenerationClient(Protocol):
    """
    Pluggable image-generation interface. Implementations do not retry; the
    orchestrator owns retry scope and timeouts.
    """
    name: str

    async def generate(
        self,
        *,
        kind: GenerationKind,
        input_refs: List[str],
        prompt: str,
        request_id: Optional[str] = None,
    ) -> GenerationResult:
        ...
