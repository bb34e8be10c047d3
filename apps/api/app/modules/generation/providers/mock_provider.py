from __future__ import annotations

import hashlib
import json
from typing import List, Optional

from .base import GenerationKind, GenerationResult

FORCE_FAIL_MARKER = "__force_fail__"


class MockProvider:
    """
    Deterministic offline provider:
    - returns a small JSON payload as the artifact bytes
    - a prompt containing __force_fail__ yields a failed result (for drills and tests)
    """
    name = "mock"

    async def generate(
        self,
        *,
        kind: GenerationKind,
        input_refs: List[str],
        prompt: str,
        request_id: Optional[str] = None,
    ) -> GenerationResult:
        if FORCE_FAIL_MARKER in (prompt or ""):
            return GenerationResult.failed("forced failure", details={"provider": self.name})

        digest = hashlib.sha256(f"{kind.value}|{prompt}|{'|'.join(input_refs)}".encode("utf-8")).hexdigest()
        payload = {
            "provider": self.name,
            "kind": kind.value,
            "input_refs": list(input_refs),
            "digest": digest,
            "request_id": request_id,
        }
        return GenerationResult.ok(
            json.dumps(payload, ensure_ascii=False, sort_keys=True).encode("utf-8"),
            details={"digest": digest},
        )
