# Overview: Lossless storage codec for opaque transaction metadata.

"""
Metadata is stored as uninterpreted JSON text and decoded lazily, best effort,
only when records are read back out. The relay never looks inside it.
"""

from __future__ import annotations

import json
from typing import Any, Optional

# Returned in place of metadata that can no longer be decoded.
UNPARSEABLE_METADATA_KEY = "_unparseable"


def encode_metadata(value: Any) -> Optional[str]:
    """Serialize a client-supplied metadata value; None stays NULL."""
    if value is None:
        return None
    try:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"metadata is not JSON-serializable: {exc}") from exc


def decode_metadata(raw: Optional[str]) -> Any:
    """
    Decode stored metadata text.

    Never raises: undecodable text comes back as
    {"_unparseable": True, "raw": <stored text>} so one bad row cannot sink a page.
    """
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return {UNPARSEABLE_METADATA_KEY: True, "raw": raw}


def is_unparseable(value: Any) -> bool:
    return isinstance(value, dict) and value.get(UNPARSEABLE_METADATA_KEY) is True
