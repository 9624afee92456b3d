from __future__ import annotations

import re
from typing import Any, Dict

_HEX_SECRET_PATTERN = re.compile(r"0x[0-9a-fA-F]{64}")


def mask_address(address: str | None) -> str:
    if not address:
        return "-"
    return address[:8] + "..."


def scrub_secrets(text: str | None) -> str | None:
    """Replace anything shaped like a 32-byte hex key with a placeholder."""
    if not text:
        return text
    return _HEX_SECRET_PATTERN.sub("0x<redacted>", text)


def envelope_for_log(envelope: Dict[str, Any]) -> Dict[str, Any]:
    action = envelope.get("action") or {}
    return {
        "type": action.get("type") if isinstance(action, dict) else None,
        "nonce": envelope.get("nonce"),
        "vaultAddress": mask_address(envelope.get("vaultAddress")),
    }
