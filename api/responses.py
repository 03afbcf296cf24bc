"""
Response envelopes shared by all endpoints.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def success_response(data: Any, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "metadata": {**(metadata or {}), "timestamp": _now_iso()},
    }


def error_response(code: str, message: str, details: Any = None) -> Dict[str, Any]:
    return {
        "success": False,
        "error": {"code": code, "message": message, "details": details},
        "timestamp": _now_iso(),
    }
