import asyncio
import hashlib
import json
import logging
from typing import Any, Dict, Optional
from callbridge.tools.schemas import ToolContext, ToolResult

logger = logging.getLogger(__name__)


def idempotency_key(tool_name: str, args: Dict[str, Any]) -> str:
    # Hashed so card fields never sit in memory as dict keys
    raw = f"{tool_name}:{json.dumps(args, sort_keys=True, default=str)}"
    return hashlib.sha256(raw.encode()).hexdigest()


class CallIdempotency:
    """
    Remembers successful side-effect results for the lifetime of one call,
    so an agent repeating the same tool call (e.g. after a barge-in) doesn't charge twice.
    The memo lives in the call's ToolContext.state and goes away with it.
    """
    STATE_KEY = "idempotency"
    LOCKS_KEY = "idempotency_locks"

    def __init__(self, context: ToolContext):
        self._call_id = context.call_id
        self._results: Dict[str, ToolResult] = context.state.setdefault(self.STATE_KEY, {})
        self._locks: Dict[str, asyncio.Lock] = context.state.setdefault(self.LOCKS_KEY, {})

    def lock(self, tool_name: str, args: Dict[str, Any]) -> asyncio.Lock:
        """Held for the whole execution of one (tool, args) pair."""
        return self._locks.setdefault(idempotency_key(tool_name, args), asyncio.Lock())

    def lookup(self, tool_name: str, args: Dict[str, Any]) -> Optional[ToolResult]:
        key = idempotency_key(tool_name, args)
        result = self._results.get(key)
        if result:
            logger.info(f"🔄 Returning cached {tool_name} result for call {self._call_id} (key={key[:8]})")
        return result

    def remember(self, tool_name: str, args: Dict[str, Any], result: ToolResult) -> None:
        if not result.success:
            return
        key = idempotency_key(tool_name, args)
        self._results[key] = result
        logger.info(f"💾 Cached {tool_name} result for call {self._call_id} (key={key[:8]})")
