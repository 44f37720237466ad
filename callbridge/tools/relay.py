import logging
from typing import Any, Awaitable, Callable, Optional

from callbridge.elevenlabs.messages import ClientToolCall, ClientToolResult
from callbridge.tools.registry import ToolRegistry, ToolSpec
from callbridge.tools.schemas import DECLINED, ToolContext, ToolResult

logger = logging.getLogger(__name__)

SendToAgent = Callable[[ClientToolResult], Awaitable[Any]]


def to_tool_result_message(tool_call_id: str, spec: ToolSpec, result: ToolResult) -> ClientToolResult:
    """Turns a ToolResult into the sentence the agent will act on."""
    if result.success:
        text = (result.data or {}).get("result") or "Done."
        return ClientToolResult(tool_call_id=tool_call_id, result=str(text), is_error=False)

    if result.error and result.error.code == DECLINED:
        text = result.error.message
    else:
        text = spec.failure_message
    return ClientToolResult(tool_call_id=tool_call_id, result=text, is_error=True)


class ToolCallRelay:
    """
    Answers client tool calls from the voice agent.

    For every known tool exactly one client_tool_result is sent, whatever happens
    during execution; the agent holds its turn until it gets one. Unknown tools
    are ignored so new dashboard tools don't break live calls.
    """
    def __init__(self, registry: ToolRegistry, context: ToolContext):
        self.registry = registry
        self.context = context

    async def handle(self, tool_call: ClientToolCall, send: SendToAgent) -> Optional[ClientToolResult]:
        spec = self.registry.get_tool(tool_call.tool_name)
        if spec is None:
            logger.info(f"🔧 Ignoring unknown tool '{tool_call.tool_name}' (id={tool_call.tool_call_id})")
            return None

        # Parameter values may hold card data, only names are logged
        logger.info(
            f"🔧 Tool call: {tool_call.tool_name} id={tool_call.tool_call_id} "
            f"params={sorted(tool_call.parameters)}"
        )
        result = await self.registry.execute(tool_call.tool_name, tool_call.parameters, self.context)
        if not result.success:
            logger.warning(
                f"⚠️ Tool {tool_call.tool_name} failed: "
                f"{result.error.code if result.error else 'UNKNOWN'}"
            )

        message = to_tool_result_message(tool_call.tool_call_id, spec, result)
        await send(message)
        return message
