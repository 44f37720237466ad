import asyncio
import logging
from typing import Any, Dict, Optional, Type
from pydantic import BaseModel, ConfigDict, ValidationError
from callbridge.tools.schemas import ToolContext, ToolResult

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_MESSAGE = "Sorry, that action failed due to a technical error."


class ToolSpec(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_model: Type[BaseModel]
    executor: Any  # Callable[[BaseModel, ToolContext], Coroutine[Any, Any, ToolResult]]
    timeout_seconds: float = 10.0
    # Spoken back to the agent when the tool fails for a technical reason
    failure_message: str = DEFAULT_FAILURE_MESSAGE


class ToolRegistry:
    """
    Instance-based registry for client tools the voice agent may invoke.
    """
    def __init__(self):
        self._tools: Dict[str, ToolSpec] = {}

    def register(
        self,
        name: str,
        description: str,
        args_model: Type[BaseModel],
        timeout: float = 10.0,
        failure_message: str = DEFAULT_FAILURE_MESSAGE,
    ):
        """Decorator to register a tool implementation."""
        def decorator(func):
            spec = ToolSpec(
                name=name,
                description=description,
                args_model=args_model,
                executor=func,
                timeout_seconds=timeout,
                failure_message=failure_message,
            )
            self._tools[name] = spec
            return func
        return decorator

    def get_tool(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    @property
    def tool_names(self):
        return sorted(self._tools)

    async def execute(self, name: str, args: Dict[str, Any], context: ToolContext) -> ToolResult:
        """
        Execute a tool by name with validation and timeout.
        Never raises; every failure comes back as an error ToolResult.
        """
        spec = self._tools.get(name)
        if not spec:
            return ToolResult.error_result("TOOL_NOT_FOUND", f"Tool '{name}' not found")

        try:
            # 1. Pydantic Validation
            validated_args = spec.args_model(**args)
        except ValidationError as e:
            logger.warning(f"Tool {name} validation failed: {e.error_count()} error(s)")
            return ToolResult.error_result("VALIDATION_ERROR", str(e))

        try:
            # 2. Execution with Timeout
            if asyncio.iscoroutinefunction(spec.executor):
                result = await asyncio.wait_for(
                    spec.executor(validated_args, context),
                    timeout=spec.timeout_seconds
                )
            else:
                # Synchronous fallback (discouraged for I/O)
                result = spec.executor(validated_args, context)

            return result

        except asyncio.TimeoutError:
            logger.error(f"Tool {name} timed out after {spec.timeout_seconds}s")
            return ToolResult.error_result("TIMEOUT", "Tool execution timed out")

        except Exception as e:
            logger.exception(f"Tool {name} execution failed")
            return ToolResult.error_result("EXECUTION_ERROR", str(e))
