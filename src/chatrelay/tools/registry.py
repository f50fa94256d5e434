"""Registry resolving tool names to typed handlers and execution sites."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

from ..errors import ToolExecutionError, ToolValidationError
from ..schemas.chat import ToolResultPart

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Any], Union[Any, Awaitable[Any]]]


class ExecutionSite(str, Enum):
    SERVER = "server"
    CLIENT = "client"


@dataclass(frozen=True)
class ToolDefinition:
    """A named tool with its input model and execution site.

    Server tools carry a handler and may declare an output model that the
    handler's result is validated against. Client tools are declarations
    only; their handlers live in the client runtime.
    """

    name: str
    description: str
    input_model: type[BaseModel]
    execution_site: ExecutionSite = ExecutionSite.SERVER
    handler: Optional[ToolHandler] = None
    output_model: Optional[type[BaseModel]] = None

    @property
    def input_schema(self) -> dict[str, Any]:
        return self.input_model.model_json_schema(by_alias=True)

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
            "executionSite": self.execution_site.value,
        }

    def parse_arguments(self, arguments: Optional[Mapping[str, Any]]) -> BaseModel:
        if arguments is not None and not isinstance(arguments, Mapping):
            raise ToolValidationError(self.name, "arguments must be a JSON object")
        try:
            return self.input_model.model_validate(dict(arguments or {}))
        except ValidationError as exc:
            raise ToolValidationError(self.name, _summarize(exc)) from exc


@dataclass
class ToolOutcome:
    call_id: str
    name: str
    result: Any = None
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_part(self) -> ToolResultPart:
        return ToolResultPart(
            name=self.name,
            call_id=self.call_id,
            result=None if self.is_error else self.result,
            error=self.error,
        )


class ToolRegistry:
    """Hold tool definitions and execute server tools behind validation."""

    def __init__(
        self,
        definitions: Iterable[ToolDefinition] = (),
        *,
        default_timeout: float = 5.0,
    ) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self._default_timeout = default_timeout
        for definition in definitions:
            self.register(definition)

    def register(self, definition: ToolDefinition) -> None:
        if definition.name in self._tools:
            raise ValueError(f"Tool '{definition.name}' is already registered")
        if definition.execution_site is ExecutionSite.SERVER and definition.handler is None:
            raise ValueError(f"Server tool '{definition.name}' requires a handler")
        self._tools[definition.name] = definition

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def definitions(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def execution_site(self, name: str) -> Optional[ExecutionSite]:
        definition = self._tools.get(name)
        return definition.execution_site if definition else None

    def describe(self) -> list[dict[str, Any]]:
        return [definition.describe() for definition in self._tools.values()]

    async def execute(
        self,
        name: str,
        arguments: Optional[Mapping[str, Any]],
        *,
        call_id: str,
        timeout: Optional[float] = None,
    ) -> ToolOutcome:
        """Run a server tool and return its outcome; never raises."""

        definition = self._tools.get(name)
        if definition is None:
            logger.warning("Model requested unknown tool %s", name)
            return ToolOutcome(call_id, name, error=f"Unknown tool: {name}")
        if definition.execution_site is not ExecutionSite.SERVER:
            return ToolOutcome(
                call_id, name, error=f"Tool {name} must be executed by the client"
            )

        try:
            result = await self._run(definition, arguments, timeout)
        except (ToolValidationError, ToolExecutionError) as exc:
            logger.info("Tool %s (call %s) failed: %s", name, call_id, exc)
            return ToolOutcome(call_id, name, error=str(exc))
        return ToolOutcome(call_id, name, result=result)

    async def _run(
        self,
        definition: ToolDefinition,
        arguments: Optional[Mapping[str, Any]],
        timeout: Optional[float],
    ) -> Any:
        params = definition.parse_arguments(arguments)
        assert definition.handler is not None
        limit = self._default_timeout if timeout is None else timeout

        try:
            result = await asyncio.wait_for(_invoke(definition.handler, params), limit)
        except asyncio.TimeoutError as exc:
            raise ToolExecutionError(
                definition.name, f"timed out after {limit:g}s"
            ) from exc
        except (ToolValidationError, ToolExecutionError):
            raise
        except Exception as exc:
            logger.exception("Tool %s raised", definition.name)
            raise ToolExecutionError(definition.name, str(exc) or type(exc).__name__) from exc

        return _dump_result(definition, result)


async def _invoke(handler: ToolHandler, params: BaseModel) -> Any:
    if inspect.iscoroutinefunction(handler):
        return await handler(params)
    result = await asyncio.to_thread(handler, params)
    if inspect.isawaitable(result):
        return await result
    return result


def _dump_result(definition: ToolDefinition, result: Any) -> Any:
    if isinstance(result, BaseModel):
        result = result.model_dump(mode="json", by_alias=True)
    if definition.output_model is None:
        return result
    try:
        validated = definition.output_model.model_validate(result)
    except ValidationError as exc:
        raise ToolExecutionError(
            definition.name, f"malformed result: {_summarize(exc)}"
        ) from exc
    return validated.model_dump(mode="json", by_alias=True)


def _summarize(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "input"
        messages.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(messages)


__all__ = [
    "ExecutionSite",
    "ToolDefinition",
    "ToolHandler",
    "ToolOutcome",
    "ToolRegistry",
]
