"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from time import perf_counter
from typing import TYPE_CHECKING, Any

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ConfigDict, Field

from helena_agent.agent.cache import ToolCache, create_cache_key
from helena_agent.agent.cancellation import CancellationToken
from helena_agent.agent.roles import UserRole, filter_tools
from helena_agent.obs.tracing import AuditLog
from helena_agent.types import ToolResult, ToolTrace

if TYPE_CHECKING:
    from helena_agent.cases import CaseRepository, InMemoryAlertStore
    from helena_agent.retrieval.sources import LegalSourceIndex
    from helena_agent.schriftsatz.drafts import DraftService

logger = logging.getLogger(__name__)

AUDIT_SUMMARY_CHARS = 200


@dataclass(slots=True)
class ToolContext:
    """Per-run bundle shared by reference across every tool call of one run."""

    user_id: str
    user_role: UserRole | str
    akte_id: str | None
    cases: "CaseRepository"
    drafts: "DraftService"
    sources: "LegalSourceIndex | None" = None
    alerts: "InMemoryAlertStore | None" = None
    helena_user_id: str = "helena"
    cache: ToolCache = field(default_factory=ToolCache)
    cancellation: CancellationToken = field(default_factory=CancellationToken)

    def can_access_akte(self, akte_id: str) -> bool:
        return self.cases.user_can_access(akte_id, self.user_id, self.user_role)


ToolHandler = Callable[[Any, ToolContext], Awaitable[ToolResult]]


class ToolSpec(BaseModel):
    """Declarative tool definition for registration and validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: ToolHandler
    tags: list[str] = Field(default_factory=list)

    async def invoke(self, payload: dict[str, Any], ctx: ToolContext) -> ToolResult:
        data = self.args_schema.model_validate(payload)
        return await self.handler(data, ctx)


class ToolRegistry:
    """Stores tool specs, wraps execution and exports LangChain tool objects.

    Every execution goes through the same wrapper: per-run cache lookup keyed
    by tool name and sorted parameters, audit logging with a truncated result
    summary, and error containment so that a failing tool yields an
    `error` result instead of an exception.
    """

    def __init__(self, *, audit_log: AuditLog | None = None) -> None:
        self._tools: dict[str, ToolSpec] = {}
        self._observer: Callable[[ToolTrace], None] | None = None
        self._audit_log = audit_log

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def set_observer(self, observer: Callable[[ToolTrace], None] | None) -> None:
        """Set an optional callback invoked after each tool execution."""
        self._observer = observer

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def names(self) -> list[str]:
        return list(self._tools)

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def filtered(self, role: UserRole | str | None) -> "ToolRegistry":
        """Registry view restricted to the tools `role` may use."""
        view = ToolRegistry(audit_log=self._audit_log)
        for spec in filter_tools(self._tools.values(), role):
            view.register(spec)
        view._observer = self._observer
        return view

    def subset(self, names: Iterable[str]) -> "ToolRegistry":
        view = ToolRegistry(audit_log=self._audit_log)
        for name in names:
            view.register(self._tools[name])
        return view

    async def execute(self, name: str, payload: dict[str, Any], ctx: ToolContext) -> ToolResult:
        spec = self._tools.get(name)
        if spec is None:
            raise KeyError(f"Unknown tool: {name}")
        return await self._execute_spec(spec, payload, ctx)

    def as_langchain_tools(self, ctx: ToolContext) -> list[StructuredTool]:
        tools: list[StructuredTool] = []
        for spec in self._tools.values():
            tools.append(
                StructuredTool.from_function(
                    name=spec.name,
                    description=spec.description,
                    args_schema=spec.args_schema,
                    coroutine=self._build_coroutine(spec, ctx),
                )
            )
        return tools

    def _build_coroutine(self, spec: ToolSpec, ctx: ToolContext) -> Callable[..., Awaitable[str]]:
        async def _callable(**kwargs: Any) -> str:
            result = await self._execute_spec(spec, kwargs, ctx)
            return serialize_tool_result(result)

        return _callable

    async def _execute_spec(
        self, spec: ToolSpec, payload: dict[str, Any], ctx: ToolContext
    ) -> ToolResult:
        cache_key = create_cache_key(spec.name, payload)
        cached = ctx.cache.get(cache_key)
        if cached is not None:
            self._emit(spec.name, payload, cached, 0.0, ctx, cache_hit=True)
            return cached

        if ctx.cancellation.cancelled:
            return ToolResult(error="Abgebrochen.")

        start = perf_counter()
        try:
            result = await spec.invoke(payload, ctx)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            latency_ms = (perf_counter() - start) * 1000.0
            message = str(exc) or "Unbekannter Fehler"
            logger.warning("Tool %s failed: %s", spec.name, message)
            result = ToolResult(error=message)
            self._emit(spec.name, payload, result, latency_ms, ctx, summary=f"ERROR: {message}")
            return result

        latency_ms = (perf_counter() - start) * 1000.0
        ctx.cache.set(cache_key, result)
        self._emit(spec.name, payload, result, latency_ms, ctx)
        return result

    def _emit(
        self,
        name: str,
        payload: dict[str, Any],
        result: ToolResult,
        latency_ms: float,
        ctx: ToolContext,
        *,
        cache_hit: bool = False,
        summary: str | None = None,
    ) -> None:
        output = serialize_tool_result(result)
        if self._observer is not None:
            self._observer(
                ToolTrace(
                    name=name,
                    input_payload=payload,
                    output_preview=output[:320],
                    latency_ms=latency_ms,
                    cache_hit=cache_hit,
                )
            )
        if self._audit_log is None:
            return
        try:
            self._audit_log.log_tool_call(
                tool_name=name,
                params=payload,
                result_summary=summary or output[:AUDIT_SUMMARY_CHARS],
                user_id=ctx.user_id,
                akte_id=ctx.akte_id,
                duration_ms=latency_ms,
                cache_hit=cache_hit,
            )
        except Exception:
            logger.exception("Audit logging failed for tool %s", name)


def serialize_tool_result(result: ToolResult) -> str:
    return json.dumps(result.as_payload(), ensure_ascii=False, default=str)
