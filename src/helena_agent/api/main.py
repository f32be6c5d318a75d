"""FastAPI entrypoint for agent runs, drafts and observability endpoints."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict
from typing import Any, Literal

from fastapi import FastAPI, HTTPException
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.tools import BaseTool
from pydantic import BaseModel, Field

from helena_agent.agent.classifier import ModelSelection
from helena_agent.agent.registry import ToolRegistry
from helena_agent.agent.roles import UserRole
from helena_agent.agent.tools import register_helena_tools
from helena_agent.cases import InMemoryAlertStore, InMemoryCaseRepository
from helena_agent.config import HelenaSettings, InMemorySettings
from helena_agent.limits.counters import CounterStore, InMemoryCounterStore, RedisCounterStore
from helena_agent.limits.rate_limiter import RateLimiter
from helena_agent.obs.tracing import InMemoryAuditLog, InMemoryUsageTracker
from helena_agent.retrieval.embedder import Embedder, HashingEmbedder, LangChainEmbedder
from helena_agent.retrieval.sources import LegalSourceIndex
from helena_agent.schriftsatz.drafts import DraftService, InMemoryNotifier, SqliteDraftStore
from helena_agent.schriftsatz.pending import SqlitePendingPipelineStore
from helena_agent.service import HelenaDependencies, HelenaRequest, run_helena_agent

logging.basicConfig(
    level=os.getenv("HELENA_LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _create_llm(selection: ModelSelection) -> Any:
    from langchain_openai import ChatOpenAI

    if selection.provider == "ollama":
        return ChatOpenAI(
            model=selection.model_name,
            base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434/v1"),
            api_key="ollama",
            temperature=0,
        )

    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise RuntimeError(f"OPENAI_API_KEY is required for model {selection.model_name}")
    model_name = selection.model_name.removeprefix("openai/")
    return ChatOpenAI(model=model_name, api_key=api_key, base_url=os.getenv("OPENAI_BASE_URL"), temperature=0)


def _create_embedder() -> Embedder:
    model = os.getenv("HELENA_EMBEDDING_MODEL")
    if not model:
        return HashingEmbedder()
    from langchain_openai import OpenAIEmbeddings

    if os.getenv("OPENAI_API_KEY"):
        return LangChainEmbedder(OpenAIEmbeddings(model=model, base_url=os.getenv("OPENAI_BASE_URL")))
    return LangChainEmbedder(
        OpenAIEmbeddings(
            model=model,
            base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434/v1"),
            api_key="ollama",
            check_embedding_ctx_length=False,
        )
    )


def _create_web_search() -> BaseTool | None:
    if not os.getenv("TAVILY_API_KEY"):
        return None
    from langchain_tavily import TavilySearch

    return TavilySearch(max_results=int(os.getenv("HELENA_WEB_SEARCH_RESULTS", "5")))


def _create_counter_store() -> CounterStore:
    redis_url = os.getenv("REDIS_URL")
    if redis_url:
        return RedisCounterStore.from_url(redis_url)
    logger.info("REDIS_URL not set, rate limiting uses process-local counters")
    return InMemoryCounterStore()


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class AgentRunBody(BaseModel):
    user_id: str = Field(min_length=1)
    user_role: UserRole = UserRole.ANWALT
    message: str = Field(min_length=1)
    akte_id: str | None = None
    mode: Literal["inline", "background"] | None = None
    history: list[ChatTurn] = Field(default_factory=list)
    user_name: str | None = None


app = FastAPI(title="Helena Agent", version="0.1.0")

_db_path = os.getenv("HELENA_DB_PATH", "helena_agent.db")
_settings = HelenaSettings.from_env()
_admin_settings = InMemorySettings()
_audit_log = InMemoryAuditLog()
_usage_tracker = InMemoryUsageTracker()
_registry = ToolRegistry(audit_log=_audit_log)
register_helena_tools(_registry, web_search=_create_web_search())

_cases = InMemoryCaseRepository()
_alerts = InMemoryAlertStore()
_notifier = InMemoryNotifier()
_drafts = DraftService(SqliteDraftStore(_db_path), notifier=_notifier)
_pending = SqlitePendingPipelineStore(
    _db_path,
    ttl_days=_settings.pipeline.pending_ttl_days,
    max_rounds=_settings.pipeline.max_rounds,
)
_sources = LegalSourceIndex(embedder=_create_embedder())
_rate_limiter = RateLimiter(_create_counter_store(), _admin_settings, config=_settings.rate_limit)

_deps = HelenaDependencies(
    registry=_registry,
    cases=_cases,
    drafts=_drafts,
    rate_limiter=_rate_limiter,
    settings_provider=_admin_settings,
    model_factory=_create_llm,
    settings=_settings,
    sources=_sources,
    pending=_pending,
    usage_tracker=_usage_tracker,
    alerts=_alerts,
)


def _to_messages(history: list[ChatTurn]) -> list[BaseMessage]:
    return [
        HumanMessage(content=turn.content) if turn.role == "user" else AIMessage(content=turn.content)
        for turn in history
    ]


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "llm_configured": bool(os.getenv("OPENAI_API_KEY") or os.getenv("OLLAMA_BASE_URL")),
        "rate_limiter": _rate_limiter.health().value,
        "tool_count": len(_registry.names()),
    }


@app.post("/agent/run")
async def agent_run(body: AgentRunBody) -> dict[str, Any]:
    request = HelenaRequest(
        user_id=body.user_id,
        user_role=body.user_role,
        message=body.message,
        akte_id=body.akte_id,
        history=_to_messages(body.history),
        mode_override=body.mode,
        user_name=body.user_name,
    )
    try:
        response = await run_helena_agent(request, _deps)
    except Exception as exc:
        logger.exception("Agent run failed")
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    if response.rate_limited:
        raise HTTPException(status_code=429, detail=response.text)

    return {
        "text": response.text,
        "mode": response.mode,
        "tier": response.tier,
        "finish_reason": response.finish_reason,
        "cap_reached": response.cap_reached,
        "continue_in_background": response.continue_in_background,
        "draft_id": response.draft_id,
        "total_tokens": response.total_tokens.total,
        "steps": [
            {"type": step.type, "content": step.content, "tool_name": step.tool_name}
            for step in response.steps
        ],
    }


@app.get("/drafts/{draft_id}")
async def draft_detail(draft_id: str) -> dict[str, Any]:
    draft = await _drafts.get(draft_id)
    if draft is None:
        raise HTTPException(status_code=404, detail=f"Draft {draft_id} not found")
    return draft.model_dump(mode="json")


@app.get("/akten/{akte_id}/drafts")
async def akte_drafts(akte_id: str) -> dict[str, Any]:
    drafts = await _drafts.list_for_akte(akte_id)
    return {"items": [draft.model_dump(mode="json") for draft in drafts]}


@app.get("/audit")
def audit(limit: int = 20) -> dict[str, Any]:
    return {"items": [asdict(record) for record in _audit_log.list_recent(limit=limit)]}


@app.get("/audit/{audit_id}")
def audit_detail(audit_id: str) -> dict[str, Any]:
    try:
        record = _audit_log.get(audit_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return asdict(record)


@app.get("/usage")
def usage() -> dict[str, Any]:
    return _usage_tracker.summary()
