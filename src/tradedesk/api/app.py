"""
Core API backend for tradedesk.

This module exposes the agent engine through a RESTful API used by frontends and the CLI client.
It exposes the following endpoints:
- **GET /health**         - liveness endpoint for health checks.
- **GET /agents**         - list the registered personas.
- **POST /agent**         - one agent turn: {"agent_id": "...", "message": "...", "history": [...]}
- **POST /roundtable**    - fan a question out to a roster and synthesize: {"question": "..."}
- **POST /risk/evaluate** - stand-alone risk verdict for a trade plan.

Services (adapters, runtime context, orchestrator) are built once at startup and kept on
``app.state.services``; :func:`create_app` accepts pre-built services so tests can inject fakes.
"""

import logging
from contextlib import asynccontextmanager
from typing import (
    AsyncIterator,
    List,
)

from fastapi import (
    APIRouter,
    FastAPI,
    HTTPException,
    Request,
)
from fastapi.middleware.cors import CORSMiddleware

from tradedesk.agent.adapters import (
    AdapterRegistry,
    ProviderCallError,
    build_adapters,
)
from tradedesk.agent.agent_loop import (
    ToolLoopLimitError,
    TurnRunner,
)
from tradedesk.agent.agents import (
    UnknownAgentError,
    get_agent,
    list_agents,
    resolve_roster,
)
from tradedesk.agent.roundtable import (
    RoundTableOrchestrator,
    build_user_text,
    summarize_context,
)
from tradedesk.agent.runtime_context import DeskRuntimeContext
from tradedesk.api.models import (
    AgentInfo,
    AgentRequest,
    AgentResponse,
    RiskEvaluateRequest,
    RoundTableRequest,
)
from tradedesk.broker.sim_broker import SimBroker
from tradedesk.common import (
    AnsiColors,
    colored_print,
)
from tradedesk.config import (
    Settings,
    settings,
)
from tradedesk.core.schema import (
    AccountState,
    ConversationMessage,
    RiskVerdict,
    Role,
    RoundTableResult,
)
from tradedesk.memory.journal_store import JournalStore
from tradedesk.risk.engine import evaluate_proposed_trade

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------
class DeskServices:
    """Everything a request handler needs, constructed once per process."""

    def __init__(
        self,
        *,
        adapters: AdapterRegistry,
        journal: JournalStore,
        broker: SimBroker,
        ctx: DeskRuntimeContext,
        runner: TurnRunner,
        orchestrator: RoundTableOrchestrator,
    ) -> None:
        self.adapters = adapters
        self.journal = journal
        self.broker = broker
        self.ctx = ctx
        self.runner = runner
        self.orchestrator = orchestrator


def build_services(
    cfg: Settings | None = None,
    adapters: AdapterRegistry | None = None,
    account: AccountState | None = None,
) -> DeskServices:
    """Construct adapters, journal, sim broker, runtime context and orchestrator."""
    cfg = cfg or settings
    account = account or AccountState()
    journal = JournalStore(cfg.JOURNAL_LOG_PATH)
    journal.init()
    broker = SimBroker(account)
    ctx = DeskRuntimeContext(account=account, journal=journal, broker=broker)
    runner = TurnRunner(adapters or build_adapters(cfg), ctx)
    return DeskServices(
        adapters=runner.adapters,
        journal=journal,
        broker=broker,
        ctx=ctx,
        runner=runner,
        orchestrator=RoundTableOrchestrator(runner),
    )


def _services(request: Request) -> DeskServices:
    return request.app.state.services


def _unknown_agent(exc: UnknownAgentError) -> HTTPException:
    # KeyError.__str__ quotes its message; use the raw argument instead.
    return HTTPException(status_code=404, detail=exc.args[0] if exc.args else "Unknown agent")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
router = APIRouter()


@router.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@router.get("/agents", response_model=List[AgentInfo], summary="List personas")
async def agents_endpoint() -> List[AgentInfo]:
    """List every registered persona with its provider and tools."""
    return [
        AgentInfo(
            id=a.id,
            display_name=a.display_name,
            role=a.role,
            provider=a.provider.kind.value,
            model=a.provider.model,
            allowed_tool_names=list(a.allowed_tool_names),
        )
        for a in list_agents()
    ]


@router.post("/agent", response_model=AgentResponse, summary="Run one agent turn")
async def agent_endpoint(req: AgentRequest, request: Request) -> AgentResponse:
    """Resolve one agent turn, running any tools it requests."""
    if not req.message.strip():
        raise HTTPException(status_code=400, detail="message must not be empty")
    try:
        agent = get_agent(req.agent_id)
    except UnknownAgentError as exc:
        raise _unknown_agent(exc) from exc

    history = [
        ConversationMessage(role=Role(t.role), content=t.content)
        for t in req.history
        if t.content.strip()
    ]
    user_text = req.message
    if req.context is not None:
        user_text = build_user_text(req.message, summarize_context(req.context))
    history.append(ConversationMessage(role=Role.USER, content=user_text))
    images = req.images or (req.context.images if req.context is not None else [])
    try:
        turn = await _services(request).runner.run(agent, history, images=images)
    except (ProviderCallError, ToolLoopLimitError) as exc:
        logger.warning("Agent turn for '%s' failed: %s", agent.id, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    return AgentResponse(
        agent_id=agent.id,
        reply=turn.clean_text,
        draft=turn.draft,
        tool_results=turn.tool_results,
        iterations=turn.iterations,
    )


@router.post("/roundtable", response_model=RoundTableResult, summary="Run a round-table")
async def roundtable_endpoint(req: RoundTableRequest, request: Request) -> RoundTableResult:
    """Fan the question out to the roster and return every slot plus the synthesis."""
    services = _services(request)
    try:
        roster = resolve_roster(req.agent_ids)
        moderator = get_agent(req.moderator_id) if req.moderator_id else None
    except UnknownAgentError as exc:
        raise _unknown_agent(exc) from exc

    context = req.context
    if context.broker_snapshot is None:
        context.broker_snapshot = await services.ctx.get_broker_snapshot()
    if context.journal_summary is None:
        recent = await services.ctx.get_recent_trades(limit=5)
        context.journal_summary = "\n".join(
            f"- {t['symbol']} {t.get('direction') or ''} [{t.get('status')}] {t.get('note') or ''}".rstrip()
            for t in recent
        ) or None

    try:
        return await services.orchestrator.run(roster, req.question, context, moderator)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/risk/evaluate", response_model=RiskVerdict, summary="Evaluate a trade plan")
async def risk_endpoint(req: RiskEvaluateRequest) -> RiskVerdict:
    """Apply the risk policy to a trade plan without touching the broker."""
    return evaluate_proposed_trade(req.account, req.runtime, req.trade, req.desk_policy)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------
def create_app(services: DeskServices | None = None) -> FastAPI:
    """Build the FastAPI app; *services* default to :func:`build_services` at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services()
            logger.info("Desk services initialized.")
        yield

    app = FastAPI(
        title="tradedesk API",
        version="0.1.0",
        description="Trading-desk agent orchestration API",
        lifespan=lifespan,
    )
    app.state.services = services
    # Allow requests from a local web UI
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[f"http://localhost:{settings.API_PORT}", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in dev).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn out of the import path of library users
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting tradedesk API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    logger.debug("API settings: %s", settings.model_dump(exclude={"OPENAI_API_KEY", "GEMINI_API_KEY", "API_KEY"}))

    colored_print(f"📈 tradedesk API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "tradedesk.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m tradedesk.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
