# =============================================================================
# POLYMARKET RESEARCH DESK - ENGINE WIRING
# =============================================================================
#
# Builds every store and service over one state directory so the CLI,
# the scheduler and the tool registry all see the same documents.
#
# =============================================================================

import logging
from dataclasses import dataclass
from typing import Optional

from agent_tools.registry import ToolRegistry
from handoffs.queue import HANDOFFS_FILENAME, HandoffQueue
from hypotheses.lifecycle import HypothesisLifecycle
from hypotheses.progress import (
    HISTORY_FILENAME,
    LEARNINGS_FILENAME,
    ConfidenceHistory,
    LearningsLog,
)
from hypotheses.storage import HYPOTHESES_FILENAME, HypothesisStore
from notifications.gateway import NotificationGateway, create_gateway
from orchestrator.responsibilities import RESPONSIBILITIES_FILENAME, ResponsibilitySchedule
from paper_trader.approvals import APPROVALS_FILENAME, ApprovalStore
from paper_trader.executor import PaperExecutor
from paper_trader.portfolio_store import PORTFOLIO_FILENAME, PortfolioStore
from shared.engine_config import EngineConfig, get_engine_config
from shared.logging_config import AuditLogger

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    config: EngineConfig
    gateway: NotificationGateway
    portfolio: PortfolioStore
    approvals: ApprovalStore
    handoffs: HandoffQueue
    hypotheses: HypothesisStore
    lifecycle: HypothesisLifecycle
    executor: PaperExecutor
    responsibilities: ResponsibilitySchedule
    tools: ToolRegistry


def build_engine(
    config: Optional[EngineConfig] = None,
    gateway: Optional[NotificationGateway] = None,
    audit: bool = True,
) -> Engine:
    config = config or get_engine_config()
    state_dir = config.paths.state_dir
    gateway = gateway or create_gateway()
    audit_logger = AuditLogger("engine", config.paths.logs_dir) if audit else None

    portfolio = PortfolioStore(state_dir / PORTFOLIO_FILENAME, config.risk.starting_capital)
    approvals = ApprovalStore(state_dir / APPROVALS_FILENAME)
    handoffs = HandoffQueue(state_dir / HANDOFFS_FILENAME)
    hypotheses = HypothesisStore(state_dir / HYPOTHESES_FILENAME)

    lifecycle = HypothesisLifecycle(
        hypotheses,
        handoffs=handoffs,
        history=ConfidenceHistory(state_dir / HISTORY_FILENAME),
        learnings=LearningsLog(state_dir / LEARNINGS_FILENAME),
        gateway=gateway,
        audit=audit_logger,
        config=config,
    )
    executor = PaperExecutor(
        portfolio,
        approvals,
        lifecycle,
        gateway=gateway,
        audit=audit_logger,
        config=config,
        handoffs=handoffs,
    )
    responsibilities = ResponsibilitySchedule(state_dir / RESPONSIBILITIES_FILENAME)

    logger.debug(f"Engine wired over {state_dir}")
    return Engine(
        config=config,
        gateway=gateway,
        portfolio=portfolio,
        approvals=approvals,
        handoffs=handoffs,
        hypotheses=hypotheses,
        lifecycle=lifecycle,
        executor=executor,
        responsibilities=responsibilities,
        tools=ToolRegistry(executor, lifecycle, handoffs),
    )
