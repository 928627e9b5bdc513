# =============================================================================
# POLYMARKET RESEARCH DESK - ORCHESTRATOR
# =============================================================================
#
# Decides what the research agent works on next: an urgent priority
# signal, or the most overdue standing responsibility.
#
# =============================================================================

from orchestrator.engine import Engine, build_engine
from orchestrator.priorities import PrioritySignal, detect_priorities, get_priority_report
from orchestrator.responsibilities import ResponsibilitySchedule, parse_frequency
from orchestrator.scheduler import (
    AgentOutcome,
    AgentRequest,
    OrchestratorDecision,
    ReasoningAgent,
    Scheduler,
    TickResult,
    decide,
)

__all__ = [
    "Engine",
    "build_engine",
    "PrioritySignal",
    "detect_priorities",
    "get_priority_report",
    "ResponsibilitySchedule",
    "parse_frequency",
    "AgentOutcome",
    "AgentRequest",
    "OrchestratorDecision",
    "ReasoningAgent",
    "Scheduler",
    "TickResult",
    "decide",
]
