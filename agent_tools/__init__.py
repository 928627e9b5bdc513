# =============================================================================
# POLYMARKET RESEARCH DESK - AGENT TOOLS
# =============================================================================
#
# Structured request/response surface for the reasoning agent.
#
# =============================================================================

from agent_tools.registry import ToolRegistry, ToolSpec

__all__ = ["ToolRegistry", "ToolSpec"]
