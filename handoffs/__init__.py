# =============================================================================
# POLYMARKET RESEARCH DESK - HANDOFFS
# =============================================================================

from handoffs.models import Handoff, HandoffResult
from handoffs.queue import HandoffQueue

__all__ = ["Handoff", "HandoffResult", "HandoffQueue"]
