# =============================================================================
# POLYMARKET RESEARCH DESK - HYPOTHESES
# =============================================================================
#
# Trading theses with a lifecycle and a confidence score.
#
#   proposed -> testing -> validated | invalidated
#   any non-blocked state -> blocked (via a capability handoff)
#
# =============================================================================

from hypotheses.lifecycle import HypothesisLifecycle, LEGAL_TRANSITIONS
from hypotheses.models import Evidence, Hypothesis, HypothesisResult, TradeValidationCheck
from hypotheses.progress import ConfidenceHistory, LearningsLog
from hypotheses.selection import select_next
from hypotheses.storage import HypothesisStore

__all__ = [
    "HypothesisLifecycle",
    "LEGAL_TRANSITIONS",
    "Evidence",
    "Hypothesis",
    "HypothesisResult",
    "TradeValidationCheck",
    "ConfidenceHistory",
    "LearningsLog",
    "select_next",
    "HypothesisStore",
]
