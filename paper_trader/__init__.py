# =============================================================================
# POLYMARKET RESEARCH DESK - PAPER TRADING MODULE
# =============================================================================
#
# ╔═══════════════════════════════════════════════════════════════════════════╗
# ║                    PAPER TRADING ONLY - NO LIVE EXECUTION                 ║
# ╠═══════════════════════════════════════════════════════════════════════════╣
# ║  Trades are simulated against the portfolio document.                     ║
# ║  NO real orders are placed. NO funds are at risk.                         ║
# ║  NO API keys are required or used for trading.                            ║
# ╚═══════════════════════════════════════════════════════════════════════════╝
#
# DATA FLOW:
#   agent tool call -> TradeValidator -> approval tier -> PaperExecutor
#                                                           |
#                    hypotheses.record_trade_result  <------+ (on exit)
#
# =============================================================================

"""
Paper Trading Module - Risk-checked simulated execution (NO LIVE TRADING)

Usage:
    from paper_trader import PaperExecutor, PortfolioStore, ApprovalStore

WARNING:
    This module does NOT execute real trades.
"""

__version__ = "0.2.0"
__status__ = "PAPER_ONLY"

from paper_trader.approvals import ApprovalStore, PendingApproval
from paper_trader.executor import PaperExecutor, exit_trigger_for
from paper_trader.models import ExitCriteria, Portfolio, Position, TradeParams, TradeResult
from paper_trader.portfolio_store import PortfolioStore
from paper_trader.validator import TradeValidator, get_approval_tier

__all__ = [
    "ApprovalStore",
    "PendingApproval",
    "PaperExecutor",
    "exit_trigger_for",
    "ExitCriteria",
    "Portfolio",
    "Position",
    "TradeParams",
    "TradeResult",
    "PortfolioStore",
    "TradeValidator",
    "get_approval_tier",
]
