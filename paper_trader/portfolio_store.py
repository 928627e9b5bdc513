# =============================================================================
# POLYMARKET RESEARCH DESK - PORTFOLIO STORE
# =============================================================================
#
# Durable record of cash, starting capital and open positions.
# Backed by state/portfolio.json (one JSON document, atomic writes).
#
# Only the paper executor mutates the portfolio. Everything else reads.
#
# =============================================================================

import logging
from pathlib import Path
from typing import Callable, Optional, Tuple, TypeVar

from paper_trader.models import Portfolio
from shared.document_store import JsonDocumentStore, utc_now_iso
from shared.engine_config import get_engine_config

logger = logging.getLogger(__name__)

T = TypeVar("T")

PORTFOLIO_FILENAME = "portfolio.json"


class PortfolioStore:
    """Typed access to the portfolio document."""

    def __init__(self, path: Optional[Path] = None, starting_capital: Optional[float] = None):
        config = get_engine_config()
        self.path = Path(path) if path else config.paths.state_dir / PORTFOLIO_FILENAME
        self.starting_capital = (
            starting_capital if starting_capital is not None
            else config.risk.starting_capital
        )
        self._doc = JsonDocumentStore(self.path, "portfolio", self._bootstrap)

    def _bootstrap(self):
        return Portfolio(
            cash=self.starting_capital,
            starting_capital=self.starting_capital,
            created_at=utc_now_iso(),
        ).to_dict()

    def load(self) -> Portfolio:
        return Portfolio.from_dict(self._doc.read().data)

    def load_versioned(self) -> Tuple[Portfolio, int]:
        doc = self._doc.read()
        return Portfolio.from_dict(doc.data), doc.version

    def save(self, portfolio: Portfolio, expected_version: int) -> int:
        """Write the whole portfolio back. Raises ConcurrencyError on a stale version."""
        return self._doc.compare_and_swap(portfolio.to_dict(), expected_version)

    def mutate(self, mutator: Callable[[Portfolio], T]) -> T:
        """
        Load, apply mutator, save. Nothing is written if mutator raises.

        Returns:
            Whatever the mutator returns
        """
        portfolio, version = self.load_versioned()
        result = mutator(portfolio)
        self.save(portfolio, version)
        return result

    def ensure_initialized(self) -> bool:
        """Create the portfolio document with starting capital if missing."""
        created = self._doc.initialize(self._bootstrap())
        if created:
            logger.info(
                f"Portfolio initialized at {self.path} "
                f"with ${self.starting_capital:,.2f}"
            )
        return created

    def raw_bytes(self) -> bytes:
        """Stored file content; empty when the document does not exist yet."""
        if not self.path.exists():
            return b""
        return self.path.read_bytes()
