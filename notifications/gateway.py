# =============================================================================
# POLYMARKET RESEARCH DESK - NOTIFICATION GATEWAY
# =============================================================================
#
# Delivers human-readable alerts and approval requests.
#
# The engine only talks to NotificationGateway. Delivery failures are
# logged and reported as False; they never abort a trade or an exit.
#
# GATEWAYS:
#   LoggingGateway   - writes to the log and keeps a copy in memory (default)
#   TelegramGateway  - Telegram Bot API via requests, credentials from .env
#
# SETUP (Telegram):
#   TELEGRAM_BOT_TOKEN=...   in .env
#   TELEGRAM_CHAT_ID=...     in .env
#   TELEGRAM_ENABLED=1       optional, set 0 to silence
#
# =============================================================================

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import requests
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org/bot{token}"
DEFAULT_TIMEOUT = 10
MAX_MESSAGE_LENGTH = 4096


@dataclass(frozen=True)
class Notification:
    title: str
    message: str
    level: str = "info"  # info | warning | critical
    approval_id: Optional[str] = None
    sent_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def render(self) -> str:
        text = f"{self.title}\n\n{self.message}"
        if self.approval_id:
            text += f"\n\nReply: /approve {self.approval_id} or /reject {self.approval_id}"
        return text


class NotificationGateway(ABC):
    """Interface. Subclasses implement deliver()."""

    @abstractmethod
    def deliver(self, notification: Notification) -> bool:
        ...

    def send_alert(self, title: str, message: str, level: str = "info") -> bool:
        return self.deliver(Notification(title=title, message=message, level=level))

    def request_approval(self, approval) -> bool:
        """Ask a human to approve a parked trade (a PendingApproval)."""
        params = approval.trade_params
        message = (
            f"{params.direction} {params.label}\n"
            f"Amount: ${params.amount:,.2f}\n"
            f"Price: {params.price * 100:.1f}c\n"
            f"Hypothesis: {params.hypothesis_id}\n\n"
            f"Rationale: {params.rationale[:200]}"
        )
        return self.deliver(Notification(
            title="Trade approval needed",
            message=message,
            level="warning",
            approval_id=approval.id,
        ))


class LoggingGateway(NotificationGateway):
    """Logs every notification and keeps it in `sent`."""

    def __init__(self):
        self.sent: List[Notification] = []

    def deliver(self, notification: Notification) -> bool:
        self.sent.append(notification)
        log = logger.warning if notification.level == "critical" else logger.info
        log(f"[notify:{notification.level}] {notification.title}: "
            f"{notification.message.splitlines()[0] if notification.message else ''}")
        return True


class TelegramGateway(NotificationGateway):
    """Telegram Bot API delivery. Unconfigured means every send returns False."""

    def __init__(
        self,
        token: Optional[str] = None,
        chat_id: Optional[str] = None,
        env_file: Optional[Path] = None,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        env_path = env_file or Path(__file__).parent.parent / ".env"
        if env_path.exists():
            load_dotenv(env_path)
        self.token = token or os.getenv("TELEGRAM_BOT_TOKEN", "").strip() or None
        raw_chat = chat_id or os.getenv("TELEGRAM_CHAT_ID", "") or ""
        # First id wins when a comma separated list is configured
        chat_ids = [p.strip() for p in raw_chat.split(",") if p.strip()]
        self.chat_id = chat_ids[0] if chat_ids else None
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        raw = os.getenv("TELEGRAM_ENABLED", "1")
        return raw.strip().lower() in ("1", "true", "yes", "on")

    def is_configured(self) -> bool:
        return bool(self.token and self.chat_id)

    def deliver(self, notification: Notification) -> bool:
        if not self.enabled or not self.is_configured():
            logger.debug("Telegram not configured, notification dropped")
            return False

        url = TELEGRAM_API_BASE.format(token=self.token) + "/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": notification.render()[:MAX_MESSAGE_LENGTH],
            "disable_web_page_preview": True,
            "disable_notification": notification.level == "info",
        }
        try:
            resp = requests.post(url, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout:
            logger.warning("Telegram: timeout while sending")
            return False
        except requests.exceptions.RequestException as e:
            logger.warning(f"Telegram: send failed: {e}")
            return False

        if resp.ok:
            logger.debug("Telegram: message sent")
            return True
        logger.warning(f"Telegram API error: {resp.status_code} {resp.text[:100]}")
        return False


def create_gateway(prefer_telegram: bool = True) -> NotificationGateway:
    """Telegram when credentials are present, logging otherwise."""
    if prefer_telegram:
        telegram = TelegramGateway()
        if telegram.is_configured():
            return telegram
    return LoggingGateway()
