# =============================================================================
# POLYMARKET RESEARCH DESK - NOTIFICATIONS
# =============================================================================

from notifications.gateway import (
    LoggingGateway,
    Notification,
    NotificationGateway,
    TelegramGateway,
    create_gateway,
)

__all__ = [
    "LoggingGateway",
    "Notification",
    "NotificationGateway",
    "TelegramGateway",
    "create_gateway",
]
