# ============================================================================
# NOTIFICATIONS
# ============================================================================
# STATUS: Infrastructure - Outbound email boundary
# PURPOSE: Interface hand-written tasks use to send email
# CREATED: 19 OCT 2026
# ============================================================================
"""
Notifications

Only hand-written tasks send email. The engine ships a LoggingNotifier
that records what would have been sent; deployments inject a real
transport implementing the same protocol.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass
class SentEmail:
    to: str
    subject: str
    html: str
    text: Optional[str] = None


class Notifier(Protocol):
    async def send_email(
        self,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
    ) -> None: ...


@dataclass
class LoggingNotifier:
    """Notifier that logs and remembers messages instead of sending them."""
    sent: List[SentEmail] = field(default_factory=list)

    async def send_email(
        self,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
    ) -> None:
        self.sent.append(SentEmail(to=to, subject=subject, html=html, text=text))
        logger.info(f"Email to {to}: {subject}")


__all__ = ["SentEmail", "Notifier", "LoggingNotifier"]
