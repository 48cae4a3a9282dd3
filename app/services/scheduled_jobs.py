"""
Consultation Marketplace Platform
Scheduled Jobs.

Concrete job implementations that run on a schedule.

Jobs:
    - expire_invitations: expires overdue consultant invitations, then refunds
      submissions whose matching has failed
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from app.services.invitation_service import expire_invitations
from app.services.refund_service import Notifier, settle_refunds
from app.services.scheduler_service import register_job
from app.utils.helpers import resolve_now

logger = logging.getLogger(__name__)


def run_invitation_sweep(
    now: datetime | None = None,
    notifier: Notifier | None = None,
) -> dict[str, Any]:
    """Expire overdue invitations, then settle refunds, against one clock reading.

    Per-item failures are counted in the summary, never raised.
    """
    now = resolve_now(now)
    logger.info("Starting invitation expiry sweep at %s", now.isoformat(),
                extra={"job_name": "expire_invitations"})

    invitations = expire_invitations(now=now)
    refunds = settle_refunds(now=now, notifier=notifier)

    results = {"invitations": invitations, "refunds": refunds}
    logger.info(
        "Invitation sweep done: %d/%d invitation(s) expired, %d refund(s) (%d tokens), "
        "%d error(s)",
        invitations["expired"], invitations["found"],
        refunds["refunded"], refunds["refunded_tokens"],
        invitations["errors"] + refunds["errors"],
        extra={"job_name": "expire_invitations"},
    )
    return results


# ═══════════════════════════════════════════════════════════════════════════
#  Job: Invitation expiry and refund settlement
# ═══════════════════════════════════════════════════════════════════════════

@register_job("expire_invitations")
def run_expire_invitations(app) -> dict[str, Any]:
    """Expire overdue consultant invitations and refund unmatched problems."""
    return run_invitation_sweep()
