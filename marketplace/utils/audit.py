"""
Admin action auditing.

Best-effort: writes to the admin_logs table through Supabase and never
raises, so a logging failure cannot break the admin request.

Usage:
    from marketplace.utils.audit import log_admin_action

    log_admin_action(g.user_id, "UpdateCommission", "0.0 -> 0.1", request)

Instrumented routes:
    - Delivery fee routes (/api/admin/delivery-fees)
    - Commission rate (/api/admin/settings/commission)
    - Commission payments (/api/admin/commissions/mark-paid)
"""
import logging
from typing import Optional
from datetime import datetime, timezone
from flask import Request

from . import helpers

logger = logging.getLogger(__name__)

MAX_DETAILS_LENGTH = 16 * 1024


def log_admin_action(admin: str, action: str, details: str, request: Optional[Request] = None) -> None:
    """
    Args:
        admin: Admin user id
        action: Short action verb (e.g. "CreateDeliveryFee", "UpdateCommission")
        details: Concise summary of the action
        request: Optional Flask request, adds IP and User-Agent to the details
    """
    try:
        client = helpers.supabase
        if not client:
            logger.warning("Audit logging skipped: Supabase client not available")
            return

        if not admin or not action or not details:
            logger.warning("Audit logging skipped: missing admin, action or details")
            return

        admin = str(admin).strip()[:255]
        action = action.strip()[:100]
        details = details.strip()

        if request is not None:
            ip_address = request.remote_addr or request.environ.get('REMOTE_ADDR', 'unknown')
            user_agent = request.headers.get('User-Agent', 'unknown')
            details += f" | ip={ip_address} ua={user_agent[:100]}"

        if len(details) > MAX_DETAILS_LENGTH:
            details = details[:MAX_DETAILS_LENGTH - 3] + "..."

        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "admin": admin,
            "action": action,
            "details": details,
        }

        result = client.table("admin_logs").insert(log_entry).execute()

        if result.data:
            logger.info(f"Admin action logged: {action} by {admin}")
        else:
            logger.warning(f"Failed to log admin action: {action} by {admin} - no data returned")

    except Exception as e:
        logger.warning(f"Failed to log admin action ({action} by {admin}): {e}")
