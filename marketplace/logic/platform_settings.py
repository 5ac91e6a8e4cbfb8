# marketplace/logic/platform_settings.py
import logging

import psycopg2.extras

from .payout_splitter import validate_commission_rate

logger = logging.getLogger(__name__)


def get_commission_settings(conn):
    """Latest row of platform_settings, or None when no admin ever set a rate."""
    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute("""
            SELECT id, commission_rate, previous_rate, updated_by, updated_at
            FROM platform_settings
            ORDER BY updated_at DESC
            LIMIT 1
        """)
        row = cur.fetchone()
    return dict(row) if row else None


def get_commission_rate(conn, default_rate: float) -> float:
    settings = get_commission_settings(conn)
    if not settings or settings.get("commission_rate") is None:
        return validate_commission_rate(default_rate)
    return validate_commission_rate(settings["commission_rate"])


def set_commission_rate(conn, rate, updated_by=None, default_rate: float = 0.0):
    """Appends a new settings row; the old rate is kept as ``previous_rate``.

    Does not commit.
    """
    rate = validate_commission_rate(rate)
    current = get_commission_settings(conn)
    previous = float(current["commission_rate"]) if current and current.get("commission_rate") is not None else default_rate

    with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute("""
            INSERT INTO platform_settings (commission_rate, previous_rate, updated_by, updated_at)
            VALUES (%s, %s, %s, NOW())
            RETURNING id, commission_rate, previous_rate, updated_by, updated_at
        """, (rate, previous, updated_by))
        row = dict(cur.fetchone())
    logger.info("Commission rate changed from %s to %s by %s", previous, rate, updated_by)
    return row
