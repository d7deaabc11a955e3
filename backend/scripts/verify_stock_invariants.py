"""
Report products / colours whose stored stock no longer matches their variants.

Read-only. Exit code 1 when drift is found so it can run from cron or CI.

Run locally:
  cd backend && python -m scripts.verify_stock_invariants
"""

from __future__ import annotations

import asyncio
import sys

from core.logging import configure_logging, get_logger
from db.database import async_session_maker
from services.reporting import find_drift

logger = get_logger(__name__)


async def main() -> int:
    configure_logging()
    async with async_session_maker() as db:
        drift = await find_drift(db)

    for d in drift:
        logger.warning(
            "stock_drift",
            node_kind=d.node_kind,
            node_id=str(d.node_id),
            product_id=str(d.product_id),
            recorded=d.recorded,
            expected=d.expected,
        )
    logger.info("stock_drift_checked", drifting_nodes=len(drift))
    return 1 if drift else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
