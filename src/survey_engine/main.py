from __future__ import annotations

import logging

from .config import Settings
from .db import init_db
from .stats import reconcile_all


logger = logging.getLogger(__name__)


def main() -> None:
    """Create missing tables and run one statistics reconciliation pass."""
    settings = Settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db()
    totals = reconcile_all(settings=settings)
    logger.info("Reconciled statistics for %d surveys", len(totals))


if __name__ == "__main__":  # pragma: no cover
    main()
