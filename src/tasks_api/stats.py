from __future__ import annotations

import logging
from typing import Any, Dict, List

from .query import build_filter
from .repositories import Repository

logger = logging.getLogger(__name__)


def _groups(repo: Repository, owner_id: str, field_name: str) -> List[Dict[str, Any]]:
    return [{"key": key, "count": count} for key, count in repo.group_counts(owner_id, field_name)]


# PUBLIC_INTERFACE
def aggregate_stats(repo: Repository, owner_id: str) -> Dict[str, Any]:
    """
    Count owner_id's tasks overall, per status and per priority.

    Only values that occur are listed, so consumers must read a missing key as
    zero. The three reads are independent and need not agree with each other
    if tasks change in between.

    Returns:
        {"total": int, "by_status": [{"key", "count"}], "by_priority": [{"key", "count"}]}
    """
    by_status = _groups(repo, owner_id, "status")
    by_priority = _groups(repo, owner_id, "priority")
    total = repo.count(build_filter(owner_id))
    logger.debug("Stats for owner=%s total=%d", owner_id, total)
    return {"total": total, "by_status": by_status, "by_priority": by_priority}
