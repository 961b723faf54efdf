"""
Per-person batch execution with failure isolation.

Person ids are de-duplicated before scheduling, so no two workers ever
operate on the same person concurrently.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


@dataclass
class BatchReport:
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": len(self.succeeded),
            "failed": dict(self.failed),
        }


def unique_ids(person_ids: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for pid in person_ids:
        if pid and pid not in seen:
            seen.add(pid)
            ordered.append(pid)
    return ordered


def in_savepoint(session: Session, fn: Callable[[str], Any]) -> Callable[[str], Any]:
    """Wrap `fn` so a failed flush only rolls back that person's SAVEPOINT."""

    def run(person_id: str) -> Any:
        with session.begin_nested():
            return fn(person_id)

    return run


def rollback_on_error(session: Session, fn: Callable[[str], Any]) -> Callable[[str], Any]:
    """For `fn` that commits per person: discard a failed person's pending writes."""

    def run(person_id: str) -> Any:
        try:
            return fn(person_id)
        except Exception:
            session.rollback()
            raise

    return run


def run_per_person(
    person_ids: Iterable[str],
    fn: Callable[[str], Any],
    max_workers: int = 1,
    label: str = "batch",
) -> BatchReport:
    """
    Apply `fn` to every person id. One person's failure is logged and
    recorded, never raised. With max_workers > 1, `fn` must not share a
    Session between calls.
    """
    ids = unique_ids(person_ids)
    report = BatchReport()
    if not ids:
        return report

    if max_workers <= 1:
        for pid in ids:
            try:
                fn(pid)
                report.succeeded.append(pid)
            except Exception as e:
                logger.error("[%s] person %s failed: %s", label, pid, e, exc_info=True)
                report.failed[pid] = str(e)
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {executor.submit(fn, pid): pid for pid in ids}
            for future in as_completed(futures):
                pid = futures[future]
                try:
                    future.result()
                    report.succeeded.append(pid)
                except Exception as e:
                    logger.error("[%s] person %s failed: %s", label, pid, e, exc_info=True)
                    report.failed[pid] = str(e)

    logger.info(
        "[%s] done | total=%d succeeded=%d failed=%d",
        label, report.total, len(report.succeeded), len(report.failed),
    )
    return report
