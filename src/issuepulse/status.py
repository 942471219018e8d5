"""Lifecycle state machine for approved issues: ignite → debated → closed.

Only forward moves happen here. A closed issue is never reopened and a
rejected one is never revisited; reversing either is an operator action.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, Field

from issuepulse.config import PipelineConfig
from issuepulse.heat import calculate_heat_index
from issuepulse.models import ApprovalStatus, Issue, IssueStatus
from issuepulse.store import IssueStore, StoreError, as_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transition:
    new_status: IssueStatus | None  # None → stay put
    reason: str


def _elapsed_hours(issue: Issue, now: datetime) -> float:
    base = issue.approved_at or issue.created_at
    return (as_utc(now) - as_utc(base)).total_seconds() / 3600


def evaluate_transition(
    issue: Issue,
    heat: int | None,
    now: datetime,
    config: PipelineConfig,
    recent_links: Callable[[datetime], int],
) -> Transition:
    """Decide the next lifecycle stage for *issue*.

    *recent_links* is called with the idle cutoff and must return how many
    raw items linked to the issue were created since then. It is only
    consulted for debated issues that still carry heat.
    """
    heat = heat or 0
    elapsed = _elapsed_hours(issue, now)

    if issue.status == IssueStatus.IGNITE:
        if elapsed < config.ignite_to_debate_hours:
            return Transition(
                None,
                f"{elapsed:.1f}h elapsed, waiting for {config.ignite_to_debate_hours}h",
            )
        if heat < config.closed_max_heat:
            return Transition(
                IssueStatus.CLOSED,
                f"heat {heat} below {config.closed_max_heat}, closing without debate",
            )
        if heat >= config.ignite_min_heat:
            return Transition(IssueStatus.DEBATED, f"heat {heat} after {elapsed:.1f}h")
        return Transition(
            None, f"heat {heat} short of {config.ignite_min_heat} to move to debate"
        )

    if issue.status == IssueStatus.DEBATED:
        if heat < config.closed_max_heat:
            return Transition(
                IssueStatus.CLOSED, f"heat {heat} below {config.closed_max_heat}"
            )
        since = now - timedelta(hours=config.closed_idle_hours)
        recent = recent_links(since)
        if recent == 0:
            return Transition(
                IssueStatus.CLOSED,
                f"no new items in the last {config.closed_idle_hours}h",
            )
        return Transition(None, f"{recent} new items, heat {heat}: still debated")

    return Transition(None, "closed: no automatic transition")


class IssueUpdate(BaseModel):
    issue_id: str
    title: str
    heat_index: int
    changes: list[str] = Field(default_factory=list)


class HeatPassResult(BaseModel):
    processed: int = 0
    auto_approved: int = 0
    auto_rejected: int = 0
    transitioned: int = 0
    updates: list[IssueUpdate] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


def _moderate_pending(
    store: IssueStore,
    issue: Issue,
    heat: int,
    now: datetime,
    config: PipelineConfig,
    result: HeatPassResult,
    update: IssueUpdate,
) -> Issue:
    """Settle a pending issue whose heat has clearly moved one way."""
    if heat < config.min_heat_to_register:
        store.update_issue(issue.id, now, approval_status=ApprovalStatus.REJECTED)
        result.auto_rejected += 1
        update.changes.append("pending → rejected")
        return issue.model_copy(update={"approval_status": ApprovalStatus.REJECTED})
    if heat >= config.auto_approve_heat:
        store.update_issue(
            issue.id, now, approval_status=ApprovalStatus.APPROVED, approved_at=now
        )
        result.auto_approved += 1
        update.changes.append("pending → approved")
        return issue.model_copy(
            update={"approval_status": ApprovalStatus.APPROVED, "approved_at": now}
        )
    return issue


def recalculate_issues(
    store: IssueStore,
    config: PipelineConfig,
    *,
    now: datetime | None = None,
) -> HeatPassResult:
    """Refresh heat for open issues, settle pending ones, and advance lifecycles.

    Closed issues are skipped. The least recently updated issues go first, and
    every processed issue gets its ``updated_at`` bumped, so successive passes
    rotate through more issues than fit in one batch.
    """
    now = as_utc(now or datetime.now(UTC))
    issues = store.list_issues(
        [ApprovalStatus.APPROVED, ApprovalStatus.PENDING],
        limit=config.heat_batch_size,
        exclude_closed=True,
        oldest_first=True,
    )
    result = HeatPassResult()

    for issue in issues:
        try:
            heat = calculate_heat_index(store, issue.id, now)
            update = IssueUpdate(issue_id=issue.id, title=issue.title, heat_index=heat)

            if issue.approval_status == ApprovalStatus.PENDING:
                issue = _moderate_pending(store, issue, heat, now, config, result, update)

            if issue.approval_status == ApprovalStatus.APPROVED:
                transition = evaluate_transition(
                    issue,
                    heat,
                    now,
                    config,
                    lambda since, issue_id=issue.id: store.count_links_since(issue_id, since),
                )
                if transition.new_status is not None:
                    store.update_issue(issue.id, now, status=transition.new_status)
                    result.transitioned += 1
                    update.changes.append(
                        f"{issue.status.value} → {transition.new_status.value} ({transition.reason})"
                    )
                    logger.info(
                        "Issue '%s': %s → %s (%s)",
                        issue.title, issue.status.value,
                        transition.new_status.value, transition.reason,
                    )
        except StoreError as exc:
            logger.exception("Heat pass failed for issue %s", issue.id)
            result.errors.append(f"heat {issue.id}: {exc}")
            continue

        result.processed += 1
        result.updates.append(update)

    logger.info(
        "Heat pass: %d issues, %d approved, %d rejected, %d transitioned",
        result.processed, result.auto_approved, result.auto_rejected, result.transitioned,
    )
    return result
