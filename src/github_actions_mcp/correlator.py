"""Locate the workflow run created by a workflow_dispatch call.

GitHub's dispatch endpoint returns no run id, so the run is found by waiting a short
settling delay, listing the most recent runs of the workflow and picking the one whose
creation time is closest to the moment of dispatch. Concurrent dispatches of the same
workflow can still be attributed to the wrong run.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta
from typing import Any

from .config import LimitsConfig
from .errors import SafeError
from .github_client import GitHubClient, RequestBudget
from .models import Confidence, Correlation, RunSummary, parse_github_timestamp

logger = logging.getLogger(__name__)

NOTE_RUN_NOT_AVAILABLE = (
    "Workflow run information not available yet. The run is being created. "
    "Check the repository Actions tab for status in a few seconds."
)
NOTE_NO_MATCHING_RUN = (
    "No workflow run created around the time of this dispatch was found yet. "
    "The run may still be queued. Check the repository Actions tab for status in a few seconds."
)


def _timed_runs(runs: Sequence[object]) -> list[tuple[datetime, Mapping[str, Any]]]:
    timed: list[tuple[datetime, Mapping[str, Any]]] = []
    for run in runs:
        if not isinstance(run, Mapping) or not isinstance(run.get("id"), int):
            continue
        created = parse_github_timestamp(run.get("created_at"))
        if created is None:
            continue
        timed.append((created, run))
    return timed


def select_run(
    runs: Sequence[object],
    *,
    dispatched_at: datetime,
    window_s: float,
) -> tuple[Mapping[str, Any], Confidence] | None:
    """Pick the run most likely created by a dispatch at `dispatched_at`.

    `runs` is in API order (newest first). Runs created within `window_s` of the dispatch
    are candidates and the latest of them wins. Without candidates, the newest run is
    returned as a fallback unless it predates the window, in which case nothing matches.
    """
    window = timedelta(seconds=window_s)
    timed = _timed_runs(runs)
    if not timed:
        return None

    candidates = [(created, run) for created, run in timed if abs(created - dispatched_at) <= window]
    if candidates:
        # Same second: the higher run id was created later.
        _, best = max(candidates, key=lambda pair: (pair[0], pair[1]["id"]))
        return best, "exact"

    newest_created, newest = timed[0]
    if newest_created < dispatched_at - window:
        return None
    return newest, "fallback"


async def correlate_run(
    github: GitHubClient,
    *,
    owner: str,
    repo: str,
    workflow_id: str,
    token: str | None,
    dispatched_at: datetime,
    limits: LimitsConfig,
    budget: RequestBudget,
) -> Correlation:
    """Wait for the settling delay, then find the run a dispatch produced.

    Lookup problems are reported through the returned note, never raised.
    """
    await asyncio.sleep(limits.settle_delay_s)

    try:
        data = await github.request_json(
            method="GET",
            path=f"/repos/{owner}/{repo}/actions/workflows/{workflow_id}/runs",
            params={"per_page": str(limits.recent_runs_per_page)},
            token=token,
            budget=budget,
        )
    except SafeError as err:
        logger.warning("Run lookup for %s/%s workflow %s failed: %s", owner, repo, workflow_id, err.message)
        return Correlation(
            note=(
                f"Workflow run lookup failed ({err.message}). The dispatch was accepted; "
                "check the repository Actions tab for status."
            )
        )

    runs = data.get("workflow_runs") if isinstance(data, Mapping) else None
    if not isinstance(runs, list) or not runs:
        return Correlation(note=NOTE_RUN_NOT_AVAILABLE)

    selected = select_run(runs, dispatched_at=dispatched_at, window_s=limits.correlation_window_s)
    if selected is None:
        logger.info("No run of %s/%s workflow %s near dispatch time among %d", owner, repo, workflow_id, len(runs))
        return Correlation(note=NOTE_NO_MATCHING_RUN)

    run, confidence = selected
    logger.info("Correlated dispatch to run %s (%s)", run["id"], confidence)
    return Correlation(run=RunSummary.from_api(run, confidence=confidence))
