"""Trigger a workflow_dispatch event and report the run it created."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone

from .auth import require_token
from .config import AppConfig
from .correlator import correlate_run
from .errors import (
    AUTHENTICATION_FAILED,
    NOT_FOUND_OR_FORBIDDEN,
    PROVIDER_ERROR,
    VALIDATION_FAILED,
    SafeError,
)
from .github_client import GitHubClient, RequestBudget
from .models import DispatchRequest, DispatchResult

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def translate_dispatch_error(err: SafeError) -> SafeError:
    """Map a generic GitHub failure from the dispatch endpoint onto a stable error kind."""
    if err.code != PROVIDER_ERROR or err.status_code is None:
        return err

    status = err.status_code
    detail = err.provider_message or err.message
    if status == 404:
        return SafeError(
            code=NOT_FOUND_OR_FORBIDDEN,
            message=f"Workflow not found or no permission: {detail}",
            hint="Check owner, repo and workflow_id, and that the token can see the repository",
            status_code=status,
            provider_message=err.provider_message,
        )
    if status == 422:
        return SafeError(
            code=VALIDATION_FAILED,
            message=(
                f"Validation failed: {detail}. This could be due to invalid inputs "
                "or the workflow doesn't support manual triggers."
            ),
            hint="The workflow must declare a workflow_dispatch trigger and accept the given inputs",
            status_code=status,
            provider_message=err.provider_message,
        )
    if status in (401, 403):
        return SafeError(
            code=AUTHENTICATION_FAILED,
            message=f"Authentication failed: {detail}. Make sure your token has the 'workflow' scope.",
            hint="Use a token with the 'workflow' scope",
            status_code=status,
            provider_message=err.provider_message,
        )
    return SafeError(
        code=PROVIDER_ERROR,
        message=f"GitHub API error: {status} - {detail}",
        status_code=status,
        provider_message=err.provider_message,
    )


async def dispatch_workflow(
    github: GitHubClient,
    config: AppConfig,
    request: DispatchRequest,
    *,
    clock: Callable[[], datetime] = _utcnow,
) -> DispatchResult:
    """Fire a workflow_dispatch event, then correlate the run it created.

    The dispatch POST is sent exactly once. Once it has succeeded the result is always a
    success; a run that cannot be located is reported through the result's note.

    Raises:
        SafeError: MissingCredential before any request when no token is resolvable, or the
            translated GitHub failure of the dispatch call.
    """
    token = require_token(request.token, config)
    budget = RequestBudget(total_timeout_s=config.limits.total_timeout_s)
    path = f"/repos/{request.owner}/{request.repo}/actions/workflows/{request.workflow_id}/dispatches"

    dispatched_at = clock()
    try:
        await github.request_no_content(
            method="POST",
            path=path,
            token=token,
            json_body={"ref": request.ref, "inputs": dict(request.inputs)},
            budget=budget,
        )
    except SafeError as err:
        translated = translate_dispatch_error(err)
        logger.warning("Dispatch of %s workflow %s failed: %s", request.target_repo, request.workflow_id, translated.code)
        if translated is err:
            raise
        raise translated from err

    logger.info("Dispatched %s workflow %s on %s", request.target_repo, request.workflow_id, request.ref)

    try:
        correlation = await correlate_run(
            github,
            owner=request.owner,
            repo=request.repo,
            workflow_id=request.workflow_id,
            token=token,
            dispatched_at=dispatched_at,
            limits=config.limits,
            budget=budget,
        )
    except asyncio.CancelledError:
        # The dispatch cannot be undone; only the report back is abandoned.
        logger.warning(
            "Dispatch of %s workflow %s was sent; run correlation abandoned",
            request.target_repo,
            request.workflow_id,
        )
        raise

    return DispatchResult(correlation=correlation)
