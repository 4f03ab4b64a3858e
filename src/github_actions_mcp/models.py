"""Value objects for workflow dispatch and run correlation.

All of these live for a single tool call only.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from .errors import user_input

DISPATCH_SUCCESS_MESSAGE = "Workflow dispatch event triggered successfully"

# Reported as the triggering actor when GitHub does not say who started a run.
UNKNOWN_ACTOR = "API"

Confidence = Literal["exact", "fallback"]

_PRIMITIVE_INPUT_TYPES = (str, int, float, bool)


def parse_github_timestamp(value: object) -> datetime | None:
    """Parse an RFC3339 timestamp like 2025-01-01T00:00:00Z into an aware UTC datetime."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class DispatchRequest:
    """A validated request to fire a workflow_dispatch event."""

    owner: str
    repo: str
    workflow_id: str
    ref: str = "main"
    inputs: Mapping[str, Any] = field(default_factory=dict)
    token: str | None = field(default=None, repr=False)

    @property
    def target_repo(self) -> str:
        return f"{self.owner}/{self.repo}"

    @classmethod
    def from_arguments(cls, arguments: Mapping[str, Any]) -> DispatchRequest:
        """Build a request from raw tool arguments.

        Raises:
            SafeError: UserInput when owner/repo/workflow_id are missing or inputs are malformed.
        """
        owner = arguments.get("owner")
        repo = arguments.get("repo")
        workflow_id = arguments.get("workflow_id")
        if isinstance(workflow_id, int) and not isinstance(workflow_id, bool):
            workflow_id = str(workflow_id)

        if not all(isinstance(v, str) and v.strip() for v in (owner, repo, workflow_id)):
            raise user_input("Owner, repo, and workflow_id are required")

        ref = arguments.get("ref")
        if ref is None or ref == "":
            ref = "main"
        if not isinstance(ref, str):
            raise user_input("Field 'ref' must be a string")

        inputs = arguments.get("inputs")
        if inputs is None:
            inputs = {}
        if not isinstance(inputs, Mapping):
            raise user_input("Field 'inputs' must be an object")
        for key, value in inputs.items():
            if not isinstance(value, _PRIMITIVE_INPUT_TYPES):
                raise user_input(f"Workflow input '{key}' must be a string, number or boolean")

        token = arguments.get("token")
        if token is not None and not isinstance(token, str):
            raise user_input("Field 'token' must be a string")

        return cls(
            owner=owner.strip(),
            repo=repo.strip(),
            workflow_id=workflow_id.strip(),
            ref=ref,
            inputs=dict(inputs),
            token=token or None,
        )


@dataclass(frozen=True, slots=True)
class RunSummary:
    """The workflow run believed to have been created by a dispatch."""

    id: int
    url: str | None
    status: str | None
    conclusion: str | None
    created_at: str
    triggered_by: str
    confidence: Confidence

    @classmethod
    def from_api(cls, run: Mapping[str, Any], *, confidence: Confidence) -> RunSummary:
        actor = run.get("triggering_actor")
        login = actor.get("login") if isinstance(actor, Mapping) else None
        return cls(
            id=run["id"],
            url=run.get("html_url"),
            status=run.get("status"),
            conclusion=run.get("conclusion"),
            created_at=run["created_at"],
            triggered_by=login if isinstance(login, str) and login else UNKNOWN_ACTOR,
            confidence=confidence,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "status": self.status,
            "conclusion": self.conclusion,
            "created_at": self.created_at,
            "triggered_by": self.triggered_by,
            "confidence": self.confidence,
        }


@dataclass(frozen=True, slots=True)
class Correlation:
    """Outcome of looking up the run a dispatch created: a run, or a note saying why not."""

    run: RunSummary | None = None
    note: str | None = None


@dataclass(frozen=True, slots=True)
class DispatchResult:
    """Successful dispatch, with or without a located run."""

    correlation: Correlation
    message: str = DISPATCH_SUCCESS_MESSAGE

    @property
    def run(self) -> RunSummary | None:
        return self.correlation.run

    @property
    def note(self) -> str | None:
        return self.correlation.note

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": True, "message": self.message}
        if self.run is not None:
            out["run"] = self.run.to_dict()
        else:
            out["note"] = self.note
        return out
