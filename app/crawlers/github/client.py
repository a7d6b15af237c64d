"""Resilient async GitHub client producing per-project activity snapshots."""

from __future__ import annotations

import asyncio
from datetime import datetime
import logging
import re
import time
from typing import Any, Optional

from dateutil import parser as date_parser
import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.config.settings import settings
from app.crawlers.github.contracts import FetchResult, FetchState
from app.services.health.timeutils import ensure_utc, utcnow
from app.services.health.types import ActivityLabel, ActivitySnapshot, CIStatusValue, DeployStatus

logger = logging.getLogger(__name__)

_REDACTED_VALUE = "***REDACTED***"
_SENSITIVE_KEYS = (
    "authorization",
    "token",
    "api_key",
    "apikey",
    "secret",
    "password",
    "cookie",
    "session",
)
_PAYLOAD_KEYS = ("body", "raw", "content", "payload", "response")
_TOKEN_PATTERNS = (
    re.compile(r"(?i)(bearer\s+)[^\s,;]+"),
    re.compile(r"(?i)(token\s*[=:]\s*)[^\s,;]+"),
    re.compile(r"(?i)(access_token=)[^&\s]+"),
    re.compile(r"(?i)(api[_-]?key\s*[=:]\s*)[^\s,;]+"),
    re.compile(r"(?i)(secret\s*[=:]\s*)[^\s,;]+"),
)

_GITHUB_PREFIX = re.compile(r"^(?:https?://)?(?:www\.)?github\.com/", re.IGNORECASE)

_DEPLOY_FAILED_STATES = {"failure", "error"}
_DEPLOY_PENDING_STATES = {"pending", "queued", "in_progress"}


def sanitize_for_log(value: Any, *, key: Optional[str] = None) -> Any:
    """Return a recursively sanitized copy of log payloads."""

    if key and _contains_keyword(key, _SENSITIVE_KEYS):
        return _REDACTED_VALUE

    if isinstance(value, dict):
        sanitized: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            field = str(raw_key)
            if _contains_keyword(field, _SENSITIVE_KEYS):
                sanitized[field] = _REDACTED_VALUE
                continue
            if _contains_keyword(field, _PAYLOAD_KEYS) and isinstance(raw_value, str):
                sanitized[field] = _redact_payload(raw_value)
                continue
            sanitized[field] = sanitize_for_log(raw_value, key=field)
        return sanitized

    if isinstance(value, (list, tuple, set)):
        return [sanitize_for_log(item, key=key) for item in value]

    if isinstance(value, str):
        redacted = _redact_text(value)
        if key and _contains_keyword(key, _PAYLOAD_KEYS):
            return _redact_payload(redacted)
        return redacted

    return value


def sanitize_log_extra(**kwargs: Any) -> dict[str, Any]:
    """Helper for `extra=` payloads in structured logging."""

    return {key: sanitize_for_log(value, key=key) for key, value in kwargs.items()}


def _contains_keyword(field_name: str, keywords: tuple[str, ...]) -> bool:
    lowered = field_name.lower()
    return any(keyword in lowered for keyword in keywords)


def _redact_payload(raw: str) -> str:
    trimmed = raw.strip()
    if not trimmed:
        return ""
    return f"<redacted payload ({len(raw)} chars)>"


def _redact_text(raw: str) -> str:
    redacted = raw
    for pattern in _TOKEN_PATTERNS:
        redacted = pattern.sub(rf"\1{_REDACTED_VALUE}", redacted)
    return redacted


def parse_repo(repo: Optional[str]) -> Optional[tuple[str, str]]:
    """Split `owner/name`, `github.com/owner/name` or a full repo URL."""
    if not repo:
        return None
    trimmed = _GITHUB_PREFIX.sub("", repo.strip())
    parts = [part for part in trimmed.split("/") if part]
    if len(parts) < 2:
        return None
    owner, name = parts[0], parts[1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not owner or not name:
        return None
    return owner, name


def parse_github_datetime(raw: Any) -> Optional[datetime]:
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        return ensure_utc(date_parser.isoparse(raw.strip()))
    except (ValueError, OverflowError):
        return None


def compute_activity_label(last_commit_at: Optional[datetime], now: Optional[datetime] = None) -> ActivityLabel:
    """Hot within a week, Warm within a month, Cold within a quarter, else Frozen."""
    if last_commit_at is None:
        return "Unknown"
    now = now or utcnow()
    days = (ensure_utc(now) - ensure_utc(last_commit_at)).total_seconds() / 86400
    if days <= 7:
        return "Hot"
    if days <= 30:
        return "Warm"
    if days <= 90:
        return "Cold"
    return "Frozen"


def ci_status_from_conclusion(conclusion: Any) -> CIStatusValue:
    if conclusion == "success":
        return "success"
    if conclusion:
        return "failure"
    return "unknown"


def deploy_status_from_state(state: Any) -> str:
    if state in _DEPLOY_FAILED_STATES:
        return "failed"
    if state == "success":
        return "success"
    if state in _DEPLOY_PENDING_STATES:
        return "pending"
    return "unknown"


class _RateLimitRetryableError(Exception):
    """Retryable rate-limit signal for tenacity."""


class GitHubActivityClient:
    """GitHub API client with rate-limit resilience.

    `fetch_activity` and `fetch_deploy_status` never raise: missing or failed
    data is reported as `None` fields or a `None` result.
    """

    BASE_URL = "https://api.github.com"
    API_VERSION = "2022-11-28"
    ACCEPT_JSON = "application/vnd.github+json"

    def __init__(
        self,
        *,
        token: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
        rate_limit_buffer_seconds: Optional[int] = None,
        base_url: Optional[str] = None,
        transport: Optional[Any] = None,
    ) -> None:
        self._token = token or settings.GITHUB_TOKEN
        self._timeout_seconds = timeout_seconds or settings.GITHUB_TIMEOUT_SECONDS
        self._max_retries = max_retries or settings.GITHUB_MAX_RETRIES
        self._backoff_base_seconds = (
            backoff_base_seconds if backoff_base_seconds is not None else settings.GITHUB_BACKOFF_BASE_SECONDS
        )
        self._backoff_max_seconds = (
            backoff_max_seconds if backoff_max_seconds is not None else settings.GITHUB_BACKOFF_MAX_SECONDS
        )
        self._rate_limit_buffer_seconds = (
            rate_limit_buffer_seconds
            if rate_limit_buffer_seconds is not None
            else settings.GITHUB_RATE_LIMIT_BUFFER_SECONDS
        )
        self._base_url = base_url or self.BASE_URL
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "GitHubActivityClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch_activity(self, repo: str, *, now: Optional[datetime] = None) -> Optional[ActivitySnapshot]:
        """Latest commit, open issue count and CI conclusion for `repo`."""
        parsed = parse_repo(repo)
        if parsed is None:
            logger.info("Skipping unparsable repository reference", extra=sanitize_log_extra(repo=repo))
            return None
        owner, name = parsed

        try:
            commits, issues, runs = await asyncio.gather(
                self._request(f"/repos/{owner}/{name}/commits", params={"per_page": 1}),
                self._request(
                    "/search/issues",
                    params={"q": f"repo:{owner}/{name} type:issue state:open", "per_page": 1},
                ),
                self._request(f"/repos/{owner}/{name}/actions/runs", params={"per_page": 1}),
            )
        except Exception as exc:
            logger.warning(
                "GitHub activity fetch failed",
                extra=sanitize_log_extra(repo=f"{owner}/{name}", error=str(exc)),
            )
            return None

        latest_commit = commits.data[0] if commits.ok and isinstance(commits.data, list) and commits.data else None
        commit_payload = latest_commit.get("commit", {}) if isinstance(latest_commit, dict) else {}
        last_commit_at = parse_github_datetime((commit_payload.get("author") or {}).get("date"))

        issues_payload = issues.data if issues.ok and isinstance(issues.data, dict) else {}
        total_count = issues_payload.get("total_count")
        open_issues = total_count if isinstance(total_count, int) else None

        runs_payload = runs.data if runs.ok and isinstance(runs.data, dict) else {}
        workflow_runs = runs_payload.get("workflow_runs") or []
        latest_run = workflow_runs[0] if isinstance(workflow_runs, list) and workflow_runs else {}

        return ActivitySnapshot(
            last_commit_at=last_commit_at,
            open_issues=open_issues,
            ci_status=ci_status_from_conclusion(latest_run.get("conclusion") if isinstance(latest_run, dict) else None),
            activity_label=compute_activity_label(last_commit_at, now),
            last_commit_message=commit_payload.get("message"),
            repo_url=f"https://github.com/{owner}/{name}",
        )

    async def fetch_deploy_status(self, repo: str) -> Optional[DeployStatus]:
        """State of the most recent deployment, or None when there is none."""
        parsed = parse_repo(repo)
        if parsed is None:
            return None
        owner, name = parsed

        try:
            deployments = await self._request(f"/repos/{owner}/{name}/deployments", params={"per_page": 1})
            if not deployments.ok or not isinstance(deployments.data, list) or not deployments.data:
                return None

            deployment_id = deployments.data[0].get("id")
            if deployment_id is None:
                return None

            statuses = await self._request(
                f"/repos/{owner}/{name}/deployments/{deployment_id}/statuses",
                params={"per_page": 1},
            )
            if not statuses.ok or not isinstance(statuses.data, list) or not statuses.data:
                return DeployStatus(status="unknown")

            latest = statuses.data[0]
            return DeployStatus(
                status=deploy_status_from_state(latest.get("state")),
                timestamp=latest.get("created_at"),
            )
        except Exception as exc:
            logger.warning(
                "GitHub deploy status fetch failed",
                extra=sanitize_log_extra(repo=f"{owner}/{name}", error=str(exc)),
            )
            return None

    async def _request(self, path: str, *, params: Optional[dict[str, Any]] = None) -> FetchResult[Any]:
        client = await self._ensure_client()

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_retries),
                wait=wait_exponential(multiplier=self._backoff_base_seconds, max=self._backoff_max_seconds),
                retry=retry_if_exception_type(_RateLimitRetryableError),
                reraise=True,
            ):
                with attempt:
                    response = await client.get(path, params=params)

                    if response.status_code in (403, 429) and self._is_rate_limited(response):
                        wait_seconds = self._compute_rate_limit_wait(response.headers)
                        logger.warning(
                            "GitHub API rate limit encountered",
                            extra=sanitize_log_extra(
                                path=path,
                                params=params,
                                status_code=response.status_code,
                                retry_after_seconds=wait_seconds,
                            ),
                        )
                        if wait_seconds > 0:
                            await asyncio.sleep(wait_seconds)
                        raise _RateLimitRetryableError(
                            f"GitHub rate limit encountered ({response.status_code})"
                        )

                    response.raise_for_status()
                    payload = response.json()
                    if payload is None or (isinstance(payload, (list, dict)) and len(payload) == 0):
                        return FetchResult(state=FetchState.EMPTY, data=payload, status_code=response.status_code)
                    return FetchResult(state=FetchState.OK, data=payload, status_code=response.status_code)
        except _RateLimitRetryableError as exc:
            logger.warning(
                "GitHub request failed after rate-limit retries",
                extra=sanitize_log_extra(path=path, params=params, error=str(exc), status_code=429),
            )
            return FetchResult(state=FetchState.FAILED, error=str(exc), status_code=429)
        except httpx.HTTPError as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            logger.warning(
                "GitHub request failed",
                extra=sanitize_log_extra(path=path, params=params, error=str(exc), status_code=status_code),
            )
            return FetchResult(state=FetchState.FAILED, error=str(exc), status_code=status_code)
        except ValueError as exc:
            logger.warning(
                "GitHub response was not valid JSON",
                extra=sanitize_log_extra(path=path, error=str(exc)),
            )
            return FetchResult(state=FetchState.FAILED, error=str(exc))

        return FetchResult(state=FetchState.FAILED, error="Unknown GitHub request failure")

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client:
            return self._client

        headers = {
            "Accept": self.ACCEPT_JSON,
            "User-Agent": settings.USER_AGENT,
            "X-GitHub-Api-Version": self.API_VERSION,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout_seconds,
            transport=self._transport,
        )
        return self._client

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        return response.headers.get("x-ratelimit-remaining") == "0" or "retry-after" in response.headers

    def _compute_rate_limit_wait(self, headers: httpx.Headers) -> float:
        retry_after = headers.get("retry-after")
        if retry_after is not None:
            try:
                return min(max(float(retry_after), 0.0), self._backoff_max_seconds)
            except ValueError:
                pass

        reset_raw = headers.get("x-ratelimit-reset")
        if reset_raw is not None:
            try:
                reset_epoch = int(reset_raw)
                wait_seconds = reset_epoch - int(time.time()) + self._rate_limit_buffer_seconds
                return float(min(max(wait_seconds, 0), self._backoff_max_seconds))
            except ValueError:
                pass

        return self._backoff_base_seconds
