"""GitHub REST client that replays history events."""

import base64
import logging
import re
import time
from typing import Any, Callable
from urllib.parse import quote

import requests

from ..errors import RateLimitedError, RemoteAccessError, RemoteError, RemoteEventError
from ..models.config import WeaveConfig
from ..models.event import EventKind, HistoryEvent
from ..remote import RemoteRepository

logger = logging.getLogger(__name__)

ReviewDrafter = Callable[[str, str], str]

CO_AUTHOR_TAGS = {"pair", "co-authored", "coauthored"}
CLOSE_TAGS = {"closed", "fix", "resolved"}
MERGE_TAGS = {"merge", "merged"}
GITFLOW_BASE = "develop"
LFS_ATTRIBUTES = "*.bin filter=lfs diff=lfs merge=lfs -text\n*.psd filter=lfs diff=lfs merge=lfs -text\n"


class GitHubClient(RemoteRepository):
    """Client for the GitHub REST API.

    Maps each history event kind onto a remote mutation: contents commits,
    git refs for branches and tags, the merges endpoint, pull requests and
    issues. The token is only ever sent in the Authorization header.
    """

    BASE_URL = "https://api.github.com"

    def __init__(
        self,
        base_url: str | None = None,
        timeout_seconds: int = 30,
        review_drafter: ReviewDrafter | None = None,
    ):
        """Initialize GitHub client.

        Args:
            base_url: API root (defaults to https://api.github.com)
            timeout_seconds: Per-request timeout
            review_drafter: Optional callable(pr_title, snippet) -> comment,
                used to post a review comment on each opened pull request
        """
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.review_drafter = review_drafter
        self._default_branches: dict[str, str] = {}
        self._lfs_written: set[str] = set()
        self._gitflow_bases: set[str] = set()

    # -- RemoteRepository -------------------------------------------------

    def verify_access(self, token: str, repo_name: str, owner: str) -> None:
        """Check the repository exists and the token can push to it.

        Raises:
            RemoteAccessError: With a readable reason on any failure
        """
        if not token:
            raise RemoteAccessError("No access token provided")

        try:
            response = self._request("GET", f"/repos/{owner}/{repo_name}", token)
        except RemoteError as e:
            if e.status_code == 401:
                raise RemoteAccessError("Invalid or expired access token", status_code=401) from e
            if e.status_code == 404:
                raise RemoteAccessError(
                    f"Repository {owner}/{repo_name} not found or token lacks access",
                    status_code=404,
                ) from e
            if e.status_code == 403:
                raise RemoteAccessError(f"Access forbidden: {e}", status_code=403) from e
            raise RemoteAccessError(str(e), status_code=e.status_code) from e

        data = response.json()
        permissions = data.get("permissions")
        if isinstance(permissions, dict) and not permissions.get("push", False):
            raise RemoteAccessError(f"Token does not have push access to {owner}/{repo_name}")

        default_branch = data.get("default_branch")
        if default_branch:
            self._default_branches[self._repo_key(owner, repo_name)] = default_branch

    def execute_event(self, event: HistoryEvent, config: WeaveConfig) -> str:
        handlers = {
            EventKind.COMMIT: self._commit,
            EventKind.BRANCH: self._branch,
            EventKind.MERGE: self._merge,
            EventKind.PR: self._pull_request,
            EventKind.ISSUE: self._issue,
            EventKind.TAG: self._tag,
        }
        return handlers[event.kind](event, config)

    # -- Event handlers ---------------------------------------------------

    def _commit(self, event: HistoryEvent, config: WeaveConfig) -> str:
        branch = event.branch or self._default_branch(config)
        repo = self._repo_path(config)

        if config.include_lfs:
            self._ensure_lfs_attributes(config, branch)

        safe_id = re.sub(r"[^A-Za-z0-9_.-]", "-", event.id)
        path = f"history/{event.date.strftime('%Y-%m-%d')}-{safe_id}.md"
        signature = {
            "name": event.author,
            "email": f"{event.author}@users.noreply.github.com",
            "date": event.date.strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
        body = {
            "message": build_commit_message(event),
            "content": _b64(render_commit_note(event)),
            "branch": branch,
            "author": signature,
            "committer": signature,
        }
        url = f"{repo}/contents/{quote(path)}"
        try:
            response = self._request("PUT", url, config.github_token, json=body)
        except RemoteEventError as e:
            # 422: the file exists (replayed plan); overwriting needs its sha
            if e.status_code != 422:
                raise
            try:
                existing = self._request("GET", url, config.github_token, params={"ref": branch})
            except RemoteEventError:
                raise e from None
            body["sha"] = existing.json()["sha"]
            response = self._request("PUT", url, config.github_token, json=body)
        sha = (response.json().get("commit") or {}).get("sha", "")
        return f"Committed '{event.title}' to {branch} ({sha[:7] or 'no sha'})"

    def _branch(self, event: HistoryEvent, config: WeaveConfig) -> str:
        if not event.branch:
            raise RemoteEventError(f"Branch event {event.id} has no branch name")

        base = self._base_branch(config, event.branch)
        sha = self._head_sha(config, base)
        try:
            self._request(
                "POST",
                f"{self._repo_path(config)}/git/refs",
                config.github_token,
                json={"ref": f"refs/heads/{event.branch}", "sha": sha},
            )
        except RemoteEventError as e:
            if e.status_code == 422 and "already exists" in str(e).lower():
                return f"Branch {event.branch} already exists"
            raise
        return f"Created branch {event.branch} from {base}"

    def _merge(self, event: HistoryEvent, config: WeaveConfig) -> str:
        if not event.branch:
            raise RemoteEventError(f"Merge event {event.id} has no head branch")

        base = self._base_branch(config, event.branch)
        response = self._request(
            "POST",
            f"{self._repo_path(config)}/merges",
            config.github_token,
            json={"base": base, "head": event.branch, "commit_message": event.title},
        )
        if response.status_code == 204:
            return f"Nothing to merge: {base} already contains {event.branch}"
        sha = response.json().get("sha", "")
        return f"Merged {event.branch} into {base} ({sha[:7]})"

    def _pull_request(self, event: HistoryEvent, config: WeaveConfig) -> str:
        if not event.branch:
            raise RemoteEventError(f"PR event {event.id} has no head branch")

        repo = self._repo_path(config)
        base = self._base_branch(config, event.branch)
        response = self._request(
            "POST",
            f"{repo}/pulls",
            config.github_token,
            json={"title": event.title, "head": event.branch, "base": base, "body": event.description},
        )
        number = response.json()["number"]
        message = f"Opened PR #{number}: {event.title}"

        if self.review_drafter:
            comment = self.review_drafter(event.title, event.description)
            try:
                self._request(
                    "POST",
                    f"{repo}/issues/{number}/comments",
                    config.github_token,
                    json={"body": comment},
                )
            except RemoteEventError as e:
                # The PR exists; a missing comment does not fail the event
                logger.warning(f"Review comment on PR #{number} failed: {e}")
                message += " (review comment failed)"
            else:
                message += " (review comment posted)"

        if MERGE_TAGS & _lower_tags(event):
            self._request(
                "PUT",
                f"{repo}/pulls/{number}/merge",
                config.github_token,
                json={"commit_title": f"Merge pull request #{number}: {event.title}"},
            )
            message += " and merged"

        return message

    def _issue(self, event: HistoryEvent, config: WeaveConfig) -> str:
        repo = self._repo_path(config)
        response = self._request(
            "POST",
            f"{repo}/issues",
            config.github_token,
            json={"title": event.title, "body": event.description},
        )
        number = response.json()["number"]

        if CLOSE_TAGS & _lower_tags(event) or "quickdraw" in config.achievements:
            self._request(
                "PATCH",
                f"{repo}/issues/{number}",
                config.github_token,
                json={"state": "closed"},
            )
            return f"Opened and closed issue #{number}: {event.title}"
        return f"Opened issue #{number}: {event.title}"

    def _tag(self, event: HistoryEvent, config: WeaveConfig) -> str:
        name = tag_name_for(event)
        branch = event.branch or self._default_branch(config)
        sha = self._head_sha(config, branch)
        try:
            self._request(
                "POST",
                f"{self._repo_path(config)}/git/refs",
                config.github_token,
                json={"ref": f"refs/tags/{name}", "sha": sha},
            )
        except RemoteEventError as e:
            if e.status_code == 422 and "already exists" in str(e).lower():
                return f"Tag {name} already exists"
            raise
        return f"Tagged {name} at {branch} ({sha[:7]})"

    # -- Helpers ----------------------------------------------------------

    def _ensure_lfs_attributes(self, config: WeaveConfig, branch: str) -> None:
        key = f"{self._repo_key(config.username, config.target_repo)}@{branch}"
        if key in self._lfs_written:
            return
        try:
            self._request(
                "PUT",
                f"{self._repo_path(config)}/contents/.gitattributes",
                config.github_token,
                json={
                    "message": "chore: track binary assets with Git LFS",
                    "content": _b64(LFS_ATTRIBUTES),
                    "branch": branch,
                },
            )
        except RemoteEventError as e:
            # 422: file already exists on the branch
            if e.status_code != 422:
                raise
        self._lfs_written.add(key)

    def _base_branch(self, config: WeaveConfig, head: str | None) -> str:
        """Integration branch for new branches, PRs and merges.

        Gitflow repositories integrate into develop once it exists; everything
        else, and develop itself, uses the repository's default branch.
        """
        default = self._default_branch(config)
        if config.strategy != "gitflow" or head == GITFLOW_BASE:
            return default

        key = self._repo_key(config.username, config.target_repo)
        if key not in self._gitflow_bases:
            try:
                self._request(
                    "GET",
                    f"{self._repo_path(config)}/git/ref/heads/{GITFLOW_BASE}",
                    config.github_token,
                )
            except RemoteEventError as e:
                if e.status_code != 404:
                    raise
                return default
            self._gitflow_bases.add(key)
        return GITFLOW_BASE

    def _default_branch(self, config: WeaveConfig) -> str:
        key = self._repo_key(config.username, config.target_repo)
        if key not in self._default_branches:
            response = self._request("GET", self._repo_path(config), config.github_token)
            self._default_branches[key] = response.json().get("default_branch") or "main"
        return self._default_branches[key]

    def _head_sha(self, config: WeaveConfig, branch: str) -> str:
        response = self._request(
            "GET",
            f"{self._repo_path(config)}/git/ref/heads/{quote(branch)}",
            config.github_token,
        )
        return response.json()["object"]["sha"]

    def _repo_path(self, config: WeaveConfig) -> str:
        return f"/repos/{config.username}/{config.target_repo}"

    def _repo_key(self, owner: str, repo_name: str) -> str:
        return f"{owner}/{repo_name}".lower()

    def _request(
        self,
        method: str,
        path: str,
        token: str,
        json: dict | None = None,
        params: dict | None = None,
    ) -> requests.Response:
        """Send a request and map error responses to RemoteEventError.

        Raises:
            RateLimitedError: On 429, or 403 with an exhausted rate limit
            RemoteEventError: On any other non-2xx status or network error
        """
        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        url = f"{self.base_url}{path}"

        try:
            response = requests.request(
                method,
                url,
                headers=headers,
                json=json,
                params=params,
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as e:
            raise RemoteEventError(f"Network error: {e}") from e

        status = response.status_code
        if status < 400:
            return response

        message = _error_message(response)
        if status == 429 or (status == 403 and response.headers.get("X-RateLimit-Remaining") == "0"):
            retry_after = _retry_after_seconds(response)
            raise RateLimitedError(
                f"GitHub rate limit hit ({status}): {message}",
                status_code=status,
                retry_after=retry_after,
            )
        logger.debug(f"GitHub {method} {path} -> {status}: {message}")
        raise RemoteEventError(f"GitHub API {status}: {message}", status_code=status)


def build_commit_message(event: HistoryEvent) -> str:
    """Commit message: title, description and a co-author trailer if tagged."""
    parts = [event.title]
    if event.description:
        parts.append(event.description)
    if CO_AUTHOR_TAGS & _lower_tags(event) and "Co-authored-by:" not in event.description:
        parts.append("Co-authored-by: pair-bot <pair-bot@users.noreply.github.com>")
    return "\n\n".join(parts)


def render_commit_note(event: HistoryEvent) -> str:
    """Markdown body written for a commit event."""
    lines = [
        f"# {event.title}",
        "",
        f"- id: {event.id}",
        f"- date: {event.date.isoformat()}",
        f"- author: {event.author}",
        f"- files changed: {event.files_changed}",
    ]
    if event.tags:
        lines.append(f"- tags: {', '.join(event.tags)}")
    if event.description:
        lines.extend(["", event.description])
    return "\n".join(lines) + "\n"


def tag_name_for(event: HistoryEvent) -> str:
    """Tag name from the first version-like token in the title, else the event id."""
    match = re.search(r"\bv\d+(?:\.\d+)*(?:[-+][\w.]+)?\b", event.title)
    if match:
        return match.group(0)
    return re.sub(r"[^A-Za-z0-9_.-]", "-", event.id)


def _lower_tags(event: HistoryEvent) -> set[str]:
    return {tag.lower() for tag in event.tags}


def _b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _error_message(response: requests.Response) -> str:
    try:
        data: Any = response.json()
    except ValueError:
        return (response.text or "").strip()[:200] or "no error body"
    if isinstance(data, dict):
        message = str(data.get("message", ""))
        errors = data.get("errors")
        if isinstance(errors, list) and errors:
            details = "; ".join(str(err.get("message", err)) if isinstance(err, dict) else str(err) for err in errors)
            message = f"{message} ({details})" if message else details
        return message or "no error message"
    return str(data)[:200]


def _retry_after_seconds(response: requests.Response) -> float | None:
    retry_after = response.headers.get("Retry-After")
    if retry_after:
        try:
            return float(retry_after)
        except ValueError:
            pass
    reset = response.headers.get("X-RateLimit-Reset")
    if reset:
        try:
            return max(0.0, float(reset) - time.time())
        except ValueError:
            pass
    return None
