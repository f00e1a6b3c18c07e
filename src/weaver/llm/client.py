"""Generator clients used to compile plans and draft review comments.

Provides an interface for text generation with a structured-output request.
Uses standard library http for API calls to avoid heavy dependencies.
"""

import hashlib
import json
import os
import random
import re
import ssl
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


class PlanGenerator(ABC):
    """Abstract interface for the generator collaborator.

    Implementations return raw text; parsing and validation happen in the
    plan adapter, which treats every exception raised here as a generation
    failure.
    """

    @abstractmethod
    def generate_json(self, prompt: str, schema: dict, system_instruction: str) -> str:
        """Generate text expected to parse as JSON matching `schema`."""
        pass

    @abstractmethod
    def complete(self, prompt: str, max_output_tokens: int = 100) -> str:
        """Generate short free text."""
        pass

    @property
    @abstractmethod
    def engine_name(self) -> str:
        """Return engine identifier (e.g., 'fake', 'gemini', 'openai')."""
        pass

    @property
    def provider_model(self) -> str | None:
        """Return provider/model string for real clients, None for fake."""
        return None


class FakePlanGenerator(PlanGenerator):
    """Deterministic offline generator.

    Reads the configuration block of the plan prompt and synthesizes a
    chronological, weekday-weighted history. Same prompt always produces
    the same output.
    """

    REVIEW_COMMENTS = [
        "Nice separation of concerns here. Consider adding a test for the error path before merging.",
        "LGTM overall. The naming is clear; a short docstring on the public entry point would help.",
        "Solid change. Could we extract the retry constants into config so they are easier to tune?",
        "Looks good. Please double-check the edge case where the input list is empty.",
        "Approved. Minor nit: the log message could include the identifier for easier debugging.",
    ]

    FEATURES = {
        "react": ["auth-system", "dashboard", "dark-mode", "form-validation", "routing", "state-store"],
        "node": ["auth-service", "api-gateway", "rate-limiter", "event-bus", "user-service", "health-checks"],
        "python": ["data-loader", "feature-pipeline", "model-training", "notebook-cleanup", "metrics", "cli"],
        "rust": ["parser", "allocator-stats", "async-runtime", "error-types", "benchmarks", "ffi-bindings"],
        "go": ["http-handlers", "grpc-service", "config-loader", "middleware", "worker-pool", "metrics"],
        "flutter": ["onboarding", "push-notifications", "offline-cache", "theming", "auth-flow", "settings"],
        "next": ["auth-system", "ssr-pages", "api-routes", "image-optimization", "i18n", "analytics"],
    }
    DEFAULT_FEATURES = ["auth-system", "core-module", "api-client", "docs-site", "ci-pipeline", "settings"]

    @property
    def engine_name(self) -> str:
        return "fake"

    def generate_json(self, prompt: str, schema: dict, system_instruction: str) -> str:
        """Synthesize a plan from the configuration block of the prompt."""
        fields = self._parse_prompt_fields(prompt)
        seed = int(hashlib.md5(prompt.encode()).hexdigest()[:8], 16)
        rng = random.Random(seed)

        username = fields.get("user") or "developer"
        start, end = self._parse_window(fields.get("date range", ""))
        intensity = self._parse_int(fields.get("intensity (1-10)"), default=5)
        strategy = (fields.get("branching strategy") or "github-flow").strip()
        achievements = (fields.get("target achievements") or "").lower()
        features = self._features_for(fields.get("tech stack", ""))

        pairing = "pair" in achievements
        quickdraw = "quickdraw" in achievements
        merges = "pull_shark" in achievements or "pull shark" in achievements or strategy != "trunk"

        count = max(20, min(30, 18 + intensity * 2))
        drafts = self._build_story(username, strategy, features, pairing, quickdraw, merges, count)
        dates = self._weekday_weighted_dates(rng, start, end, len(drafts))

        events = []
        for index, (draft, when) in enumerate(zip(drafts, dates), start=1):
            event = {"id": f"evt_{index}", "date": when.strftime("%Y-%m-%dT%H:%M:%SZ")}
            event.update(draft)
            event["filesChanged"] = rng.randint(1, 14) if draft["type"] == "commit" else 0
            events.append(event)

        return json.dumps(events)

    def complete(self, prompt: str, max_output_tokens: int = 100) -> str:
        """Pick a canned review comment deterministically."""
        digest = int(hashlib.md5(prompt.encode()).hexdigest()[:4], 16)
        comment = self.REVIEW_COMMENTS[digest % len(self.REVIEW_COMMENTS)]
        # Rough token cap: ~4 chars per token
        return comment[: max_output_tokens * 4]

    def _parse_prompt_fields(self, prompt: str) -> dict[str, str]:
        fields = {}
        for match in re.finditer(r"^\s*-\s*([^:\n]+):\s*(.*)$", prompt, re.MULTILINE):
            fields[match.group(1).strip().lower()] = match.group(2).strip()
        return fields

    def _parse_window(self, text: str) -> tuple[date, date]:
        found = re.findall(r"\d{4}-\d{2}-\d{2}", text)
        today = date.today()
        if len(found) >= 2:
            start, end = date.fromisoformat(found[0]), date.fromisoformat(found[1])
        elif found:
            start = end = date.fromisoformat(found[0])
        else:
            start, end = today - timedelta(days=90), today
        if end < start:
            start, end = end, start
        return start, end

    def _parse_int(self, text: str | None, default: int) -> int:
        try:
            return int(str(text).strip())
        except (TypeError, ValueError):
            return default

    def _features_for(self, tech_stack: str) -> list[str]:
        stack = tech_stack.lower()
        for key, features in self.FEATURES.items():
            if key in stack:
                return features
        return self.DEFAULT_FEATURES

    def _build_story(
        self,
        username: str,
        strategy: str,
        features: list[str],
        pairing: bool,
        quickdraw: bool,
        merges: bool,
        count: int,
    ) -> list[dict]:
        """Build an ordered list of event drafts (without id/date)."""
        base = "develop" if strategy == "gitflow" else "main"

        def draft(kind: str, title: str, description: str, branch: str, tags: list[str]) -> dict:
            return {
                "type": kind,
                "title": title,
                "description": description,
                "branch": branch,
                "author": username,
                "tags": tags,
            }

        drafts = [draft("commit", "chore: initial commit", "Project scaffold and tooling", "main", ["init"])]
        if strategy == "gitflow":
            drafts.append(draft("branch", "Create branch develop", "Integration branch for gitflow", "develop", ["flow"]))

        release = 1
        cycle = 0
        while len(drafts) < count:
            feature = features[cycle % len(features)]
            if cycle >= len(features):
                feature = f"{feature}-v{cycle // len(features) + 1}"
            cycle += 1
            if strategy == "trunk":
                branch = "main"
            else:
                branch = f"feature/{feature}"
                drafts.append(draft("branch", f"Create branch {branch}", f"Work on {feature}", branch, ["flow"]))

            drafts.append(
                draft(
                    "issue",
                    f"Track {feature.replace('-', ' ')} work",
                    f"Scope and acceptance criteria for {feature}",
                    branch,
                    ["issue", "closed"] if quickdraw else ["issue"],
                )
            )

            commit_tags = ["feat", "pair"] if pairing else ["feat"]
            description = f"Implement {feature.replace('-', ' ')}"
            if pairing:
                description += "\n\nCo-authored-by: pair-bot <pair-bot@users.noreply.github.com>"
            drafts.append(draft("commit", f"feat({feature}): add {feature.replace('-', ' ')}", description, branch, commit_tags))
            drafts.append(draft("commit", f"fix({feature}): handle edge cases", f"Harden {feature}", branch, ["fix"]))

            if strategy != "trunk":
                drafts.append(draft("pr", f"Add {feature.replace('-', ' ')}", f"Merge {branch} into {base}", branch, ["pr"]))
                if merges:
                    drafts.append(draft("merge", f"Merge {branch} into {base}", f"Merge pull request for {feature}", branch, ["merge"]))

            if cycle % 2 == 0:
                drafts.append(draft("tag", f"Release v0.{release}.0", f"Release v0.{release}.0", base, ["release"]))
                release += 1

        return drafts[:count]

    def _weekday_weighted_dates(self, rng: random.Random, start: date, end: date, n: int) -> list[datetime]:
        """Pick n sorted timestamps in the window, favoring weekdays."""
        days = [start + timedelta(days=i) for i in range((end - start).days + 1)]
        weights = [5 if day.weekday() < 5 else 1 for day in days]
        picked = sorted(rng.choices(days, weights=weights, k=n))
        stamps = []
        for day in picked:
            moment = datetime.combine(day, time(hour=rng.randint(9, 18), minute=rng.randint(0, 59)), tzinfo=timezone.utc)
            stamps.append(moment)
        return sorted(stamps)


class RealPlanGenerator(PlanGenerator):
    """Real generator using the Gemini or OpenAI API.

    Uses standard library urllib.request to make API calls.
    Requires GEMINI_API_KEY or OPENAI_API_KEY environment variable.
    """

    def __init__(self, provider: str = "gemini", model: str | None = None, timeout_seconds: int = 60):
        """Initialize real generator.

        Args:
            provider: 'gemini' or 'openai'
            model: Model name (defaults based on provider)
            timeout_seconds: HTTP timeout per call
        """
        self.provider = provider.lower()
        self.timeout_seconds = timeout_seconds

        if self.provider == "gemini":
            self.api_key = os.environ.get("GEMINI_API_KEY")
            self.model = model or DEFAULT_GEMINI_MODEL
        elif self.provider == "openai":
            self.api_key = os.environ.get("OPENAI_API_KEY")
            self.model = model or DEFAULT_OPENAI_MODEL
        else:
            raise ValueError(f"Unsupported provider: {provider}")

        if not self.api_key:
            raise ValueError(f"Missing API key: set {self.provider.upper()}_API_KEY environment variable")

    @property
    def engine_name(self) -> str:
        return self.provider

    @property
    def provider_model(self) -> str:
        return f"{self.provider}/{self.model}"

    def generate_json(self, prompt: str, schema: dict, system_instruction: str) -> str:
        if self.provider == "gemini":
            payload = {
                "systemInstruction": {"parts": [{"text": system_instruction}]},
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {
                    "temperature": 0.7,
                    "responseMimeType": "application/json",
                    "responseSchema": to_gemini_schema(schema),
                },
            }
            return self._call_gemini(payload)

        system = (
            f"{system_instruction}\n"
            f"Respond with JSON only, matching this JSON schema:\n{json.dumps(schema)}"
        )
        payload = {
            "model": self.model,
            "temperature": 0.7,
            "max_tokens": 4000,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
        }
        return self._call_openai(payload)

    def complete(self, prompt: str, max_output_tokens: int = 100) -> str:
        if self.provider == "gemini":
            payload = {
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {"maxOutputTokens": max_output_tokens},
            }
            return self._call_gemini(payload)

        payload = {
            "model": self.model,
            "max_tokens": max_output_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        return self._call_openai(payload)

    def _call_gemini(self, payload: dict) -> str:
        url = (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            f"{self.model}:generateContent?key={self.api_key}"
        )
        response = self._post_json(url, {"Content-Type": "application/json"}, payload)
        try:
            return extract_gemini_text(response)
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise RuntimeError(f"Unexpected Gemini response: {exc}") from exc

    def _call_openai(self, payload: dict) -> str:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        response = self._post_json("https://api.openai.com/v1/chat/completions", headers, payload)
        try:
            return response["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise RuntimeError(f"Unexpected OpenAI response: {exc}") from exc

    def _post_json(self, url: str, headers: dict, payload: dict) -> dict[str, Any]:
        """Make HTTP request using urllib."""
        data = json.dumps(payload).encode("utf-8")
        req = urllib.request.Request(url, data=data, headers=headers, method="POST")
        context = ssl.create_default_context()

        try:
            with urllib.request.urlopen(req, context=context, timeout=self.timeout_seconds) as response:
                return json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8", errors="replace") if e.fp else "No error body"
            raise RuntimeError(f"API error {e.code}: {error_body}") from e
        except urllib.error.URLError as e:
            raise RuntimeError(f"Network error: {e.reason}") from e


def extract_gemini_text(response: dict) -> str:
    """Return the first text part of a Gemini generateContent response."""
    if not isinstance(response, dict):
        raise ValueError("response_not_dict")
    for candidate in response.get("candidates") or []:
        content = candidate.get("content") if isinstance(candidate, dict) else None
        if not isinstance(content, dict):
            continue
        for part in content.get("parts") or []:
            if isinstance(part, dict) and "text" in part:
                return str(part["text"])
    raise ValueError("no_text_in_response")


def to_gemini_schema(schema: dict) -> dict:
    """Convert a JSON schema subset to Gemini's responseSchema dialect."""
    converted: dict[str, Any] = {}
    for key, value in schema.items():
        if key == "type":
            converted["type"] = str(value).upper()
        elif key == "properties":
            converted["properties"] = {name: to_gemini_schema(sub) for name, sub in value.items()}
        elif key == "items":
            converted["items"] = to_gemini_schema(value)
        elif key in ("required", "enum", "description"):
            converted[key] = value
    return converted


def get_plan_generator(engine: str = "auto", model: str | None = None, timeout_seconds: int = 60) -> PlanGenerator:
    """Get appropriate generator based on engine setting and available API keys.

    Args:
        engine: 'fake', 'gemini', 'openai', or 'auto'
                'auto' uses a real client if an API key is available, else fake
        model: Optional model override for real clients
        timeout_seconds: HTTP timeout for real clients

    Returns:
        PlanGenerator implementation
    """
    if engine == "fake":
        return FakePlanGenerator()

    if engine in ("gemini", "openai"):
        if not os.environ.get(f"{engine.upper()}_API_KEY"):
            raise ValueError(f"{engine.upper()}_API_KEY not set")
        return RealPlanGenerator(provider=engine, model=model, timeout_seconds=timeout_seconds)

    if engine == "auto":
        if os.environ.get("GEMINI_API_KEY"):
            return RealPlanGenerator(provider="gemini", model=model, timeout_seconds=timeout_seconds)
        if os.environ.get("OPENAI_API_KEY"):
            return RealPlanGenerator(provider="openai", model=model, timeout_seconds=timeout_seconds)
        return FakePlanGenerator()

    raise ValueError(f"Unknown generator engine: {engine}")


def has_llm_api_key() -> bool:
    """Check if any generator API key is available."""
    return bool(os.environ.get("GEMINI_API_KEY") or os.environ.get("OPENAI_API_KEY"))
