"""Static catalogs: achievements, tech stack suggestions and defaults."""

from datetime import date

from pydantic import BaseModel, Field


class Achievement(BaseModel):
    """Catalog entry for a profile achievement a history can aim for."""

    id: str = Field(description="Stable identifier used in configs")
    name: str = Field(description="Display name")
    description: str = Field(description="What the generated history should show")
    icon: str = Field(description="Icon reference")
    color: str = Field(description="Color tag")

    model_config = {"frozen": True}


TECH_STACKS = [
    "React & TypeScript",
    "Node.js Microservices",
    "Python Data Science",
    "Rust Systems Programming",
    "Go Backend",
    "Flutter Mobile App",
    "Next.js Fullstack",
]

ACHIEVEMENTS: list[Achievement] = [
    Achievement(
        id="pull_shark",
        name="Pull Shark",
        description="Efficient PR creation and merging cycles.",
        icon="GitPullRequest",
        color="blue",
    ),
    Achievement(
        id="galaxy_brain",
        name="Galaxy Brain",
        description="High-quality discussion simulations on issues.",
        icon="Zap",
        color="purple",
    ),
    Achievement(
        id="pair_extraordinaire",
        name="Pair Extraordinaire",
        description="Frequent co-authored commits.",
        icon="Users",
        color="green",
    ),
    Achievement(
        id="yolo",
        name="YOLO",
        description="Direct-to-main commits simulated.",
        icon="Crosshair",
        color="orange",
    ),
    Achievement(
        id="quickdraw",
        name="Quickdraw",
        description="Rapid issue responses and closures.",
        icon="Trophy",
        color="yellow",
    ),
]

ACHIEVEMENTS_BY_ID: dict[str, Achievement] = {a.id: a for a in ACHIEVEMENTS}


def get_achievement(achievement_id: str) -> Achievement | None:
    """Look up a catalog entry, None for unknown ids."""
    return ACHIEVEMENTS_BY_ID.get(achievement_id)


def describe_achievements(achievement_ids: list[str]) -> list[str]:
    """Render requested achievements for a prompt.

    Known ids get their display name and description; unknown ids are
    passed through verbatim so the generator can still use them as hints.
    """
    described = []
    for achievement_id in achievement_ids:
        entry = get_achievement(achievement_id)
        if entry:
            described.append(f"{entry.name} ({entry.id}): {entry.description}")
        else:
            described.append(achievement_id)
    return described


def default_config_values(today: date | None = None) -> dict:
    """Starter values for a new run configuration (one year back from today)."""
    today = today or date.today()
    try:
        start = today.replace(year=today.year - 1)
    except ValueError:
        # Feb 29 -> Feb 28
        start = today.replace(year=today.year - 1, day=28)
    return {
        "username": "octocat",
        "target_repo": "history-weaver-demo",
        "start_date": start,
        "end_date": today,
        "tech_stack": TECH_STACKS[0],
        "intensity": 7,
        "strategy": "gitflow",
        "include_lfs": True,
        "achievements": ["pull_shark", "pair_extraordinaire"],
    }
