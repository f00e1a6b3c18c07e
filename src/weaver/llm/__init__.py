"""Generator clients for History Weaver."""

from .client import (
    DEFAULT_GEMINI_MODEL,
    DEFAULT_OPENAI_MODEL,
    FakePlanGenerator,
    PlanGenerator,
    RealPlanGenerator,
    get_plan_generator,
    has_llm_api_key,
)

__all__ = [
    "PlanGenerator",
    "FakePlanGenerator",
    "RealPlanGenerator",
    "get_plan_generator",
    "has_llm_api_key",
    "DEFAULT_GEMINI_MODEL",
    "DEFAULT_OPENAI_MODEL",
]
