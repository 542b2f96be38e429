"""Interfaces of the engine's external collaborators."""
from typing import Any, Protocol

from schemas.reminder import Recommendation, RecommendationContext


class RecommendationAdapter(Protocol):
    """Drafts reminder text and scores the lead. May be slow or fail."""

    async def generate(self, context: RecommendationContext) -> Recommendation:
        ...


class DispatchChannel(Protocol):
    """Delivers a reminder. Raises on failure; never retried by the engine."""

    def send(self, method: str, recipient: str, subject: str, body: str) -> dict[str, Any]:
        ...
