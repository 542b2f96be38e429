"""Model provider selection and initialisation.

Priority:
  1. ANTHROPIC_API_KEY set → use Anthropic API directly
  2. Otherwise → use Vertex AI (requires GOOGLE_CLOUD_PROJECT + service account)

Usage:
    from model_config import get_llm_model, init_llm_provider
    init_llm_provider()          # once, before the advisor agents run
    model = get_llm_model()
"""
import logging
import os

from google.adk.models.lite_llm import LiteLlm

logger = logging.getLogger(__name__)

# Model identifiers
ANTHROPIC_MODEL = "anthropic/claude-sonnet-4-6"
VERTEX_MODEL = "vertex_ai/claude-sonnet-4-5@20250929"

_initialized = False


def active_provider() -> str:
    """Return 'anthropic' or 'vertex_ai' depending on which is active."""
    return "anthropic" if os.environ.get("ANTHROPIC_API_KEY") else "vertex_ai"


def get_llm_model() -> LiteLlm:
    """Return a LiteLlm instance for the active provider."""
    if active_provider() == "anthropic":
        return LiteLlm(ANTHROPIC_MODEL)
    return LiteLlm(VERTEX_MODEL)


def init_llm_provider() -> None:
    """Initialise the active provider and optional Langfuse tracing. Idempotent."""
    global _initialized
    if _initialized:
        return
    if active_provider() == "anthropic":
        logger.info("LLM provider: Anthropic API (ANTHROPIC_API_KEY is set)")
    else:
        import vertexai

        project = os.environ["GOOGLE_CLOUD_PROJECT"]
        location = os.environ.get("GOOGLE_CLOUD_LOCATION", "us-east5")
        vertexai.init(project=project, location=location)
        logger.info("LLM provider: Vertex AI (project=%s, location=%s)", project, location)

    if os.environ.get("LANGFUSE_PUBLIC_KEY"):
        import litellm

        litellm.success_callback = ["langfuse"]
        litellm.failure_callback = ["langfuse"]
    _initialized = True
