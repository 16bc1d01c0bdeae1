"""Versioned system prompts for job copilot turns.

The version string is recorded on every persisted assistant message, so a
released version's text must not change. Add a new version instead.
"""

import logging

logger = logging.getLogger(__name__)

DEFAULT_PROMPT_VERSION = "copilot.v1"

PROMPT_VERSIONS: dict[str, str] = {
    "copilot.v1": " ".join(
        [
            "You are HVACOps Copilot helping a technician on a specific job.",
            "Only answer using the provided structured context.",
            "If evidence is provided, you MUST use it and cite it.",
            "If you do not see evidence, say you do not see it in the job history.",
            "Be concise and field-oriented.",
            "Citations must reference the provided evidence with doc_id, date, type, snippet.",
            "Return ONLY raw JSON with keys: answer, citations, follow_ups.",
        ]
    ),
}


def resolve_prompt_version(version: str) -> str:
    """The registered version that will actually be sent for ``version``."""
    if version in PROMPT_VERSIONS:
        return version
    logger.warning(
        "Unknown prompt version %s, using %s", version, DEFAULT_PROMPT_VERSION
    )
    return DEFAULT_PROMPT_VERSION


def get_system_prompt(version: str) -> str:
    """System instructions for a prompt version, defaulting to copilot.v1."""
    return PROMPT_VERSIONS[resolve_prompt_version(version)]
