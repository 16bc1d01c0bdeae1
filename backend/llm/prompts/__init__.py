"""LLM prompts for copilot turns."""

from llm.prompts.copilot import (
    DEFAULT_PROMPT_VERSION,
    PROMPT_VERSIONS,
    get_system_prompt,
    resolve_prompt_version,
)

__all__ = [
    "DEFAULT_PROMPT_VERSION",
    "PROMPT_VERSIONS",
    "get_system_prompt",
    "resolve_prompt_version",
]
