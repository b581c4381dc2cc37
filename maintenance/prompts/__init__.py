"""
Guardian Shield - Prompts module.

Message builders for the similarity, step generation and step
illustration requests sent through the LLM router.
"""

from maintenance.prompts.suggestions import (
    build_similarity_messages,
    build_step_image_messages,
    build_steps_messages,
)

__all__ = [
    "build_similarity_messages",
    "build_step_image_messages",
    "build_steps_messages",
]
