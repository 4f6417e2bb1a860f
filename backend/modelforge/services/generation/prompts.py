"""
Prompt templates and prompt cleanup for 3D model generation
"""

import re

VISION_SYSTEM_PROMPT = (
    "You are a 3D modeling expert who creates brief, clear descriptions for 3D models. "
    "Keep descriptions concise (under 400 characters), focusing only on the main object, "
    "its shape, and key features. Avoid flowery language, formatting (like markdown), and "
    "excessive details. The descriptions will be used directly with a text-to-3D API."
)

VISION_USER_PROMPT = (
    "Look at this image and create a simple, clear description (no more than 3-4 sentences) "
    "of what 3D model should be created from it."
)

VISION_DEFAULT_FOCUS = "Focus on the main object or character."

FALLBACK_DESCRIPTION = (
    "This is a generated fallback description for a 3D model. For full functionality, "
    "please add the OpenAI API key to your environment variables."
)

_HEADING_RE = re.compile(r"#+\s")
_BOLD_RE = re.compile(r"\*\*")
_NEWLINES_RE = re.compile(r"\n+")
_SPACES_RE = re.compile(r"\s+")


def build_vision_prompt(user_prompt: str = None) -> str:
    """User message sent along with the image"""
    if user_prompt and user_prompt.strip():
        return f"{VISION_USER_PROMPT} {user_prompt.strip()}"
    return f"{VISION_USER_PROMPT} {VISION_DEFAULT_FOCUS}"


def clean_description(description: str, max_length: int = 500) -> str:
    """Strip markdown and collapse whitespace, then cap the length."""
    cleaned = _HEADING_RE.sub("", description or "")
    cleaned = _BOLD_RE.sub("", cleaned)
    cleaned = _NEWLINES_RE.sub(" ", cleaned)
    cleaned = _SPACES_RE.sub(" ", cleaned).strip()

    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length - 3] + "..."

    return cleaned


def prepare_prompt(prompt: str, threshold: int = 200, max_length: int = 500) -> str:
    """Long prompts (usually vision output) are cleaned; short ones pass through."""
    if prompt and len(prompt) > threshold:
        return clean_description(prompt, max_length)
    return prompt
