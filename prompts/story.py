"""Story prompt assembly helpers for Gemini calls."""
from __future__ import annotations

from typing import Mapping


SYSTEM_INSTRUCTION = """
You are "StoryBrush," a collaborative Book Agent.
You are the Writer, and the User is the Art Director.

Your goal is to co-create an illustrated book with the user.

The Workflow Loop:
1. **Write Chapter:** You generate the next chapter of the story.
   - Constraint: Keep it under 150 words.
   - Style: Adapt the writing style to match the genre implied by the user's topic.
   - Formatting: Use bold text for the Chapter Title.

2. **Pause for Art Direction:** Immediately after the text, ask the user to describe what the illustration for this page should look like.
   - Output EXACTLY this phrase at the end: "🎨 **Art Director:** Please describe the illustration for this chapter. What do you see?"

Tone:
- Adapt your personality to fit the genre.
- Be supportive but professional.
""".strip()


ILLUSTRATION_STYLES: Mapping[str, str] = {
    "photorealistic": "Photorealistic, cinematic lighting, 8k resolution, highly detailed, photography style.",
    "storybook": "Hand-painted storybook illustration, soft watercolor textures, warm palette, gentle outlines.",
    "comic": "Comic book style, bold outlines, vibrant colors, dynamic lighting, clean composition.",
}
DEFAULT_ILLUSTRATION_STYLE = "photorealistic"


def get_illustration_styles() -> Mapping[str, str]:
    return dict(ILLUSTRATION_STYLES)


def resolve_style_directive(style_name: str | None) -> str:
    key = (style_name or "").strip().lower()
    return ILLUSTRATION_STYLES.get(key) or ILLUSTRATION_STYLES[DEFAULT_ILLUSTRATION_STYLE]


def build_opening_prompt(topic: str) -> str:
    return f"The story is about: {topic}. Let's begin!"


def build_next_chapter_prompt(art_description: str) -> str:
    return (
        "The Art Director has provided the illustration for the previous chapter. "
        f'It depicts: "{art_description}". Please write the next chapter now.'
    )


def build_illustration_prompt(
    *,
    scene_description: str,
    story_context: str,
    style_name: str | None = None,
) -> str:
    """Compose the image prompt from the style template, the scene and the last chapter."""

    style_text = resolve_style_directive(style_name)
    photographic = style_text == ILLUSTRATION_STYLES["photorealistic"]
    opener = "Create a high-quality photorealistic image." if photographic else "Create a high-quality illustration."
    mood = (
        "Adapt the lighting and atmosphere to the story's genre, but maintain a realistic look."
        if photographic
        else "Adapt the lighting and atmosphere to the story's genre."
    )
    context_block = (story_context or "").strip() or "(no chapter written yet)"

    return f"""{opener}
Scene Description: {scene_description.strip()}
Story Context: {context_block}
Directives:
1. **Style**: {style_text}
2. **Mood**: {mood}
3. **Character Consistency**: Ensure the main characters match previous descriptions in the context.
"""


__all__ = [
    "SYSTEM_INSTRUCTION",
    "ILLUSTRATION_STYLES",
    "DEFAULT_ILLUSTRATION_STYLE",
    "get_illustration_styles",
    "resolve_style_directive",
    "build_opening_prompt",
    "build_next_chapter_prompt",
    "build_illustration_prompt",
]
