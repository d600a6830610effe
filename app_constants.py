"""User-facing copy shared by the controller and the Streamlit page."""
from __future__ import annotations

APP_TITLE = "StoryBrush"

GREETING_MESSAGE = (
    "Hello! I am **StoryBrush**, your creative partner. \n\n"
    "I'm ready to write a new book with you. It can be any genre: Fantasy, Sci-Fi, "
    "Mystery, Romance, Horror, or anything you like! \n\n"
    "What should our story be about?"
)

EMPTY_CHAPTER_FALLBACK = "I'm having trouble writing right now. Let's try again."

START_FAILURE_MESSAGE = "I encountered an issue starting the story. Please try again."
ILLUSTRATION_FAILURE_MESSAGE = (
    "I was unable to generate that illustration. Could you provide a different description?"
)
CHAPTER_FAILURE_MESSAGE = (
    "The illustration is done, but I couldn't write the next chapter. "
    "Please describe the scene again and I'll pick the story back up."
)

INPUT_PLACEHOLDERS = {
    "SETUP": "Example: A cyber-noir thriller in Neo-Tokyo...",
    "AWAITING_ART": "Describe the scene (e.g., 'A cloaked figure in the rain')...",
    "WRITING": "StoryBrush is writing...",
    "PAINTING": "Creating artwork...",
}

BUSY_LABELS = {
    "WRITING": "Writing next chapter...",
    "PAINTING": "Generating illustration...",
}


__all__ = [
    "APP_TITLE",
    "GREETING_MESSAGE",
    "EMPTY_CHAPTER_FALLBACK",
    "START_FAILURE_MESSAGE",
    "ILLUSTRATION_FAILURE_MESSAGE",
    "CHAPTER_FAILURE_MESSAGE",
    "INPUT_PLACEHOLDERS",
    "BUSY_LABELS",
]
