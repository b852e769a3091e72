from __future__ import annotations

from typing import Any

from .assembler import MatchGroup

_BUCKETS = (
    (90, "excellent", "Excellent Match! You have tons in common"),
    (80, "great", "Great Match! Strong compatibility"),
    (70, "good", "Good Match! Several shared interests"),
    (60, "decent", "Decent Match! Some common ground"),
)


def compatibility_percentage(score: float) -> int:
    return int(round(max(0.0, min(1.0, float(score))) * 100))


def compatibility_description(percentage: int | float) -> dict[str, Any]:
    for floor, level, description in _BUCKETS:
        if percentage >= floor:
            return {"percentage": percentage, "description": description, "level": level}
    return {"percentage": percentage, "description": "Moderate Match! Room to explore differences", "level": "moderate"}


def build_welcome_message(group: MatchGroup) -> str:
    names = ", ".join(m.first_name or m.display_name for m in group.members)

    specialties: list[str] = []
    for member in group.members:
        for s in member.specialties:
            if s not in specialties:
                specialties.append(s)
    specialty_text = ", ".join(specialties) or "a mix of fields"

    return (
        f"Welcome to your group, {names}!\n\n"
        f"You've been matched based on your specialties ({specialty_text}) and shared interests.\n\n"
        "Here are some conversation starters:\n"
        "- What's the most interesting case you've seen this week?\n"
        "- Any conferences or learning opportunities coming up?\n"
        "- What do you like to do to unwind after long shifts?\n\n"
        "When you're ready to meet up, share your availability here and pick a time that works for everyone."
    )
