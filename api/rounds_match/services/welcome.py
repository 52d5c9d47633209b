from __future__ import annotations

from typing import Any, Sequence

from ..entities import Member

_LEVELS = (
    (90, "excellent", "Excellent Match! You have tons in common"),
    (80, "great", "Great Match! Strong compatibility"),
    (70, "good", "Good Match! Several shared interests"),
    (60, "decent", "Decent Match! Some common ground"),
)

_CONVERSATION_STARTERS = [
    "What's the most interesting case you've seen this week?",
    "Any conferences or learning opportunities coming up?",
    "What do you like to do to unwind after long shifts?",
]


def compatibility_percentage(value: float) -> int:
    return int(round(max(0.0, min(1.0, float(value))) * 100))


def describe_compatibility(percentage: int) -> dict[str, Any]:
    for floor, level, description in _LEVELS:
        if percentage >= floor:
            return {"percentage": percentage, "level": level, "description": description}
    return {"percentage": percentage, "level": "moderate", "description": "Moderate Match! Room to explore differences"}


def _display_name(member: Member) -> str:
    return member.first_name or f"Member {member.id[:8]}"


def build_welcome_message(members: Sequence[Member]) -> str:
    names = ", ".join(_display_name(m) for m in members)
    specialties: list[str] = []
    for m in members:
        if m.specialty and m.specialty not in specialties:
            specialties.append(m.specialty)

    lines = [
        f"Welcome to your group, {names}!",
        "",
        "I'm RoundsBot, your friendly facilitator. "
        f"You've been matched based on your specialties ({', '.join(specialties) or 'various'}) and shared interests.",
        "",
        "Here are some conversation starters:",
    ]
    lines.extend(f"- {q}" for q in _CONVERSATION_STARTERS)
    lines.append("")
    lines.append("When you're ready to meet up, share your availability and I'll help coordinate.")
    return "\n".join(lines)
