"""Notification rules: which alerts a subject's current vitals warrant."""

from __future__ import annotations

from beastwatch.care.schemas import VITALS, Alert, NotifiableSubject

REVIVE_ALERT = Alert(
    kind="revive",
    title="💔 Your Beast Needs Help!",
    body="Oh no! Your beast has fainted. Revive it now! 🏥",
)

# vital -> (title, body template)
_LOW_VITAL_MESSAGES: dict[str, tuple[str, str]] = {
    "hunger": (
        "🍽️ Your Beast is Hungry!",
        "Your beast's hunger is low ({value}/100). Feed it now! 🥐",
    ),
    "energy": (
        "⚡ Your Beast is Tired!",
        "Your beast's energy is low ({value}/100). Let it rest! 💤",
    ),
    "happiness": (
        "😢 Your Beast is Sad!",
        "Your beast's happiness is low ({value}/100). Play with it! 🎉",
    ),
    "hygiene": (
        "🛁 Your Beast Needs a Bath!",
        "Your beast's hygiene is low ({value}/100). Clean it up! 🧼",
    ),
}


class RuleEngine:
    """Stateless evaluation of a subject against a single vitals threshold."""

    def __init__(self, threshold: int) -> None:
        self.threshold = threshold

    def evaluate(self, subject: NotifiableSubject) -> list[Alert]:
        snapshot = subject.snapshot
        if not snapshot.is_alive:
            return [REVIVE_ALERT]

        alerts: list[Alert] = []
        for vital in VITALS:
            value = getattr(snapshot, vital)
            if value < self.threshold:
                title, template = _LOW_VITAL_MESSAGES[vital]
                alerts.append(Alert(kind=vital, title=title, body=template.format(value=value)))
        return alerts
