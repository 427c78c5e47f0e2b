"""
Questionnaire helpers: funnel markers, email detection and answer extraction
"""
import re
from typing import Dict, Iterable, Optional, Protocol, Tuple

QUESTIONNAIRE_STEPS = 7

OFFER_MARKER = "[CHOIX_OFFRE:"
SKIP_COMMENTS_MARKER = "[SANS_COMMENTAIRE]"
COMPLETION_MARKER = "[QUESTIONNAIRE_COMPLETE]"

EMAIL_RE = re.compile(r"[^\s@<>()\[\],;:\"']+@[^\s@<>()\[\],;:\"']+\.[A-Za-z]{2,}")
_STRICT_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# category → keywords looked up in the assistant question preceding an answer
CATEGORY_KEYWORDS = (
    ("enfants", ("enfant",)),
    ("type_divorce", ("type de divorce", "amiable", "contentieux")),
    ("urgence", ("urgence", "urgent", "délai", "rapidement")),
    ("budget", ("budget", "financ", "moyens", "coût")),
    ("attentes", ("attent", "objectif", "souhait", "priorité")),
    ("ressenti", ("ressent", "émotion", "moral", "état")),
)

CATEGORY_LABELS = {
    "enfants": "Enfants",
    "type_divorce": "Type de divorce",
    "urgence": "Urgence",
    "budget": "Budget",
    "attentes": "Attentes",
    "ressenti": "Ressenti",
    "commentaires": "Commentaires personnels",
}


class TranscriptMessage(Protocol):
    role: str
    content: str


def is_valid_email(value: str) -> bool:
    return bool(_STRICT_EMAIL_RE.match(value.strip()))


def find_email(text: str) -> Optional[str]:
    """First email-looking token in a visitor message"""
    match = EMAIL_RE.search(text)
    if not match:
        return None
    candidate = match.group(0).rstrip(".")
    return candidate if is_valid_email(candidate) else None


def offer_marker(tier: str) -> str:
    return f"{OFFER_MARKER}{tier}]"


def strip_completion_marker(reply: str) -> Tuple[str, bool]:
    if COMPLETION_MARKER not in reply:
        return reply, False
    return reply.replace(COMPLETION_MARKER, "").strip(), True


def extract_questionnaire(messages: Iterable[TranscriptMessage]) -> Dict[str, Optional[str]]:
    """
    Map visitor answers to questionnaire categories.

    Each assistant question followed by a visitor answer is matched against
    CATEGORY_KEYWORDS; the first answer per category wins and bracketed
    system answers are ignored. The visitor message right after the offer
    choice is taken as personal comments.
    """
    messages = list(messages)
    data: Dict[str, Optional[str]] = {key: None for key, _ in CATEGORY_KEYWORDS}
    data["commentaires"] = None

    for current, following in zip(messages, messages[1:]):
        if current.role != "assistant" or following.role != "user":
            continue
        answer = following.content
        if answer.startswith("["):
            continue
        question = current.content.lower()
        for key, keywords in CATEGORY_KEYWORDS:
            if data[key] is None and any(word in question for word in keywords):
                data[key] = answer
                break

    visitor_messages = [m for m in messages if m.role == "user"]
    for index, message in enumerate(visitor_messages):
        if OFFER_MARKER in message.content:
            if index + 1 < len(visitor_messages):
                comments = visitor_messages[index + 1].content
                if not comments.startswith("["):
                    data["commentaires"] = comments
            break

    return data
