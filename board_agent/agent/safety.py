"""Pre-model gatekeeping: prompt-injection / off-topic filter and task classifier.

Both run on the raw command before any provider is contacted. The filter
decides whether the command reaches a model at all; the classifier picks which
backend bucket handles it.
"""

import re
from dataclasses import dataclass
from enum import Enum

REFUSAL_MESSAGE = (
    "I'm a whiteboard assistant, so I can only help with things on this board: "
    "creating sticky notes, shapes, text and connectors, drawing diagrams or scenes, "
    "and moving, updating, organizing or deleting objects."
)


@dataclass(frozen=True)
class FilterResult:
    allowed: bool
    reason: str | None = None


class TaskKind(str, Enum):
    SIMPLE = "simple"
    CREATIVE = "creative"


def _words(*words: str) -> str:
    return "|".join(sorted(words, key=len, reverse=True))


# ── Filter ───────────────────────────────────────────────────────────────────

_INJECTION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\b(ignore|disregard|forget|override|bypass)\b.{0,40}\b(instructions?|prompts?|rules|guidelines|directions)\b",
        r"\byou\s+are\s+now\b",
        r"\bfrom\s+now\s+on\s+you\b",
        r"\b(pretend|act)\s+(to\s+be|like|as|you\s+are|you're)\b",
        r"\b(reveal|show|print|repeat|leak|output)\b.{0,30}\b(system\s+prompt|your\s+prompt|your\s+instructions|hidden\s+instructions)\b",
        r"\bsystem\s+prompt\b",
        r"\b(dan|developer|god|jailbreak)\s+mode\b",
        r"\bjailbreak",
        r"\bnew\s+(persona|role|instructions)\b",
        r"<\|im_(start|end)\|>|<\|(system|user|assistant)\|>|\[/?INST\]|<</?SYS>>",
    )
]

_GREETINGS = re.compile(
    r"^(" + _words(
        "hi", "hello", "hey", "yo", "thanks", "thank", "thx", "ok", "okay",
        "yes", "yeah", "yep", "no", "nope", "sure", "cool", "great", "nice",
        "help", "bye", "good",
    ) + r")\b",
    re.IGNORECASE,
)

ON_TOPIC_KEYWORDS = (
    # actions
    "create", "add", "make", "put", "place", "draw", "design", "sketch", "paint",
    "build", "illustrate", "compose", "delete", "remove", "erase", "clear",
    "move", "organize", "organise", "arrange", "align", "sort", "group",
    "resize", "update", "change", "edit", "recolor", "connect", "link",
    "duplicate", "copy", "undo", "analyze", "summarize",
    # object types
    "sticky", "stickies", "note", "rectangle", "rect", "square", "circle",
    "line", "shape", "text", "label", "connector", "arrow", "object", "item",
    # board concepts
    "board", "whiteboard", "canvas", "diagram", "flowchart", "chart", "mindmap",
    "kanban", "swot", "template", "layout", "grid", "column", "color", "colour",
    # scene nouns
    "scene", "snowman", "house", "tree", "castle", "dragon", "robot", "bird",
    "city", "landscape", "sunset", "mountain", "flower", "garden", "car",
    "rocket", "animal", "cat", "dog", "sun", "star",
    # meta
    "help", "capabilities", "commands",
)

_ON_TOPIC = re.compile(
    r"\b(" + _words(*ON_TOPIC_KEYWORDS) + r")(s|es)?\b",
    re.IGNORECASE,
)

_META = re.compile(r"\bwhat\s+can\s+you\s+do\b|\bhow\s+do\s+i\s+use\b", re.IGNORECASE)

_INTERROGATIVE = re.compile(
    r"^(" + _words(
        "what", "who", "whom", "whose", "when", "where", "why", "how", "which",
        "is", "are", "was", "were", "do", "does", "did", "can", "could",
        "would", "should", "will", "shall", "may", "might",
    ) + r")\b",
    re.IGNORECASE,
)

MAX_UNMATCHED_TOKENS = 5


def filter_message(text: str) -> FilterResult:
    """Decide whether a command may reach a model.

    Checks run in a fixed order: injection patterns, short greetings,
    on-topic keywords, question openers, then a length cap for anything else.
    """
    stripped = text.strip()
    if any(p.search(stripped) for p in _INJECTION_PATTERNS):
        return FilterResult(allowed=False, reason="prompt_injection")

    tokens = stripped.split()
    if len(tokens) <= 3 and _GREETINGS.match(stripped):
        return FilterResult(allowed=True)

    if _ON_TOPIC.search(stripped) or _META.search(stripped):
        return FilterResult(allowed=True)

    if _INTERROGATIVE.match(stripped):
        return FilterResult(allowed=False, reason="off_topic_question")

    if len(tokens) > MAX_UNMATCHED_TOKENS:
        return FilterResult(allowed=False, reason="off_topic")

    return FilterResult(allowed=True)


# ── Classifier ───────────────────────────────────────────────────────────────

_CREATIVE_SIGNALS = re.compile(
    r"\b(" + _words(
        "draw", "design", "sketch", "paint", "illustrate", "build", "compose",
        "scene", "snowman", "castle", "dragon", "house", "tree", "bird", "city",
        "landscape", "sunset", "robot", "mountain", "flower", "garden",
        "rocket", "animal", "village", "forest", "ocean", "spaceship",
    ) + r")(s|es)?\b",
    re.IGNORECASE,
)

_STRUCTURAL_CONNECTIVES = re.compile(
    r"\b(and|with|including|includes|containing|featuring|plus|that\s+has|where)\b",
    re.IGNORECASE,
)

LONG_COMMAND_TOKENS = 15


def classify_task(text: str) -> TaskKind:
    """Pick the backend bucket for a command.

    Creative signal words (drawing verbs, scene nouns) always win. Without one,
    a long command that strings several parts together is still creative.
    """
    if _CREATIVE_SIGNALS.search(text):
        return TaskKind.CREATIVE
    if len(text.split()) > LONG_COMMAND_TOKENS and _STRUCTURAL_CONNECTIVES.search(text):
        return TaskKind.CREATIVE
    return TaskKind.SIMPLE
