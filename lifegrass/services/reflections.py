# services/reflections.py
"""Local stand-ins for the AI comment and next-week recommendation.

Used whenever the text service is off, unreachable or returns something
unusable. The choice within a theme is keyed on a digest of the entry, so
one entry always gets the same sentence.
"""
import hashlib

EMPTY_COMMENT = "Write in your journal and plant it to get a comment on your week."
EMPTY_RECOMMENDATION = "Please write something in your journal to get personalized recommendations."

# (words in text, words in keywords, phrases)
_COMMENT_THEMES = [
    (("learn", "study", "growth"), ("learn",), (
        "A week of learning; you can feel yourself growing.",
        "You planted seeds of knowledge this week, and they will bear fruit.",
        "One more step on the road of learning, and it suits you.",
    )),
    (("work", "project", "productive"), ("work",), (
        "A week spent on work that matters; that effort will shine.",
        "Step by step toward your goals, and it shows.",
        "Small wins add up to big changes.",
    )),
    (("friend", "family", "love"), ("friend", "family"), (
        "Time with the people you love turned into a warm memory.",
        "The warmth of your people made this week special.",
        "Moments shared this week will be kept like treasure.",
    )),
    (("rest", "relax", "recharge"), ("rest",), (
        "You paused and looked after yourself; that rest was needed.",
        "Rest is part of growing too. You are doing it well.",
        "Making time for yourself in a busy life is no small thing.",
    )),
    (("challenge", "difficult", "hard", "struggle"), ("challenge",), (
        "You came through a hard week, and that strength shows.",
        "Hard moments become the ground you grow from.",
        "You did not give up in front of the challenge, and that courage shines.",
    )),
    (("success", "achieve", "complete", "finish"), ("success",), (
        "You reached a goal this week; enjoy that feeling.",
        "Even small achievements mean a lot. Keep going.",
        "Every step forward this week is something to be proud of.",
    )),
    (("travel", "adventure", "trip"), ("travel",), (
        "New places added new colours to your life this week.",
        "The memories of this trip will stay with you for a long time.",
        "A week of adventure that made your world a little wider.",
    )),
    (("happy", "joy", "smile", "laugh"), (), (
        "Happy moments made this week shine; may the joy continue.",
        "A week full of laughter, and the energy carries over.",
        "A week of small joys, and the warmth comes through.",
    )),
    (("sad", "difficult", "tough", "hard"), (), (
        "It may have been a heavy week, but those feelings matter too.",
        "Going through a hard time? You are not alone.",
        "Hard moments pass, and better days are waiting.",
    )),
]

_LONG_TEXT_COMMENTS = (
    "A week of deep thought; that reflection makes you wiser.",
    "Lots on your mind this week. Those questions will find their answers.",
    "Looking inward this week will help you grow.",
)

_DEFAULT_COMMENTS = (
    "The experiences of this week are becoming part of your story.",
    "Small moments add up to something meaningful. This week mattered.",
    "Time moves on, but what you felt this week will stay.",
    "What you noticed this week makes you richer.",
    "Every moment is special, and this week was too.",
)

_RECOMMEND_THEMES = [
    (("learn", "study", "growth"), "Next week, teach one thing you learned to someone else."),
    (("work", "project", "productive"), "Next week, pick one task that matters most and finish it before lunch on Monday."),
    (("friend", "family", "love"), "Next week, call someone you care about just to ask how they are."),
    (("rest", "relax", "recharge"), "Next week, protect one evening with no screens and no plans."),
    (("challenge", "difficult", "hard", "struggle", "sad", "tough"), "Next week, write down one small thing that went right each day."),
    (("travel", "adventure", "trip"), "Next week, explore a street or park near home you have never visited."),
]

_DEFAULT_RECOMMENDATIONS = (
    "Next week, take a 20-minute walk without your phone and notice what you see.",
    "Next week, try one new thing you have been putting off.",
    "Next week, end each day by writing one sentence about it.",
)


def _pick(options, keywords: str, text: str) -> str:
    digest = hashlib.sha256(f"{keywords}\n{text}".encode("utf-8")).digest()
    return options[int.from_bytes(digest[:4], "big") % len(options)]


def fallback_comment(keywords: str = "", text: str = "") -> str:
    keywords = (keywords or "").strip()
    text = (text or "").strip()
    if not keywords and not text:
        return EMPTY_COMMENT

    lower_text = text.lower()
    lower_keywords = keywords.lower()
    options: list[str] = []
    for text_words, keyword_words, phrases in _COMMENT_THEMES:
        if any(w in lower_text for w in text_words) or any(w in lower_keywords for w in keyword_words):
            options.extend(phrases)
    if len(text) > 150:
        options.extend(_LONG_TEXT_COMMENTS)
    if keywords and not text:
        first = ", ".join([k.strip() for k in keywords.split(",") if k.strip()][:2]) or keywords
        options.append(f"A week filled with {first}; those moments are precious.")
        options.append(f"{first} were the keywords of this week. Hold on to what they meant.")
    if not options:
        options.extend(_DEFAULT_COMMENTS)
    return _pick(options, keywords, text)


def fallback_recommendation(keywords: str = "", text: str = "") -> str:
    keywords = (keywords or "").strip()
    text = (text or "").strip()
    if not keywords and not text:
        return EMPTY_RECOMMENDATION
    haystack = f"{keywords}\n{text}".lower()
    options = [line for words, line in _RECOMMEND_THEMES if any(w in haystack for w in words)]
    return _pick(options or list(_DEFAULT_RECOMMENDATIONS), keywords, text)
