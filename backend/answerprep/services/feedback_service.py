# answerprep/services/feedback_service.py
import random
import re
from dataclasses import dataclass, asdict
from typing import Dict

CONTENT_TIPS = (
    "Try to provide more details and specific examples.",
    "Good start, but you could expand on your ideas.",
    "Nice response with some good points!",
    "Excellent answer with clear explanations!",
)

GRAMMAR_TIPS = (
    "Consider using more complex sentence structures.",
    "Check your verb tenses and agreement.",
    "Try to use more specific vocabulary related to the topic.",
)

VOCABULARY_TIPS = (
    "Use more business-related vocabulary.",
    "Try to vary your word choice.",
    "Include some professional terminology.",
)

_SENTENCE_END = re.compile(r"[.!?]+")


@dataclass(frozen=True)
class FeedbackResult:
    content_tip: str
    language_tip: str
    word_count: int
    sentence_count: int

    def to_dict(self) -> Dict:
        return asdict(self)


def count_words(text: str) -> int:
    # "" and whitespace-only both give 0
    return len(text.split())


def count_sentences(text: str) -> int:
    return len([s for s in _SENTENCE_END.split(text) if s.strip()])


def content_level(word_count: int) -> int:
    """Map a word count onto one of the four content buckets."""
    if word_count < 20:
        return 0
    if word_count < 40:
        return 1
    if word_count < 70:
        return 2
    return 3


def generate_feedback(question: str, transcript: str, rng=random) -> FeedbackResult:
    """
    Heuristic B1-level feedback for one spoken answer.

    `question` is accepted for future question-aware tips; the current rules
    only look at the transcript. `rng` is anything with `randrange` (the
    `random` module, a seeded `random.Random`, or a test stub).
    """
    transcript = transcript or ""
    wc = count_words(transcript)

    grammar_tip = GRAMMAR_TIPS[rng.randrange(len(GRAMMAR_TIPS))]
    vocab_tip = VOCABULARY_TIPS[rng.randrange(len(VOCABULARY_TIPS))]

    return FeedbackResult(
        content_tip=CONTENT_TIPS[content_level(wc)],
        language_tip=f"{grammar_tip} {vocab_tip}",
        word_count=wc,
        sentence_count=count_sentences(transcript),
    )
