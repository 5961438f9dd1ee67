import logging
from typing import Dict, List, Sequence

logger = logging.getLogger(__name__)

DISCUSSION_QUESTIONS = (
    "How has technology changed the way businesses operate?",
    "How do managers keep employees motivated?",
    "How should managers handle workplace conflicts?",
    "Why is networking important for career growth?",
    "Why is market research important? Discuss different methods businesses use to gather data on customers.",
)


class QuestionBank:
    """
    Fixed, ordered list of discussion questions.
    Indexes wrap around, so the bank can be walked forever.
    """

    def __init__(self, questions: Sequence[str] = DISCUSSION_QUESTIONS):
        if not questions:
            raise ValueError("Question bank needs at least one question")
        self._questions = tuple(questions)

    def __len__(self) -> int:
        return len(self._questions)

    def __iter__(self):
        return iter(self._questions)

    def get(self, index: int) -> str:
        return self._questions[index % len(self._questions)]

    def next_index(self, index: int) -> int:
        # last question -> back to the first
        return index + 1 if index < len(self._questions) - 1 else 0

    def as_list(self) -> List[Dict]:
        return [
            {"index": i, "question_number": i + 1, "question_text": q}
            for i, q in enumerate(self._questions)
        ]
