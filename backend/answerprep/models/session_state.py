from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from answerprep.services.capture_service import AudioArtifact
from answerprep.services.feedback_service import FeedbackResult


@dataclass
class SessionState:
    current_question_index: int = 0
    is_recording: bool = False
    time_remaining: int = 60
    transcript_text: str = ""
    recorded_audio: Optional[AudioArtifact] = None
    feedback: Optional[FeedbackResult] = None
    capture_error: Optional[str] = None


@dataclass(frozen=True)
class Attempt:
    """One finished answer, kept for the practice summary."""
    question_index: int
    question: str
    feedback: FeedbackResult
    recorded_at: datetime = field(default_factory=datetime.now)
