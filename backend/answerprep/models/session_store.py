# answerprep/models/session_store.py
import asyncio
import logging
import random
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

import numpy as np

from answerprep.config import Settings
from answerprep.services.capture_service import BrowserCapture
from answerprep.services.feedback_service import CONTENT_TIPS, content_level
from answerprep.services.question_service import QuestionBank
from answerprep.services.session_controller import OnChange, SessionController

logger = logging.getLogger(__name__)


@dataclass
class PracticeSession:
    session_id: str
    controller: SessionController
    capture: BrowserCapture
    created_at: datetime = field(default_factory=datetime.now)


class SessionStore:
    """In-memory registry of practice sessions, one per browser tab."""

    def __init__(self, questions: Optional[QuestionBank] = None, settings=Settings, rng=random):
        self.questions = questions or QuestionBank()
        self.settings = settings
        self.rng = rng
        self.sessions: Dict[str, PracticeSession] = {}
        self._expiry: Dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self.sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self.sessions

    def create(self, on_change: Optional[OnChange] = None) -> PracticeSession:
        session_id = str(uuid.uuid4())
        capture = BrowserCapture(
            request_timeout=self.settings.CAPTURE_REQUEST_TIMEOUT,
            stop_timeout=self.settings.CAPTURE_STOP_TIMEOUT,
        )
        controller = SessionController(
            self.questions,
            capture,
            answer_seconds=self.settings.ANSWER_SECONDS,
            tick_seconds=self.settings.TICK_SECONDS,
            rng=self.rng,
            on_change=on_change,
        )
        s = PracticeSession(session_id=session_id, controller=controller, capture=capture)
        self.sessions[session_id] = s
        logger.info("Practice session created: %s", session_id)
        return s

    def get(self, session_id: str) -> PracticeSession:
        """Raises KeyError for unknown ids."""
        return self.sessions[session_id]

    def expire_later(self, session_id: str, delay: Optional[float] = None) -> None:
        """Drop the session after a grace period unless a page reconnects first."""
        self.cancel_expiry(session_id)
        if delay is None:
            delay = self.settings.SESSION_GRACE_SECONDS
        self._expiry[session_id] = asyncio.get_running_loop().create_task(self._expire(session_id, delay))

    def cancel_expiry(self, session_id: str) -> None:
        task = self._expiry.pop(session_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _expire(self, session_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        self._expiry.pop(session_id, None)
        s = self.sessions.get(session_id)
        if s is not None and not s.capture.connected:
            logger.info("Practice session expired: %s", session_id)
            await self.remove(session_id)

    async def remove(self, session_id: str) -> bool:
        self.cancel_expiry(session_id)
        s = self.sessions.pop(session_id, None)
        if s is None:
            return False
        s.capture.detach()
        await s.controller.aclose()
        logger.info("Practice session removed: %s", session_id)
        return True

    async def close_all(self) -> None:
        for session_id in list(self.sessions):
            await self.remove(session_id)

    def summary(self, session_id: str) -> dict:
        s = self.get(session_id)
        attempts = s.controller.history
        words = [a.feedback.word_count for a in attempts]
        sentences = [a.feedback.sentence_count for a in attempts]
        buckets = Counter(content_level(w) for w in words)

        return {
            "session_id": session_id,
            "attempts": len(attempts),
            "average_word_count": float(np.mean(words)) if words else 0.0,
            "average_sentence_count": float(np.mean(sentences)) if sentences else 0.0,
            "content_levels": {tip: buckets.get(i, 0) for i, tip in enumerate(CONTENT_TIPS)},
            "history": [
                {
                    "question_number": a.question_index + 1,
                    "question": a.question,
                    "word_count": a.feedback.word_count,
                    "sentence_count": a.feedback.sentence_count,
                    "content_tip": a.feedback.content_tip,
                    "recorded_at": a.recorded_at.isoformat(),
                }
                for a in attempts
            ],
        }
