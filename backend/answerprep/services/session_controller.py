# answerprep/services/session_controller.py
import asyncio
import logging
import random
from typing import Awaitable, Callable, List, Optional

from answerprep.models.session_state import Attempt, SessionState
from answerprep.services.capture_service import AudioCapture, CaptureError, CaptureHandle
from answerprep.services.feedback_service import FeedbackResult, generate_feedback
from answerprep.services.question_service import QuestionBank

logger = logging.getLogger(__name__)

OnChange = Callable[[SessionState], Awaitable[None]]


class SessionStateError(Exception):
    """Operation not allowed in the current recording state."""


class SessionController:
    """
    Owns one SessionState and every transition on it:
    - start_recording: wait for the mic, then run the countdown
    - tick: one countdown step, stops the recording at zero
    - stop_recording: release the mic, keep the audio, generate feedback
    - advance_question: reset transient state, move to the next question
    - aclose: teardown, releases the countdown and an active capture
    """

    def __init__(
        self,
        questions: QuestionBank,
        capture: AudioCapture,
        *,
        answer_seconds: int = 60,
        tick_seconds: float = 1.0,
        rng=random,
        on_change: Optional[OnChange] = None,
    ):
        self.questions = questions
        self.capture = capture
        self.answer_seconds = answer_seconds
        self.tick_seconds = tick_seconds
        self.rng = rng
        self.on_change = on_change

        self.state = SessionState(time_remaining=answer_seconds)
        self.history: List[Attempt] = []

        self._handle: Optional[CaptureHandle] = None
        self._timer: Optional[asyncio.Task] = None
        self._busy = False  # a start or stop is waiting on the browser
        self._closed = False

    async def __aenter__(self) -> "SessionController":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    @property
    def current_question(self) -> str:
        return self.questions.get(self.state.current_question_index)

    async def _notify(self) -> None:
        if self.on_change is None:
            return
        try:
            await self.on_change(self.state)
        except Exception as e:
            logger.warning("State listener failed: %s", e)

    # ---------------- recording ----------------

    async def start_recording(self) -> None:
        if self._closed:
            raise SessionStateError("Session is closed")
        if self.state.is_recording or self._busy:
            raise SessionStateError("A recording is already in progress")

        self.state.capture_error = None
        self._busy = True
        try:
            handle = await self.capture.request_capture()
        except CaptureError as e:
            logger.warning("Microphone capture refused: %s", e)
            self.state.capture_error = str(e)
            await self._notify()
            return
        finally:
            self._busy = False

        if self._closed:
            # torn down while the browser was answering
            await handle.stop()
            return

        self._handle = handle
        self.state.is_recording = True
        self.state.time_remaining = self.answer_seconds
        self.state.feedback = None
        self.state.recorded_audio = None
        self._timer = asyncio.create_task(self._run_countdown())
        logger.info("Recording started for question %d", self.state.current_question_index + 1)
        await self._notify()

    async def _run_countdown(self) -> None:
        while self.state.is_recording:
            await asyncio.sleep(self.tick_seconds)
            await self.tick()

    async def tick(self) -> None:
        if not self.state.is_recording:
            return
        self.state.time_remaining = max(0, self.state.time_remaining - 1)
        if self.state.time_remaining <= 0:
            logger.info("Answer time is up")
            await self.stop_recording()
        else:
            await self._notify()

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        # the countdown may be the task that is stopping us
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    async def _release_capture(self):
        handle, self._handle = self._handle, None
        if handle is None:
            return None
        try:
            return await handle.stop()
        except CaptureError as e:
            logger.warning("Capture did not stop cleanly: %s", e)
            self.state.capture_error = str(e)
            return None

    async def stop_recording(self) -> Optional[FeedbackResult]:
        if not self.state.is_recording:
            return None

        self.state.is_recording = False
        self._cancel_timer()
        self._busy = True
        try:
            artifact = await self._release_capture()
        finally:
            self._busy = False

        self.state.recorded_audio = artifact
        feedback = generate_feedback(self.current_question, self.state.transcript_text, self.rng)
        self.state.feedback = feedback
        self.history.append(Attempt(
            question_index=self.state.current_question_index,
            question=self.current_question,
            feedback=feedback,
        ))
        logger.info(
            "Recording stopped: %d words, %d sentences",
            feedback.word_count, feedback.sentence_count,
        )
        await self._notify()
        return feedback

    # ---------------- navigation ----------------

    async def advance_question(self) -> int:
        if self.state.is_recording or self._busy:
            raise SessionStateError("Stop the recording before moving on")

        self.state.time_remaining = self.answer_seconds
        self.state.recorded_audio = None
        self.state.transcript_text = ""
        self.state.feedback = None
        self.state.capture_error = None
        self.state.current_question_index = self.questions.next_index(self.state.current_question_index)
        await self._notify()
        return self.state.current_question_index

    async def set_transcript_text(self, text: str) -> None:
        self.state.transcript_text = text or ""
        await self._notify()

    # ---------------- teardown ----------------

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._cancel_timer()
        if self.state.is_recording:
            self.state.is_recording = False
            await self._release_capture()
        self.on_change = None
        logger.info("Practice controller closed")
