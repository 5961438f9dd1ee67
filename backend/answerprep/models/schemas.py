from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from answerprep.models.session_store import PracticeSession


class FeedbackOut(BaseModel):
    content_tip: str
    language_tip: str
    word_count: int
    sentence_count: int


class SessionStateOut(BaseModel):
    session_id: str
    question_index: int
    question_number: int
    question_text: str
    total_questions: int
    is_recording: bool
    time_remaining: int
    transcript_text: str
    audio_url: Optional[str] = None
    feedback: Optional[FeedbackOut] = None
    capture_error: Optional[str] = None
    browser_connected: bool = False


class TranscriptUpdate(BaseModel):
    """Accepts `text` or the camelCase `transcriptText` used by the page script."""
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field("", alias="transcriptText")


def audio_url(session_id: str, artifact_id: str) -> str:
    return f"/api/practice/{session_id}/audio?v={artifact_id}"


def session_state_out(s: PracticeSession) -> SessionStateOut:
    c = s.controller
    st = c.state
    return SessionStateOut(
        session_id=s.session_id,
        question_index=st.current_question_index,
        question_number=st.current_question_index + 1,
        question_text=c.current_question,
        total_questions=len(c.questions),
        is_recording=st.is_recording,
        time_remaining=st.time_remaining,
        transcript_text=st.transcript_text,
        audio_url=audio_url(s.session_id, st.recorded_audio.artifact_id) if st.recorded_audio else None,
        feedback=FeedbackOut(**st.feedback.to_dict()) if st.feedback else None,
        capture_error=st.capture_error,
        browser_connected=s.capture.connected,
    )
