# answerprep/routers/questions.py
from fastapi import APIRouter, Request

from answerprep.services.question_service import QuestionBank

router = APIRouter()


def _bank(request: Request) -> QuestionBank:
    return request.app.state.store.questions


@router.get("/")
async def list_questions(request: Request):
    bank = _bank(request)
    return {"ok": True, "total": len(bank), "questions": bank.as_list()}


@router.get("/{index}")
async def get_question(index: int, request: Request):
    # indexes wrap, same as "next question" does
    bank = _bank(request)
    i = index % len(bank)
    return {"index": i, "question_number": i + 1, "question_text": bank.get(i)}
