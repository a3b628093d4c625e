"""FastAPI server that exposes student endpoints."""

from __future__ import annotations

from threading import Thread
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import HTMLResponse
from pydantic import BaseModel
import uvicorn

from poll_app.constants.about import APP_NAME, APP_VERSION
from poll_app.constants.network_constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    STUDENT_COOKIE_MAX_AGE_SECONDS,
    STUDENT_COOKIE_NAME,
)
from poll_app.core.answer_records import format_timestamp
from poll_app.core.errors import (
    InvalidSessionCodeError,
    InvalidSubmissionError,
    PersistError,
    QuestionClosedError,
    QuestionNotFoundError,
    SessionNotFoundError,
)
from poll_app.core.markdown_renderer import renderer
from poll_app.core.models import PollSession, QuestionType
from poll_app.core.services.session_service import SessionService
from poll_app.core.services.submission_service import SubmissionService


def _ensure_student_id(request: Request, response: Response) -> str:
    """Return the per-device student id, issuing a cookie on first contact."""
    student_id = request.cookies.get(STUDENT_COOKIE_NAME)
    if student_id and len(student_id) == 32 and all(c in "0123456789abcdef" for c in student_id):
        return student_id
    student_id = uuid4().hex
    response.set_cookie(
        key=STUDENT_COOKIE_NAME,
        value=student_id,
        max_age=STUDENT_COOKIE_MAX_AGE_SECONDS,
        samesite="lax",
        httponly=True,
    )
    return student_id


_STUDENT_PAGE_HTML = """<!doctype html>
<html lang=\"en\">
  <head>
    <meta charset=\"utf-8\" />
    <title>PollQt Student</title>
    <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\" />
    <style>
      :root { font-family: 'Inter', system-ui, sans-serif; background: #0b1120; color: #f5f7ff; }
      body { margin: 0; padding: 1.5rem; display: flex; flex-direction: column; gap: 1rem; }
      .card { background: #111a30; border-radius: 0.75rem; padding: 1.5rem; box-shadow: 0 0.5rem 1.5rem rgba(0, 0, 0, 0.4); }
      .hidden { display: none; }
      .primary-button { border: none; border-radius: 0.75rem; padding: 0.85rem 1.5rem; font-size: 1rem; background: #1f9aa5; color: #fff; cursor: pointer; }
      .primary-button:disabled { opacity: 0.6; cursor: not-allowed; }
      #code-input { font-size: 1.5rem; letter-spacing: 0.3rem; width: 10rem; padding: 0.5rem; border-radius: 0.5rem; border: none; }
      #question-container { min-height: 4rem; font-size: 1.1rem; line-height: 1.6; }
      .option-row { display: flex; gap: 0.75rem; align-items: center; padding: 0.75rem; margin-bottom: 0.5rem; border-radius: 0.75rem; background: #1b2742; cursor: pointer; }
      #essay-input { width: 100%; min-height: 8rem; font-size: 1rem; border-radius: 0.5rem; border: none; padding: 0.5rem; box-sizing: border-box; }
      .muted { color: #94a3b8; font-size: 0.95rem; }
      #status { min-height: 1.25rem; }
    </style>
  </head>
  <body>
    <section class=\"card\" id=\"join-card\">
      <h1>Join a Poll</h1>
      <p>Enter the six-digit code shown by your teacher.</p>
      <input id=\"code-input\" inputmode=\"numeric\" maxlength=\"6\" autocomplete=\"off\" />
      <button id=\"join-button\" class=\"primary-button\">Join</button>
      <p id=\"join-status\" class=\"muted\"></p>
    </section>
    <section class=\"card hidden\" id=\"waiting-card\">
      <h2>Waiting Room</h2>
      <p id=\"waiting-message\">Waiting for the teacher to activate a question...</p>
      <p id=\"session-label\" class=\"muted\"></p>
    </section>
    <section class=\"card hidden\" id=\"question-card\">
      <div id=\"question-container\"></div>
      <div id=\"options-container\"></div>
      <textarea id=\"essay-input\" class=\"hidden\" placeholder=\"Type your answer...\"></textarea>
      <button id=\"submit-button\" class=\"primary-button\">Submit</button>
      <p id=\"status\"></p>
    </section>
    <script>
      const joinCard = document.getElementById('join-card');
      const waitingCard = document.getElementById('waiting-card');
      const questionCard = document.getElementById('question-card');
      const codeInput = document.getElementById('code-input');
      const joinButton = document.getElementById('join-button');
      const joinStatus = document.getElementById('join-status');
      const sessionLabel = document.getElementById('session-label');
      const questionContainer = document.getElementById('question-container');
      const optionsContainer = document.getElementById('options-container');
      const essayInput = document.getElementById('essay-input');
      const submitButton = document.getElementById('submit-button');
      const statusEl = document.getElementById('status');

      let sessionCode = null;
      let currentQuestion = null;
      let pollHandle = null;

      function setVisibility(element, isVisible) {
        if (isVisible) {
          element.classList.remove('hidden');
        } else {
          element.classList.add('hidden');
        }
      }

      async function joinSession() {
        joinButton.disabled = true;
        joinStatus.textContent = 'Contacting server...';
        try {
          const response = await fetch('/join', {
            method: 'POST',
            headers: { 'Content-Type': 'application/json' },
            body: JSON.stringify({ code: codeInput.value })
          });
          const body = await response.json().catch(() => ({}));
          if (!response.ok) {
            joinStatus.textContent = body.detail || 'Unable to join. Check the code.';
            joinButton.disabled = false;
            return;
          }
          sessionCode = body.code;
          sessionLabel.textContent = `Session ${sessionCode}`;
          joinStatus.textContent = '';
          setVisibility(joinCard, false);
          setVisibility(waitingCard, true);
          await refreshQuestion();
          pollHandle = setInterval(refreshQuestion, 2000);
        } catch (error) {
          joinStatus.textContent = 'Unable to reach the server. Check your connection and try again.';
          joinButton.disabled = false;
        }
      }

      function renderQuestion(payload) {
        questionContainer.innerHTML = payload.question_html;
        optionsContainer.innerHTML = '';
        const inputType = payload.allow_multiple ? 'checkbox' : 'radio';
        payload.options.forEach((option, index) => {
          const label = document.createElement('label');
          label.className = 'option-row';
          const input = document.createElement('input');
          input.type = inputType;
          input.name = 'option';
          input.value = option.id;
          label.appendChild(input);
          const text = document.createElement('span');
          text.innerHTML = `${String.fromCharCode(65 + index)}. ${option.html}`;
          label.appendChild(text);
          optionsContainer.appendChild(label);
        });
        const isEssay = payload.type === 'essay';
        setVisibility(essayInput, isEssay);
        essayInput.value = '';
        submitButton.disabled = false;
        statusEl.textContent = '';
      }

      async function refreshQuestion() {
        try {
          const response = await fetch(`/sessions/${sessionCode}/question`);
          const payload = await response.json();
          if (!response.ok) {
            clearInterval(pollHandle);
            setVisibility(questionCard, false);
            setVisibility(waitingCard, false);
            setVisibility(joinCard, true);
            joinButton.disabled = false;
            joinStatus.textContent = payload.detail || 'The session has ended.';
            return;
          }
          if (!payload.active) {
            currentQuestion = null;
            setVisibility(questionCard, false);
            setVisibility(waitingCard, true);
            return;
          }
          setVisibility(waitingCard, false);
          setVisibility(questionCard, true);
          if (!currentQuestion || currentQuestion.question_id !== payload.question_id) {
            currentQuestion = payload;
            renderQuestion(payload);
          }
        } catch (error) {
          statusEl.textContent = 'Unable to reach the poll server.';
        }
      }

      async function submitAnswer() {
        if (!currentQuestion) {
          return;
        }
        const body = { question_id: currentQuestion.question_id };
        if (currentQuestion.type === 'essay') {
          body.text = essayInput.value;
        } else {
          body.option_ids = Array.from(optionsContainer.querySelectorAll('input:checked')).map(i => i.value);
        }
        submitButton.disabled = true;
        try {
          const response = await fetch(`/sessions/${sessionCode}/answers`, {
            method: 'POST',
            headers: { 'Content-Type': 'application/json' },
            body: JSON.stringify(body)
          });
          const result = await response.json().catch(() => ({}));
          if (response.ok) {
            statusEl.textContent = 'Answer sent!';
            if (currentQuestion.type === 'essay') {
              essayInput.value = '';
              submitButton.disabled = false;
            }
          } else {
            statusEl.textContent = result.detail ?? 'Unable to send answer.';
            submitButton.disabled = false;
          }
        } catch (error) {
          statusEl.textContent = 'Unable to send answer.';
          submitButton.disabled = false;
        }
      }

      joinButton.addEventListener('click', joinSession);
      submitButton.addEventListener('click', submitAnswer);
      fetch('/identity');
    </script>
  </body>
</html>
"""


class JoinPayload(BaseModel):
    """Payload schema for joining a session by code."""

    code: str


class AnswerPayload(BaseModel):
    """Payload schema for submitted answers.

    Multiple-choice answers carry ``option_ids``; essay answers carry ``text``.
    """

    question_id: str
    option_ids: list[str] | None = None
    text: str | None = None


def _get_services_dependency(sessions: SessionService, submissions: SubmissionService):
    def sessions_dependency() -> SessionService:
        return sessions

    def submissions_dependency() -> SubmissionService:
        return submissions

    return sessions_dependency, submissions_dependency


async def _join_or_raise(sessions: SessionService, code: str) -> PollSession:
    try:
        return await sessions.join_session(code)
    except InvalidSessionCodeError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def create_api_app(sessions: SessionService, submissions: SubmissionService) -> FastAPI:
    """Create a FastAPI application wired to the provided services."""
    app = FastAPI(title=f"{APP_NAME} API", version=APP_VERSION)
    sessions_dep, submissions_dep = _get_services_dependency(sessions, submissions)

    @app.get("/", response_class=HTMLResponse)
    def serve_student_page() -> str:
        return _STUDENT_PAGE_HTML

    @app.get("/identity")
    def get_identity(request: Request, response: Response) -> dict[str, object]:
        return {"student_id": _ensure_student_id(request, response)}

    @app.post("/join", status_code=201)
    async def join_session(
        payload: JoinPayload,
        request: Request,
        response: Response,
        service: SessionService = Depends(sessions_dep),
    ) -> dict[str, object]:
        student_id = _ensure_student_id(request, response)
        session = await _join_or_raise(service, payload.code)
        return {"session_id": session.id, "code": session.code, "student_id": student_id}

    @app.get("/sessions/{code}/question")
    async def get_active_question(
        code: str,
        service: SessionService = Depends(sessions_dep),
    ) -> dict[str, object]:
        session = await _join_or_raise(service, code)
        question = await service.get_active_question(session.id)
        if question is None:
            return {
                "active": False,
                "question_id": None,
                "type": None,
                "question_html": None,
                "allow_multiple": False,
                "options": [],
            }
        return {
            "active": True,
            "question_id": question.id,
            "type": question.type.value,
            "question_html": renderer.render_fragment(question.text),
            "allow_multiple": question.allow_multiple,
            "options": [
                {"id": option.id, "text": option.text, "html": renderer.render_inline(option.text)}
                for option in question.options
            ],
        }

    @app.post("/sessions/{code}/answers", status_code=201)
    async def submit_answer(
        code: str,
        payload: AnswerPayload,
        request: Request,
        response: Response,
        service: SessionService = Depends(sessions_dep),
        submission_service: SubmissionService = Depends(submissions_dep),
    ) -> dict[str, object]:
        student_id = _ensure_student_id(request, response)
        session = await _join_or_raise(service, code)
        try:
            question = await service.get_question(payload.question_id)
        except QuestionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        if question.session_id != session.id:
            raise HTTPException(status_code=404, detail="Question does not belong to this session.")

        try:
            if question.type is QuestionType.MCQ:
                answers = await submission_service.submit_mcq(question, student_id, payload.option_ids or [])
            else:
                answers = [await submission_service.submit_essay(question, student_id, payload.text or "")]
        except InvalidSubmissionError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except QuestionClosedError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except PersistError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc

        return {
            "question_id": question.id,
            "answer_ids": [answer.id for answer in answers],
            "submitted_at": format_timestamp(answers[0].created_at),
        }

    return app


def start_api_server(
    sessions: SessionService,
    submissions: SubmissionService,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> Thread:
    """Start the FastAPI server in a background daemon thread."""
    app = create_api_app(sessions, submissions)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)

    def run_server() -> None:
        server.run()

    thread = Thread(target=run_server, name="PollApiServer", daemon=True)
    thread.start()
    return thread
