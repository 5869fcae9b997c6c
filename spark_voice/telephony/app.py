"""
Twilio voice webhooks.

Twilio posts the call start, every speech result and the final call
status as form data. Each reply is TwiML: a speech <Gather> around the
next prompt, or <Say> + <Hangup> once the call has ended.

Usage:
    uvicorn --factory spark_voice.telephony.app:create_app --port 8080
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response

from spark_voice.config import settings
from spark_voice.conversation.coordinator import ActionCoordinator
from spark_voice.conversation.delta_merger import DeltaMerger
from spark_voice.conversation.guardrails import GuardrailPipeline
from spark_voice.conversation.orchestrator import DialogueOrchestrator, TurnResult
from spark_voice.logging_context import set_call_id
from spark_voice.telephony.twiml import gather_twiml, goodbye_twiml
from spark_voice.tools.booking import BookingClient
from spark_voice.tools.extraction import build_default_extractor
from spark_voice.tools.pricing import PricingClient

logger = logging.getLogger(__name__)

FALLBACK_GOODBYE = f"Thanks for calling {settings.business.name}. Goodbye."
ERROR_PROMPT = "Sorry, I didn't quite get that. Could you say it again?"

# Twilio CallStatus values after which no more speech will arrive.
FINISHED_STATUSES = {"completed", "busy", "failed", "no-answer", "canceled"}


def build_orchestrator() -> DialogueOrchestrator:
    """Wire the orchestrator to the configured webhooks and AI extractor."""
    guardrails = GuardrailPipeline()
    coordinator = ActionCoordinator(PricingClient(), BookingClient(), guardrails)
    merger = DeltaMerger(build_default_extractor(), guardrails)
    return DialogueOrchestrator(coordinator, merger=merger, guardrails=guardrails)


def _twiml_response(twiml: str) -> Response:
    return Response(content=twiml, media_type="application/xml")


def _render(orchestrator: DialogueOrchestrator, call_sid: str, turn: TurnResult) -> Response:
    if not turn.expect_reply:
        return _twiml_response(goodbye_twiml(turn.prompt))
    session = orchestrator.store.get(call_sid)
    stage = session.stage if session is not None else None
    return _twiml_response(gather_twiml(turn.prompt, stage))


def create_app(orchestrator: Optional[DialogueOrchestrator] = None) -> FastAPI:
    """Build the webhook app; tests pass an orchestrator with fake collaborators."""
    app = FastAPI(title=f"{settings.business.name} voice agent")
    dialogue = orchestrator or build_orchestrator()
    app.state.orchestrator = dialogue

    def locked(text: str) -> str:
        return dialogue.guardrails.lock_segments([text])

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({"ok": True, "active_calls": len(dialogue.store)})

    @app.post("/call/start")
    async def call_start(request: Request) -> Response:
        form = await request.form()
        call_sid = str(form.get("CallSid") or "")
        if not call_sid:
            logger.warning("CallSid missing on /call/start request")
            return _twiml_response(goodbye_twiml(locked(FALLBACK_GOODBYE)))
        set_call_id(call_sid)
        logger.info("Incoming call from %s", form.get("From") or "unknown")
        try:
            turn = await run_in_threadpool(dialogue.start_call, call_sid)
        except Exception:
            logger.exception("Failed to start call")
            return _twiml_response(goodbye_twiml(locked(FALLBACK_GOODBYE)))
        return _render(dialogue, call_sid, turn)

    @app.post("/call/input")
    async def call_input(request: Request) -> Response:
        form = await request.form()
        call_sid = str(form.get("CallSid") or "")
        if not call_sid:
            logger.warning("CallSid missing on /call/input request")
            return _twiml_response(goodbye_twiml(locked(FALLBACK_GOODBYE)))
        set_call_id(call_sid)
        speech = str(form.get("SpeechResult") or "").strip()
        try:
            turn = await run_in_threadpool(dialogue.handle_utterance, call_sid, speech)
        except Exception:
            # The caller always gets valid TwiML and another chance to answer.
            logger.exception("Turn failed for input %r", speech)
            return _twiml_response(gather_twiml(locked(ERROR_PROMPT)))
        return _render(dialogue, call_sid, turn)

    @app.post("/call/status")
    async def call_status(request: Request) -> JSONResponse:
        form = await request.form()
        call_sid = str(form.get("CallSid") or "")
        status = str(form.get("CallStatus") or "").lower()
        if call_sid:
            set_call_id(call_sid)
        logger.info("Status callback: %s", status or "unknown")
        if call_sid and status in FINISHED_STATUSES:
            dialogue.end_call(call_sid)
        return JSONResponse({"ok": True})

    return app

