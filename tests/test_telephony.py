"""Tests for the Twilio webhooks and TwiML builders."""

import xml.etree.ElementTree as ET

import pytest
from fastapi.testclient import TestClient

from spark_voice.conversation.guardrails import POUNDS_ONLY_SENTENCE
from spark_voice.conversation.state_machine import ConversationStateMachine, Stage
from spark_voice.telephony import app as app_module
from spark_voice.telephony.app import ERROR_PROMPT, create_app
from spark_voice.telephony.twiml import (
    INPUT_PATH,
    POSTCODE_HINTS,
    gather_twiml,
    goodbye_twiml,
    hints_for,
)
from tests.conftest import build_orchestrator

CALL_SID = "CA0123456789abcdef"


@pytest.fixture
def dialogue():
    return build_orchestrator()


@pytest.fixture
def client(dialogue):
    return TestClient(create_app(dialogue))


def _xml(response) -> ET.Element:
    assert response.headers["content-type"].startswith("application/xml")
    return ET.fromstring(response.text)


class TestTwimlBuilders:
    def test_gather_wraps_prompt(self):
        root = ET.fromstring(gather_twiml("What's the postcode?", Stage.NEED_POSTCODE))
        gather = root.find("Gather")
        assert gather is not None
        assert gather.get("input") == "speech"
        assert gather.get("action") == INPUT_PATH
        assert gather.get("speechTimeout") == "auto"
        assert gather.get("hints") == POSTCODE_HINTS
        assert gather.find("Say").text == "What's the postcode?"

    def test_gather_redirects_on_no_input(self):
        root = ET.fromstring(gather_twiml("Hello?"))
        redirect = root.find("Redirect")
        assert redirect is not None
        assert redirect.text == INPUT_PATH
        assert root.find("Gather").get("hints") is None

    def test_goodbye_hangs_up(self):
        root = ET.fromstring(goodbye_twiml("Bye."))
        assert root.find("Say").text == "Bye."
        assert root.find("Hangup") is not None

    def test_stage_without_hints(self):
        assert hints_for(Stage.NEED_FULL_NAME) is None


class TestWebhooks:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"ok": True, "active_calls": 0}

    def test_call_start_greets(self, client, dialogue):
        response = client.post("/call/start", data={"CallSid": CALL_SID, "From": "+447700900123"})
        root = _xml(response)
        say = root.find("Gather/Say")
        assert "cleaning quote" in say.text
        assert dialogue.store.get(CALL_SID) is not None

    def test_call_start_without_sid_hangs_up(self, client):
        root = _xml(client.post("/call/start", data={}))
        assert root.find("Hangup") is not None

    def test_speech_advances_the_call(self, client, dialogue):
        client.post("/call/start", data={"CallSid": CALL_SID})
        root = _xml(client.post("/call/input", data={"CallSid": CALL_SID, "SpeechResult": "an office"}))
        assert dialogue.store.get(CALL_SID).stage == Stage.NEED_SERVICE_TYPE
        assert root.find("Gather") is not None

    def test_missing_speech_counts_as_silence(self, client, dialogue):
        client.post("/call/start", data={"CallSid": CALL_SID})
        root = _xml(client.post("/call/input", data={"CallSid": CALL_SID}))
        assert "didn't hear anything" in root.find("Gather/Say").text
        assert dialogue.store.get(CALL_SID).silence_turns == 1

    def test_ended_call_hangs_up(self, client, dialogue):
        client.post("/call/start", data={"CallSid": CALL_SID})
        dialogue.store.get(CALL_SID).machine = ConversationStateMachine(Stage.ENDED)
        root = _xml(client.post("/call/input", data={"CallSid": CALL_SID, "SpeechResult": "hello"}))
        assert root.find("Hangup") is not None

    def test_turn_error_reprompts(self, client, dialogue, monkeypatch):
        def boom(call_id, text):
            raise RuntimeError("boom")

        monkeypatch.setattr(dialogue, "handle_utterance", boom)
        client.post("/call/start", data={"CallSid": CALL_SID})
        root = _xml(client.post("/call/input", data={"CallSid": CALL_SID, "SpeechResult": "hi"}))
        assert root.find("Gather/Say").text == ERROR_PROMPT

    def test_fallback_lines_are_currency_locked(self, client, dialogue, monkeypatch):
        monkeypatch.setattr(app_module, "FALLBACK_GOODBYE", "Goodbye, and enjoy $20 off next time.")
        root = _xml(client.post("/call/start", data={}))
        assert root.find("Say").text == POUNDS_ONLY_SENTENCE

        monkeypatch.setattr(app_module, "ERROR_PROMPT", "Sorry, was that in dollars?")

        def boom(call_id, text):
            raise RuntimeError("boom")

        monkeypatch.setattr(dialogue, "handle_utterance", boom)
        root = _xml(client.post("/call/input", data={"CallSid": CALL_SID, "SpeechResult": "hi"}))
        assert root.find("Gather/Say").text == POUNDS_ONLY_SENTENCE

    def test_completed_status_ends_call(self, client, dialogue):
        client.post("/call/start", data={"CallSid": CALL_SID})
        response = client.post("/call/status", data={"CallSid": CALL_SID, "CallStatus": "completed"})
        assert response.json() == {"ok": True}
        assert dialogue.store.get(CALL_SID) is None

    def test_in_progress_status_keeps_call(self, client, dialogue):
        client.post("/call/start", data={"CallSid": CALL_SID})
        client.post("/call/status", data={"CallSid": CALL_SID, "CallStatus": "in-progress"})
        assert dialogue.store.get(CALL_SID) is not None
