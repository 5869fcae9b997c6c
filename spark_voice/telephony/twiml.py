"""TwiML builders for the speech <Gather> loop."""

from typing import Optional

from twilio.twiml.voice_response import VoiceResponse

from spark_voice.config import VoiceConfig, settings
from spark_voice.conversation.state_machine import Stage

INPUT_PATH = "/call/input"

POSTCODE_HINTS = (
    "S for Sun, W as in Winter, A for Alpha, B for Bravo, double, zero, oh, one, two, "
    "three, four, five, six, seven, eight, nine"
)
YES_NO_HINTS = "yes, no, that's right, that's wrong"

# Speech recognition hints per stage; stages not listed get none.
STAGE_HINTS: dict[Stage, str] = {
    Stage.NEED_CATEGORY: "home, house, flat, office, business, shop",
    Stage.NEED_SERVICE_TYPE: (
        "end of tenancy, deep clean, regular cleaning, post-construction, "
        "disinfection, office cleaning, retail cleaning"
    ),
    Stage.NEED_JOB_TYPE: "one-off, just once, regular, weekly, fortnightly",
    Stage.NEED_PROPERTY_TYPE: (
        "flat, studio, terraced, semi-detached, detached, office, shop, warehouse"
    ),
    Stage.CONFIRM_PROPERTY_TYPE: YES_NO_HINTS,
    Stage.NEED_POSTCODE: POSTCODE_HINTS,
    Stage.CONFIRM_POSTCODE: YES_NO_HINTS,
    Stage.NEED_BOOKING_POSTCODE: POSTCODE_HINTS,
    Stage.NEED_FREQUENCY: "once a week, twice a week, fortnightly, monthly, every day",
    Stage.NEED_EXTRAS: "oven, fridge, inside windows, carpets, no thanks",
    Stage.CONFIRM_QUOTE: YES_NO_HINTS,
    Stage.OFFER_BOOKING: "yes please, no thanks",
    Stage.NEED_EMAIL: "at, dot, gmail, hotmail, outlook, co dot uk",
}


def hints_for(stage: Stage) -> Optional[str]:
    return STAGE_HINTS.get(stage)


def gather_twiml(
    prompt: str,
    stage: Optional[Stage] = None,
    voice: VoiceConfig = settings.voice,
    action: str = INPUT_PATH,
) -> str:
    """<Gather input="speech"> wrapping the spoken prompt."""
    response = VoiceResponse()
    gather_kwargs = {
        "input": "speech",
        "action": action,
        "method": "POST",
        "speech_timeout": "auto",
        "timeout": voice.gather_timeout_sec,
        "language": voice.language,
        "speech_model": voice.speech_model,
    }
    hints = hints_for(stage) if stage is not None else None
    if hints:
        gather_kwargs["hints"] = hints
    gather = response.gather(**gather_kwargs)
    gather.say(prompt, voice=voice.voice, language=voice.language)
    # No speech at all: come back with an empty SpeechResult.
    response.redirect(action, method="POST")
    return str(response)


def goodbye_twiml(message: str, voice: VoiceConfig = settings.voice) -> str:
    response = VoiceResponse()
    response.say(message, voice=voice.voice, language=voice.language)
    response.hangup()
    return str(response)
