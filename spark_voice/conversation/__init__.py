from spark_voice.conversation.guardrails import GuardrailPipeline
from spark_voice.conversation.postcode import extract_uk_postcode
from spark_voice.conversation.slot_manager import SlotManager, SlotStatus
from spark_voice.conversation.state_machine import (
    ConversationStateMachine,
    Stage,
    Trigger,
)

__all__ = [
    "ConversationStateMachine",
    "Stage",
    "Trigger",
    "SlotManager",
    "SlotStatus",
    "GuardrailPipeline",
    "extract_uk_postcode",
]
