"""
Offline console demo: runs a full quote-and-book call without any webhooks.

Uses the real orchestrator, stage machine, extractors and guardrails with
in-process pricing and booking stand-ins. No OpenAI, no Twilio, no
network calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario fallback
    python console_demo.py --scenario callback
"""

import argparse
import uuid
from typing import Optional

from spark_voice.config import settings
from spark_voice.conversation.coordinator import ActionCoordinator
from spark_voice.conversation.orchestrator import DialogueOrchestrator
from spark_voice.schemas.booking_schema import BookingDraft, BookingResult
from spark_voice.schemas.quote_schema import QuoteResult, SubmittedQuote
from spark_voice.tools.booking import BookingResponse, BookingStatus
from spark_voice.tools.pricing import PricingResponse, PricingStatus

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"


class DemoPricing:
    """Rough local price so the demo can run end to end."""

    def __init__(self, currency: str = "GBP") -> None:
        self.currency = currency

    def get_quote(self, quote: SubmittedQuote, idempotency_key: str) -> PricingResponse:
        if quote.preferred_hours:
            amount = 22.0 * quote.preferred_hours
        else:
            amount = 60.0 + 25 * quote.bedrooms + 20 * quote.bathrooms + 10 * quote.toilets
        amount += 15 * sum(e.quantity for e in quote.extras)
        if self.currency == "GBP":
            body = f'{{"amount": {amount:.2f}, "currency": "GBP"}}'
        else:
            body = f'{{"amount": {amount:.2f}, "currency": "USD", "message": "${amount:.0f}"}}'
        result = QuoteResult(amount=amount, currency=self.currency)
        return PricingResponse(PricingStatus.OK, result=result, raw_body=body)


class DemoBooking:
    def confirm_booking(self, booking: BookingDraft, idempotency_key: str) -> BookingResponse:
        reference = "TS-" + uuid.uuid4().hex[:6].upper()
        return BookingResponse(BookingStatus.CONFIRMED, BookingResult(success=True, reference=reference))


class ConsoleSession:
    """Drives one call through the orchestrator in the terminal."""

    # Pre-scripted scenarios for --scenario flag
    SCENARIOS: dict[str, list[str]] = {
        "booking": [
            "it's for my house",
            "a deep clean please",
            "it's a semi",
            "yes, semi-detached",
            "S W 1 A 1 A A",
            "yes that's right",
            "three bedrooms and two bathrooms",
            "one toilet",
            "an oven clean please",
            "just the one",
            "yes",
            "yes please",
            "Jane Smith",
            "07700 900123",
            "jane at example dot com",
            "12 Acacia Avenue",
            "next Tuesday",
            "morning",
        ],
        "fallback": [
            "domestic",
            "end of tenancy",
            "a flat",
            "erm it's the one near the station",
            "I'm not sure sorry",
            "Croydon, near East Croydon station",
            "two bedrooms and one bathroom",
            "none",
            "no thanks",
            "yes",
            "no thanks",
        ],
        "callback": [
            "it's an office",
            "office cleaning",
            "regular",
            "an office",
            "E C 1 A 1 B B",
            "yes",
            "about two thousand square feet",
            "three toilets",
            "one kitchen",
            "four hours",
            "twice a week",
            "no",
            "yes",
            "Sam Patel",
            "020 7946 0000",
        ],
    }

    MAX_INPUT_LENGTH = 500

    def __init__(self, scenario: Optional[str] = None) -> None:
        currency = "USD" if scenario == "callback" else "GBP"
        self.orchestrator = DialogueOrchestrator(ActionCoordinator(DemoPricing(currency), DemoBooking()))
        self.call_id = "console-" + uuid.uuid4().hex[:8]

    def agent_say(self, text: str) -> None:
        print(f"{GREEN}{BOLD}[{settings.business.assistant_name}]{RESET} {GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def _banner(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  SPARK VOICE - {title}{RESET}")
        print(f"{BOLD}  Business: {settings.business.name}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        print()

    def _stage(self) -> str:
        session = self.orchestrator.store.get(self.call_id)
        return session.stage.value if session is not None else "ended"

    def _turn(self, text: str) -> bool:
        """Send one caller line; returns False once the call has ended."""
        turn = self.orchestrator.handle_utterance(self.call_id, text)
        self.agent_say(turn.prompt)
        self.system_log(f"Stage: {self._stage()}")
        return turn.expect_reply

    def _finish(self) -> None:
        session = self.orchestrator.end_call(self.call_id)
        if session is None:
            return
        print(f"{DIM}  Stage trace: {' -> '.join(session.machine.get_state_trace())}{RESET}")
        print(f"{DIM}  Quote: {session.quote.model_dump(exclude_defaults=True)}{RESET}")
        if session.outcome is not None:
            print(f"{YELLOW}  Outcome: {session.outcome.value}{RESET}")

    def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario for demo purposes."""
        steps = self.SCENARIOS.get(scenario)
        if not steps:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        self._banner(f"Scenario: {scenario}")
        self.agent_say(self.orchestrator.start_call(self.call_id).prompt)
        for step in steps:
            print(f"\n{BLUE}[Caller] {RESET}{step}")
            if not self._turn(step):
                break

        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  Scenario '{scenario}' complete.{RESET}")
        self._finish()
        print(f"{BOLD}{'=' * 60}{RESET}")

    def run(self) -> None:
        self._banner("Console Demo")
        print(f"{BOLD}  Type 'quit' to exit, press Enter to stay silent{RESET}\n")
        self.agent_say(self.orchestrator.start_call(self.call_id).prompt)

        while True:
            try:
                user_input = input(f"\n{BLUE}[Caller] {RESET}").strip()
            except (EOFError, KeyboardInterrupt):
                print(f"\n{DIM}Session ended.{RESET}")
                break
            if user_input.lower() in ("quit", "exit", "q"):
                print(f"\n{DIM}Session ended.{RESET}")
                break
            if not self._turn(user_input[: self.MAX_INPUT_LENGTH]):
                break
        self._finish()


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline console demo")
    parser.add_argument(
        "--scenario",
        choices=sorted(ConsoleSession.SCENARIOS),
        default=None,
        help="Auto-play a pre-scripted scenario instead of interactive mode",
    )
    args = parser.parse_args()

    session = ConsoleSession(args.scenario)
    if args.scenario:
        session.run_scenario(args.scenario)
    else:
        session.run()


if __name__ == "__main__":
    main()
