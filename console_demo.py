"""
Offline console demo: plays a booking negotiation end to end.

Seeds an in-memory document store with a student, a tutor, a counsellor
and an admin, then drives the real portal views through a scripted
scenario. No database, no identity provider, no network calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario suggest
    python console_demo.py --scenario conflict
"""

import argparse
import asyncio
from datetime import datetime
from typing import Optional

from learnbridge.config import settings
from learnbridge.schemas.booking_schema import BookingMode, BookingRequest
from learnbridge.schemas.user_schema import AuthUser
from learnbridge.services.dashboard import format_report
from learnbridge.store.base import SESSIONS, USERS
from learnbridge.store.memory import InMemoryDocumentStore, InMemoryIdentityProvider
from learnbridge.utils import format_instant, normalize_instant
from learnbridge.views.registry import create_portal

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

DEMO_NOW = "2025-03-07T09:00:00Z"

WEEKDAY_HOURS = [
    {"day": day, "from": "09:00", "to": "17:00", "location": "Library room 2"}
    for day in ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")
]

DEMO_USERS = {
    "uid-student": {"name": "Sam Okafor", "email": "sam@uni.test", "role": "student"},
    "uid-student-2": {"name": "Priya Nair", "email": "priya@uni.test", "role": "student"},
    "uid-tutor": {
        "name": "Dr. Lena Fischer", "email": "lena@uni.test", "role": "tutor",
        "status": "active", "department": "Computer Science", "modules": "CS101, CS204",
        "availability": WEEKDAY_HOURS,
    },
    "uid-counsellor": {
        "name": "Tom Reyes", "email": "tom@uni.test", "role": "counsellor", "status": "active",
    },
    "uid-admin": {"name": "Admin", "email": "admin@uni.test", "role": "admin"},
}

# An approved session already blocking Monday 14:00-15:00.
EXISTING_BOOKING = {
    "requesterId": "uid-student-2",
    "requesterName": "Priya Nair",
    "staffId": "uid-tutor",
    "staffName": "Dr. Lena Fischer",
    "role": "tutor",
    "datetime": "2025-03-10T14:00:00Z",
    "duration": 60,
    "mode": "online",
    "status": "approved",
    "createdAt": "2025-03-03T10:00:00Z",
}


class ConsoleSession:
    """Runs scripted negotiations between a student and a tutor portal."""

    SCENARIOS: dict[str, str] = {
        "booking": "Multi-slot request, evaluation, approval, session, rating",
        "suggest": "Tutor counter-proposes, student declines, then accepts the next free time",
        "conflict": "Approval blocked by an existing booking, resolved by suggesting the next slot",
    }

    def __init__(self, now: str = DEMO_NOW) -> None:
        self.now = normalize_instant(now)
        self.store = InMemoryDocumentStore()
        for uid, data in DEMO_USERS.items():
            self.store.seed(USERS, uid, data)
        self.store.seed(SESSIONS, "existing-1", EXISTING_BOOKING)
        self.trace: list[str] = []

        self.student = self._portal("student", "uid-student")
        self.tutor = self._portal("tutor", "uid-tutor")

    def _clock(self) -> datetime:
        return self.now

    def _portal(self, name: str, uid: str):
        identity = InMemoryIdentityProvider(AuthUser(id=uid, email=DEMO_USERS[uid]["email"]))
        return create_portal(name, store=self.store, identity=identity, clock=self._clock)

    # ------------------------------------------------------------------ #
    # Output
    # ------------------------------------------------------------------ #

    def say(self, who: str, text: str) -> None:
        colour = BLUE if who == "Student" else GREEN
        print(f"{colour}{BOLD}[{who}]{RESET} {colour}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def _when(self, instant: Optional[datetime]) -> str:
        return format_instant(instant, settings.tz)

    def _record(self, booking: Optional[BookingRequest]) -> Optional[BookingRequest]:
        if booking is not None:
            if not self.trace or self.trace[-1] != booking.status.value:
                self.trace.append(booking.status.value)
            self.system_log(f"Booking {booking.id}: {booking.status.value} (revision {booking.revision})")
        self._flush_alerts()
        return booking

    def _flush_alerts(self) -> None:
        for portal in (self.student, self.tutor):
            while portal.alerts:
                print(f"{YELLOW}  !! {portal.alerts.pop(0)}{RESET}")

    # ------------------------------------------------------------------ #
    # Scenario steps
    # ------------------------------------------------------------------ #

    async def _request(self, *slots: str, mode: BookingMode = BookingMode.ONLINE) -> Optional[BookingRequest]:
        self.student.select_staff("uid-tutor")
        for slot in slots:
            self.student.add_slot(slot)
        self.say("Student", "I'd like a tutoring session. " + self.student.slot_builder.get_summary())
        return self._record(await self.student.submit_request(mode=mode, notes="Recursion help"))

    async def _evaluate(self, booking_id: str) -> None:
        evaluations = await self.tutor.evaluate(booking_id)
        if isinstance(evaluations, str):
            self.system_log(evaluations)
            return
        for item in evaluations:
            status = f"{RED}conflict{RESET}" if item.conflict else f"{GREEN}free{RESET}"
            extra = f", next available {self._when(item.next_available)}" if item.conflict else ""
            self.system_log(f"{self._when(item.slot)}: {status}{extra}")

    async def _scenario_booking(self) -> None:
        booking = await self._request(
            "2025-03-10T10:00:00Z", "2025-03-10T14:30:00Z", "2025-03-11T09:30:00Z"
        )
        if booking is None:
            return
        await self._evaluate(booking.id)
        self.say("Tutor", "Tuesday 09:30 works for me.")
        approved = self._record(await self.tutor.approve(booking.id, slot="2025-03-11T09:30:00Z"))
        if approved is None:
            return
        self.system_log(f"Confirmed for {self._when(approved.scheduled_at)} at {approved.venue}")

        self.now = normalize_instant("2025-03-11T09:25:00Z")
        self.say("Tutor", "Starting the online session.")
        self._record(await self.tutor.start_session(booking.id))
        self.now = normalize_instant("2025-03-11T10:30:00Z")
        self._record(await self.tutor.complete_session(booking.id))
        rating = await self.student.rate("uid-tutor", 5, "Very clear explanations")
        if rating is not None:
            self.say("Student", f"Rated {rating.stars} stars.")
        self._flush_alerts()

    async def _scenario_suggest(self) -> None:
        booking = await self._request("2025-03-12T18:00:00Z")
        if booking is None:
            return
        self.say("Tutor", "Could we do Wednesday 11:00 instead?")
        self._record(await self.tutor.suggest(booking.id, "2025-03-12T11:00:00Z"))
        self.say("Student", "I have a lecture then.")
        self._record(await self.student.decline_suggestion(booking.id))
        self._record(await self.tutor.suggest_next_available(booking.id))
        current = await self.student.my_sessions()
        if isinstance(current, list) and current:
            self.say("Student", f"{self._when(current[0].suggested_time)} is fine.")
        self._record(await self.student.accept_suggestion(booking.id))

    async def _scenario_conflict(self) -> None:
        booking = await self._request("2025-03-10T14:30:00Z")
        if booking is None:
            return
        await self._evaluate(booking.id)
        self.say("Tutor", "Approving Monday 14:30.")
        self._record(await self.tutor.approve(booking.id, slot="2025-03-10T14:30:00Z"))
        conflict = self.tutor.last_conflict
        if conflict is not None and conflict.next_available is not None:
            self.say("Tutor", f"I'll suggest {self._when(conflict.next_available)} instead.")
            self._record(await self.tutor.suggest(booking.id, conflict.next_available))
            self._record(await self.student.accept_suggestion(booking.id))

    async def play(self, scenario: str) -> None:
        await self.student.enter()
        await self.tutor.enter()
        try:
            await getattr(self, f"_scenario_{scenario}")()
            stats = await self.tutor.dashboard()
            print()
            print(stats if isinstance(stats, str) else format_report(stats, "Tutor dashboard"))
        finally:
            self.student.exit()
            self.tutor.exit()

    def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario for demo purposes."""
        if scenario not in self.SCENARIOS:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  {settings.portal.name.upper()} - Scenario: {scenario}{RESET}")
        print(f"{BOLD}  {self.SCENARIOS[scenario]}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        print()

        asyncio.run(self.play(scenario))

        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  Scenario '{scenario}' complete.{RESET}")
        print(f"{DIM}  State trace: {' -> '.join(self.trace)}{RESET}")
        print(f"{DIM}  Slot builder: {self.student.slot_builder.get_stats()}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

    def run(self) -> None:
        """Pick a scenario interactively."""
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  {settings.portal.name.upper()} - Console Demo{RESET}")
        print(f"{BOLD}  Type 'quit' to exit{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        for name, description in self.SCENARIOS.items():
            print(f"  {BOLD}{name:<10}{RESET} {description}")

        while True:
            choice = input(f"\n{BLUE}Scenario> {RESET}").strip().lower()
            if not choice:
                continue
            if choice in ("quit", "exit", "q"):
                print(f"\n{DIM}Session ended.{RESET}")
                return
            ConsoleSession().run_scenario(choice)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Offline console demo")
    parser.add_argument(
        "--scenario",
        choices=sorted(ConsoleSession.SCENARIOS),
        default=None,
        help="Auto-play a pre-scripted scenario instead of interactive mode",
    )
    args = parser.parse_args(argv)

    session = ConsoleSession()
    if args.scenario:
        session.run_scenario(args.scenario)
    else:
        session.run()


if __name__ == "__main__":
    main()
