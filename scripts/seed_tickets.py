"""Create demo tickets through the normal intake flow (no QR uploads)."""

import argparse
import random

from repairdesk.config import Settings
from repairdesk.context import build_context
from repairdesk.deps import init_db
from repairdesk.models import CustomerFields, TicketStatus, TicketType
from repairdesk.services import tickets as ticket_service

FIRST_NAMES = ["Jayr", "Ronald", "Anna", "Mark", "Jessa", "Kevin", "Maria", "John", "Paolo", "Ella"]
MIDDLE_NAMES = ["P.", "L.", "D.", "M.", "R.", "S.", "C.", "B.", "A.", "E."]
LAST_NAMES = ["Pelobello", "Cruz", "Garcia", "Reyes", "Santos", "Fernandez", "Mendoza", "Lopez", "Dela Cruz", "Lim"]
CONTACT_NUMBERS = [
    "09171234567", "09987654321", "09180001111", "09095554444",
    "09332221111", "09123456789", "09778889999", "09556667777",
]
UNITS = [
    "iPhone 13 Pro LCD", "Samsung A50 Screen", "Oppo F9 Touch", "Vivo V21 LCD",
    "Realme C25 Screen", "Xiaomi Redmi Note 9 Display", "LG LCD Monitor",
    "Asus Laptop Screen", "Dell Inspiron LCD", "Lenovo Yoga Touchscreen",
]
PROBLEMS = [
    "No display", "Touch not working", "Screen flickering", "Lines on screen",
    "Blackout issue", "Ghost touch", "Cracked LCD", "No backlight", "Color distortion",
    "Random shutdown",
]


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("-n", "--count", type=int, default=20)
    args = parser.parse_args()

    ctx = build_context(Settings.from_env())
    init_db(ctx)
    created = 0
    try:
        with ctx.session_factory() as db:
            for _ in range(args.count):
                result = ticket_service.open_ticket(
                    db,
                    contact_number=random.choice(CONTACT_NUMBERS),
                    customer_fields=CustomerFields(
                        first_name=random.choice(FIRST_NAMES),
                        middle_name=random.choice(MIDDLE_NAMES),
                        last_name=random.choice(LAST_NAMES),
                    ),
                    ticket_type=random.choice([t.value for t in TicketType]),
                    unit=random.choice(UNITS),
                    problem=random.choice(PROBLEMS),
                    images=[],
                    numbers=ctx.numbers,
                )
                number = result.ticket.ticket_number
                status = random.choice([TicketStatus.pending, TicketStatus.ongoing, TicketStatus.completed])
                if status is not TicketStatus.pending:
                    ticket_service.update_status(db, number, status.value, "seed")
                print(f"[add] {number} {result.ticket.unit} ({status.value})")
                created += 1
    finally:
        ctx.close()
    print(f"Inserted {created} tickets")


if __name__ == "__main__":
    main()
