import argparse

from repairdesk.config import Settings
from repairdesk.context import build_context
from repairdesk.db import Base
from repairdesk.services.maintenance import normalize_tickets, purge_orphan_tickets


def main() -> None:
    parser = argparse.ArgumentParser(description="Backfill legacy ticket rows.")
    parser.add_argument("--purge", action="store_true", help="also delete tickets whose customer is gone")
    args = parser.parse_args()

    ctx = build_context(Settings.from_env())
    try:
        Base.metadata.create_all(bind=ctx.engine)
        with ctx.session_factory() as db:
            for field, count in normalize_tickets(db).items():
                tag = "fix" if count else "ok"
                print(f"[{tag}] {field}: {count}")
            if args.purge:
                print(f"[purge] {purge_orphan_tickets(db)} orphan ticket(s) deleted")
    finally:
        ctx.close()


if __name__ == "__main__":
    main()
