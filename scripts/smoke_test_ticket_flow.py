import json

import requests

BASE = "http://127.0.0.1:8000"

ADMIN_USER = "admin"
ADMIN_PASS = "admin123"


def pretty(label, resp):
    print(f"\n=== {label} ===")
    print("STATUS:", resp.status_code)
    try:
        data = resp.json()
        print("JSON:", json.dumps(data, indent=2)[:400])
    except ValueError:
        print("RAW:", resp.text[:400])


def main():
    resp = requests.post(f"{BASE}/api/tech/login", json={"username": ADMIN_USER, "password": ADMIN_PASS})
    pretty("LOGIN", resp)
    resp.raise_for_status()
    headers = {"Authorization": f"Bearer {resp.json()['token']}"}

    resp = requests.post(
        f"{BASE}/api/tickets",
        data={
            "ticket_type": "Repair",
            "contact_number": "09171234567",
            "first_name": "Jayr",
            "middle_name": "P.",
            "last_name": "Pelobello",
            "unit": "Samsung A50 Screen",
            "problem": "Ghost touch",
        },
    )
    pretty("CREATE /api/tickets", resp)
    resp.raise_for_status()
    number = resp.json()["ticket"]["ticket_number"]

    pretty(
        "STATUS -> Ongoing",
        requests.put(f"{BASE}/api/tickets/{number}/status", json={"status": "Ongoing"}, headers=headers),
    )
    pretty(
        "LOG",
        requests.put(f"{BASE}/api/tickets/{number}/log", json={"log": "Screen ordered"}, headers=headers),
    )
    pretty("PUBLIC VIEW", requests.get(f"{BASE}/api/public/{number}"))
    pretty("DELETE", requests.delete(f"{BASE}/api/tickets/{number}", headers=headers))


if __name__ == "__main__":
    main()
