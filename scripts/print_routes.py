from repairdesk.main import app


def main():
    prefixes = ("/api", "/uploads")
    for route in app.routes:
        path = getattr(route, "path", "")
        methods = getattr(route, "methods", None) or []
        if path == "/" or any(path.startswith(p) for p in prefixes):
            print(f"{sorted(methods)} {path}")


if __name__ == "__main__":
    main()
