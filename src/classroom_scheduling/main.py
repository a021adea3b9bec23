from __future__ import annotations

from classroom_scheduling.app import build_app
from classroom_scheduling.config.settings import refresh_settings_from_store


def main() -> None:
    settings = refresh_settings_from_store()
    app = build_app(settings)
    print(settings.describe())
    print(f"Database ready at {app.database.path}")


if __name__ == "__main__":
    main()
