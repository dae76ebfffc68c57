#!/usr/bin/env python
import logging
import signal
import sys

from settings import Settings, SettingsError
from web.app import create_app

logger = logging.getLogger("tetherbox")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    for noisy in ("werkzeug", "socketio", "engineio"):
        logging.getLogger(noisy).setLevel(logging.ERROR)


def main() -> int:
    try:
        settings = Settings.from_env()
    except SettingsError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    configure_logging(settings.log_level)
    app = create_app(settings)

    def shutdown(signum, _frame):
        logger.info("%s received; shutting down", signal.Signals(signum).name)
        app.runner.stop()
        app.sink.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    logger.info("Server started: http://localhost:%d", settings.port)
    app.socketio.run(
        app,
        host="0.0.0.0",
        port=settings.port,
        allow_unsafe_werkzeug=True,
        use_reloader=False,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
