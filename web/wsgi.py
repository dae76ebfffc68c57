"""
WSGI entrypoint for gunicorn/systemd deployments.

Importing it loads settings, configures logging and creates the Flask app,
which starts the camera service loop. Signals are left to the WSGI server.
"""
from main import configure_logging
from settings import Settings
from web.app import create_app

settings = Settings.from_env()
configure_logging(settings.log_level)

app = create_app(settings)
