"""
ASGI config for the emrportal project.

Expansion and persistence are synchronous; the ASGI entrypoint simply
serves the Django HTTP application.
"""
import os

from django.core.asgi import get_asgi_application  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "emrportal.settings")

application = get_asgi_application()
