"""
ASGI config for the clinic project.

Only HTTP is served; every request is a short request-scoped unit of work.
"""
import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "clinic.settings")

from django.core.asgi import get_asgi_application  # noqa: E402

application = get_asgi_application()
