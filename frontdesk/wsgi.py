"""
WSGI config for the frontdesk project.

It exposes the WSGI callable as a module-level variable named ``application``.
Live queue streaming needs the ASGI entrypoint in :mod:`frontdesk.asgi`;
the WSGI app only serves the HTTP API.
"""
import os

from django.core.wsgi import get_wsgi_application  # type: ignore

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'frontdesk.settings')

application = get_wsgi_application()
