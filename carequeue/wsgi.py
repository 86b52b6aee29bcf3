"""
WSGI config for the carequeue project.

It exposes the WSGI callable as a module-level variable named ``application``.
Websocket updates need the ASGI entrypoint in :mod:`carequeue.asgi`.
"""
import os

from django.core.wsgi import get_wsgi_application  # type: ignore

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'carequeue.settings')

application = get_wsgi_application()
