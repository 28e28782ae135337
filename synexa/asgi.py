"""
ASGI config for synexa project.

It exposes the ASGI callable as a module-level variable named ``application``.

For more information on this file, see
https://docs.djangoproject.com/en/5.1/howto/deployment/asgi/
"""

import os

# Import synexa to ensure PyMySQL is loaded before Django initializes
import synexa  # noqa: F401

from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'synexa.settings_production')

application = get_asgi_application()
