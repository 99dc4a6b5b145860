"""WSGI config for vocabflow."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'vocabflow.settings')

application = get_wsgi_application()
