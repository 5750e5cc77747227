"""
WSGI config for the haven project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'haven.settings')

application = get_wsgi_application()
