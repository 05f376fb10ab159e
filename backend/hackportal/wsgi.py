"""
WSGI config for the hackportal project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'hackportal.settings')

application = get_wsgi_application()
