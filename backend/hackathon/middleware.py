from __future__ import annotations

from django.conf import settings
from django.http import HttpRequest, HttpResponse


class CorsMiddleware:
    """Answers preflight requests and echoes allowed origins on every response."""

    def __init__(self, get_response):
        self.get_response = get_response

    def _origin_allowed(self, origin: str) -> bool:
        if getattr(settings, 'CORS_ALLOW_ALL_ORIGINS', False):
            return True
        allowed = getattr(settings, 'CORS_ALLOWED_ORIGINS', [])
        return origin.rstrip('/') in {o.rstrip('/') for o in allowed}

    def __call__(self, request: HttpRequest) -> HttpResponse:
        if request.method == 'OPTIONS':
            response = HttpResponse(status=204)
        else:
            response = self.get_response(request)

        origin = request.headers.get('Origin')
        if origin and self._origin_allowed(origin):
            response['Access-Control-Allow-Origin'] = origin
            response['Vary'] = 'Origin'
            response['Access-Control-Allow-Methods'] = 'GET, POST, PUT, DELETE, OPTIONS'
            response['Access-Control-Allow-Headers'] = 'Authorization, Content-Type'
            response['Access-Control-Allow-Credentials'] = 'true'
            response['Access-Control-Max-Age'] = '86400'

        return response
