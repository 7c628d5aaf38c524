import logging
import time

logger = logging.getLogger('accounts.requests')


class RequestLogMiddleware:
    """Log one line per API request: method, path, status, user and duration."""
    PREFIXES = ('/api/',)

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        started = time.monotonic()
        response = self.get_response(request)
        path = request.path or ''
        if any(path.startswith(p) for p in self.PREFIXES):
            user = getattr(request, 'user', None)
            elapsed = (time.monotonic() - started) * 1000
            level = logging.WARNING if response.status_code >= 400 else logging.INFO
            logger.log(level, '%s %s %s user=%s %.1fms', request.method, path, response.status_code,
                       getattr(user, 'pk', None), elapsed)
        return response
