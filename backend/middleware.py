import logging

from django.http import JsonResponse

logger = logging.getLogger(__name__)


class JsonExceptionMiddleware:
    """
    Turns unhandled exceptions raised by API views into JSON 500 responses
    instead of Django's HTML error page. Non-API paths keep the default
    behaviour.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        if not request.path.startswith('/api/'):
            return None

        logger.error(
            f"Unhandled error on {request.method} {request.path}: {exception}",
            exc_info=True
        )
        return JsonResponse({
            "error": "Internal server error",
            "details": str(exception),
            "path": request.path,
        }, status=500)
