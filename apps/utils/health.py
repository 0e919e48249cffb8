import logging

from django.http import JsonResponse
from django.db import connection, DatabaseError

logger = logging.getLogger(__name__)


def health_check(request):
    status = {"db": "unknown"}
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        status["db"] = "ok"
        return JsonResponse({"status": "ok", "components": status}, status=200)
    except DatabaseError:
        logger.error("Health check failed: database unreachable", exc_info=True)
        status["db"] = "error"
        return JsonResponse(
            {"status": "error", "components": status},
            status=503
        )
