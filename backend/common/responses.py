"""DRF response helpers shared by the API views."""

from rest_framework.response import Response

from common.exceptions import DispatchError


def error_response(exc: DispatchError) -> Response:
    """Translate a dispatch error into the JSON error body clients expect."""
    return Response(exc.to_dict(), status=exc.status_code)
