from rest_framework import status
from rest_framework.response import Response


def envelope(data=None, message="OK", status_code=status.HTTP_200_OK):
    """Success response in the ``{success, message, data}`` envelope."""
    return Response({"success": True, "message": message, "data": data}, status=status_code)
