from rest_framework.permissions import AllowAny
from rest_framework.views import APIView

from marketchat.responses import envelope


class PingView(APIView):
    """Health check endpoint"""
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request):
        return envelope(message="Bang")
