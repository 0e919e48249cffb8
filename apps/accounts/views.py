from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from .serializers import UserProfileSerializer


class MeView(APIView):
    """
    Who the bearer token resolves to; clients use it to pick their view
    (kitchen, cashier, manager, customer).
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(UserProfileSerializer(request.user).data)
