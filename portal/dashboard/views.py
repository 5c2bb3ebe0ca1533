from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from ..permissions import HasCapability
from .services import admin_dashboard, student_dashboard


class StudentDashboardView(APIView):
    def get(self, request: Request) -> Response:
        return Response(student_dashboard(request.user))


class AdminDashboardView(APIView):
    permission_classes = [HasCapability("view_reports", "manage_users")]

    def get(self, request: Request) -> Response:
        return Response(admin_dashboard())
