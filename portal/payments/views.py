"""
Exam Portal Payment Views

Endpoints:

1. MyPaymentsView
   - GET lists the signed-in user's payments
   - POST records a pending payment for a course or an exam
2. PaymentAdminListView
   - GET lists all payments, filterable by status (manage_payments)
3. CompletePaymentView / FailPaymentView
   - Gateway outcome for a pending payment (manage_payments)
4. RefundPaymentView
   - Refund a completed payment with a reason (manage_payments)
5. PaymentStatisticsView
   - Completed totals per target type and currency in a date range

Author: Exam Portal Development Team
Version: 1.0.0
"""

from django.utils.dateparse import parse_datetime
from rest_framework import generics, status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from ..catalog.services import ExamCatalog
from ..common.request import get_client_ip, get_user_agent
from ..courses.services import CourseService
from ..exceptions import ValidationError
from ..permissions import HasCapability
from .models import Payment
from .serializers import (
    CompletePaymentSerializer,
    FailPaymentSerializer,
    PaymentSerializer,
    RecordPaymentSerializer,
    RefundSerializer,
)
from .services import PaymentLedger


class MyPaymentsView(APIView):
    def get(self, request: Request) -> Response:
        payments = Payment.objects.filter(user=request.user)
        return Response(PaymentSerializer(payments, many=True).data)

    def post(self, request: Request) -> Response:
        serializer = RecordPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        if data["payment_for"] == Payment.PaymentFor.COURSE:
            item = CourseService().get_course(data["item_id"])
        else:
            item = ExamCatalog().get_exam(data["item_id"])
        payment = PaymentLedger().record_payment(
            request.user,
            data["amount"],
            data["currency"],
            data["payment_for"],
            item,
            data["payment_method"],
            metadata=data["metadata"],
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
        )
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


class PaymentAdminListView(generics.ListAPIView):
    serializer_class = PaymentSerializer
    permission_classes = [HasCapability("manage_payments")]

    def get_queryset(self):
        queryset = Payment.objects.select_related("user")
        status_filter = self.request.query_params.get("status")
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return queryset


class CompletePaymentView(APIView):
    permission_classes = [HasCapability("manage_payments")]

    def post(self, request: Request, payment_id: int) -> Response:
        serializer = CompletePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = PaymentLedger().mark_completed(
            payment_id,
            transaction_id=serializer.validated_data.get("transaction_id") or None,
            gateway_response=serializer.validated_data["gateway_response"],
        )
        return Response(PaymentSerializer(payment).data)


class FailPaymentView(APIView):
    permission_classes = [HasCapability("manage_payments")]

    def post(self, request: Request, payment_id: int) -> Response:
        serializer = FailPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = PaymentLedger().mark_failed(payment_id, **serializer.validated_data)
        return Response(PaymentSerializer(payment).data)


class RefundPaymentView(APIView):
    permission_classes = [HasCapability("manage_payments")]

    def post(self, request: Request, payment_id: int) -> Response:
        serializer = RefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment = PaymentLedger().refund(
            payment_id, serializer.validated_data["reason"], serializer.validated_data.get("amount")
        )
        return Response(PaymentSerializer(payment).data)


class PaymentStatisticsView(APIView):
    permission_classes = [HasCapability("manage_payments", "view_reports")]

    def get(self, request: Request) -> Response:
        bounds = {}
        for key in ("start", "end"):
            raw = request.query_params.get(key)
            if raw:
                value = parse_datetime(raw)
                if value is None:
                    raise ValidationError(f"'{raw}' is not a valid datetime", details={"field": key})
                bounds[key] = value
        return Response(PaymentLedger().statistics(**bounds))
