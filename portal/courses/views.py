from rest_framework import generics, status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from ..exceptions import NotFound
from ..payments.models import Payment
from ..permissions import HasCapability, user_can
from .models import Course, CourseEnrollment
from .serializers import CourseEnrollmentSerializer, CourseSerializer, ProgressSerializer
from .services import CourseService


class CourseListCreateView(APIView):
    def get_permissions(self):
        if self.request.method == "POST":
            return [HasCapability("manage_courses", "create_course")()]
        return super().get_permissions()

    def get(self, request: Request) -> Response:
        courses = Course.objects.all()
        if not user_can(request.user, "manage_courses", "create_course", "edit_course"):
            courses = courses.filter(is_published=True)
        return Response(CourseSerializer(courses, many=True).data)

    def post(self, request: Request) -> Response:
        serializer = CourseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        course = CourseService().create_course(serializer.validated_data, request.user)
        return Response(CourseSerializer(course).data, status=status.HTTP_201_CREATED)


class CoursePublishView(APIView):
    permission_classes = [HasCapability("manage_courses", "edit_course")]

    def post(self, request: Request, course_id: int) -> Response:
        course = CourseService().publish_course(course_id)
        return Response(CourseSerializer(course).data)


class EnrollView(APIView):
    """
    Enroll the signed-in user. Paid courses need ``payment_id`` of a
    completed payment for the course.
    """

    def post(self, request: Request, course_id: int) -> Response:
        service = CourseService()
        course = service.get_course(course_id)
        payment = None
        payment_id = request.data.get("payment_id")
        if payment_id:
            payment = Payment.objects.filter(pk=payment_id, user=request.user).first()
            if payment is None:
                raise NotFound("Payment not found", details={"payment_id": payment_id})
        enrollment = service.enroll(request.user, course, payment=payment)
        return Response(CourseEnrollmentSerializer(enrollment).data, status=status.HTTP_201_CREATED)


class MyEnrollmentsView(generics.ListAPIView):
    serializer_class = CourseEnrollmentSerializer

    def get_queryset(self):
        return CourseEnrollment.objects.filter(user=self.request.user).select_related("course")


class EnrollmentProgressView(APIView):
    def _get_enrollment(self, request: Request, enrollment_id: int) -> CourseEnrollment:
        try:
            return CourseEnrollment.objects.select_related("course").get(pk=enrollment_id, user=request.user)
        except CourseEnrollment.DoesNotExist:
            raise NotFound("Enrollment not found", details={"enrollment_id": enrollment_id})

    def post(self, request: Request, enrollment_id: int) -> Response:
        enrollment = self._get_enrollment(request, enrollment_id)
        serializer = ProgressSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        enrollment = CourseService().update_progress(enrollment, serializer.validated_data["progress"])
        return Response(CourseEnrollmentSerializer(enrollment).data)

    def delete(self, request: Request, enrollment_id: int) -> Response:
        CourseService().drop(self._get_enrollment(request, enrollment_id))
        return Response(status=status.HTTP_204_NO_CONTENT)
