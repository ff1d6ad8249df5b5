import io
import logging
import re

from django.contrib.auth import get_user_model
from django.db.models import Avg, Q
from django.http import HttpResponse
from django.template.loader import render_to_string
from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, mixins, permissions, status, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.response import Response
from xhtml2pdf import pisa

from . import services
from .exceptions import DomainError
from .models import (
    ApprovalStatus, Certificate, Event, EventCategory, EventTag, Feedback,
    Profile, Registration, user_role,
)
from .permissions import IsAdminRole, IsApprovedOrganizer, IsEventOwnerOrAdmin
from .serializers import (
    CertificateSerializer, EventCategorySerializer, EventSerializer,
    EventTagSerializer, FeedbackSerializer, IssueCertificateSerializer,
    QRScanSerializer, RegistrationSerializer, SignupSerializer, UserSerializer,
)

User = get_user_model()
logger = logging.getLogger(__name__)


def domain_error_response(exc):
    logger.warning("Rejected: %s (%s)", exc, exc.code)
    return Response({"error": str(exc), "code": exc.code}, status=exc.status_code)


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def current_user(request):
    """
    Returns the currently logged-in user's details and role.
    """
    return Response({
        **UserSerializer(request.user).data,
        "role": user_role(request.user),
    })


@api_view(['POST'])
@permission_classes([permissions.AllowAny])
def signup(request):
    serializer = SignupSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = serializer.save()
    logger.info("New %s account %s", user.profile.role, user.username)
    return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def dashboard(request):
    """
    Role-specific summary numbers for the landing page of each dashboard.
    """
    user = request.user
    role = user_role(user)
    now = timezone.now()

    if role == Profile.Role.ADMIN:
        profiles = Profile.objects.all()
        return Response({
            "role": role,
            "approved_events": Event.objects.approved().count(),
            "pending_events": Event.objects.pending().count(),
            "students": profiles.filter(role=Profile.Role.STUDENT).count(),
            "organizers": profiles.filter(role=Profile.Role.ORGANIZER, approval_status=ApprovalStatus.APPROVED).count(),
            "pending_organizers": profiles.filter(role=Profile.Role.ORGANIZER, approval_status=ApprovalStatus.PENDING).count(),
            "feedback": Feedback.objects.count(),
            "upcoming_events": EventSerializer(
                Event.objects.approved().filter(start_time__gt=now).prefetch_related('registrations', 'tags')[:5], many=True,
            ).data,
        })

    if role == Profile.Role.ORGANIZER:
        events = Event.objects.by_organizer(user)
        return Response({
            "role": role,
            "total_events": events.count(),
            "approved_events": events.approved().count(),
            "pending_events": events.pending().count(),
            "upcoming_events": events.filter(start_time__gt=now).count(),
            "total_registrations": Registration.objects.filter(
                event__organizer=user, status__in=[Registration.Status.REGISTERED, Registration.Status.ATTENDED],
            ).count(),
            "average_rating": Feedback.objects.filter(event__organizer=user).aggregate(Avg('rating'))['rating__avg'] or 0,
        })

    registrations = Registration.objects.filter(user=user)
    return Response({
        "role": role,
        "upcoming_registrations": registrations.filter(
            status=Registration.Status.REGISTERED, event__start_time__gt=now,
        ).count(),
        "attended_events": registrations.filter(status=Registration.Status.ATTENDED).count(),
        "certificates": Certificate.objects.filter(student=user).count(),
        "feedback_given": Feedback.objects.filter(user=user).count(),
    })


class UserViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = User.objects.select_related('profile').order_by('username')
    serializer_class = UserSerializer
    permission_classes = [IsAdminRole]
    filter_backends = [filters.SearchFilter]
    search_fields = ['username', 'email', 'first_name', 'last_name']

    @action(detail=False, methods=['get'])
    def pending_organizers(self, request):
        users = self.get_queryset().filter(
            profile__role=Profile.Role.ORGANIZER, profile__approval_status=ApprovalStatus.PENDING,
        )
        return Response(UserSerializer(users, many=True).data)

    @action(detail=True, methods=['post'])
    def approve_organizer(self, request, pk=None):
        return self._review(request, approve=True)

    @action(detail=True, methods=['post'])
    def reject_organizer(self, request, pk=None):
        return self._review(request, approve=False)

    def _review(self, request, approve):
        user = self.get_object()
        if user.profile.role != Profile.Role.ORGANIZER:
            return Response({"error": "User is not an organizer"}, status=400)
        try:
            services.review_organizer(user.profile, request.user, approve)
        except DomainError as exc:
            return domain_error_response(exc)
        return Response(UserSerializer(user).data)


class EventCategoryViewSet(viewsets.ModelViewSet):
    queryset = EventCategory.objects.all()
    serializer_class = EventCategorySerializer

    def get_permissions(self):
        if self.action in ['list', 'retrieve']:
            return [permissions.AllowAny()]
        return [IsAdminRole()]


class EventTagViewSet(viewsets.ModelViewSet):
    queryset = EventTag.objects.all()
    serializer_class = EventTagSerializer

    def get_permissions(self):
        if self.action in ['list', 'retrieve']:
            return [permissions.AllowAny()]
        return [IsAdminRole()]


class EventViewSet(viewsets.ModelViewSet):
    serializer_class = EventSerializer
    permission_classes = [permissions.IsAuthenticatedOrReadOnly, IsEventOwnerOrAdmin]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['category', 'approval_status', 'tags']
    search_fields = ['title', 'description', 'location']
    ordering_fields = ['start_time', 'created_at', 'title']

    def get_queryset(self):
        queryset = (Event.objects.visible_to(self.request.user)
                    .select_related('category', 'organizer')
                    .prefetch_related('tags', 'registrations'))

        if self.request.query_params.get('upcoming') in ('1', 'true'):
            queryset = queryset.filter(start_time__gt=timezone.now())
        return queryset

    def get_permissions(self):
        if self.action == 'create':
            return [permissions.IsAuthenticated(), IsApprovedOrganizer()]
        return super().get_permissions()

    def perform_create(self, serializer):
        data = dict(serializer.validated_data)
        tags = data.pop('tags', [])
        serializer.instance = services.create_event(self.request.user, tags=tags, **data)

    def perform_update(self, serializer):
        data = dict(serializer.validated_data)
        tags = data.pop('tags', None)
        serializer.instance = services.update_event(serializer.instance, self.request.user, tags=tags, **data)

    def perform_destroy(self, instance):
        logger.info("Event %s deleted by %s", instance.pk, self.request.user)
        instance.delete()

    @action(detail=False, methods=['get'], permission_classes=[permissions.IsAuthenticated])
    def mine(self, request):
        """
        Returns events managed by the current organizer.
        """
        events = self.get_queryset().filter(organizer=request.user)
        return Response(EventSerializer(events, many=True).data)

    @action(detail=False, methods=['get'], permission_classes=[IsAdminRole])
    def pending(self, request):
        events = self.get_queryset().filter(approval_status=ApprovalStatus.PENDING)
        return Response(EventSerializer(events, many=True).data)

    @action(detail=True, methods=['post'], permission_classes=[IsAdminRole])
    def approve(self, request, pk=None):
        return self._review(approve=True)

    @action(detail=True, methods=['post'], permission_classes=[IsAdminRole])
    def reject(self, request, pk=None):
        return self._review(approve=False)

    def _review(self, approve):
        event = self.get_object()
        try:
            event = services.review_event(event.pk, self.request.user, approve)
        except DomainError as exc:
            return domain_error_response(exc)
        return Response(EventSerializer(event).data)

    @action(detail=True, methods=['get'], permission_classes=[permissions.AllowAny])
    def capacity(self, request, pk=None):
        snapshot = self.get_object().capacity_snapshot()
        return Response({
            "capacity": snapshot.capacity,
            "registered_count": snapshot.registered_count,
            "available": snapshot.available,
            "is_full": snapshot.is_full,
        })

    @action(detail=True, methods=['post'], permission_classes=[permissions.IsAuthenticated])
    def register(self, request, pk=None):
        event = self.get_object()
        try:
            registration = services.register(event.pk, request.user)
        except DomainError as exc:
            return domain_error_response(exc)
        return Response(RegistrationSerializer(registration).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], permission_classes=[permissions.IsAuthenticated])
    def cancel(self, request, pk=None):
        event = self.get_object()
        try:
            registration = services.cancel_registration(event.pk, request.user)
        except DomainError as exc:
            return domain_error_response(exc)
        return Response(RegistrationSerializer(registration).data)

    @action(detail=True, methods=['get'], permission_classes=[permissions.IsAuthenticated])
    def attendees(self, request, pk=None):
        """
        Registration list for the event organizer.
        """
        event = self.get_object()
        if not services.can_manage_event(request.user, event):
            return Response({"error": "Unauthorized"}, status=403)

        registrations = event.registrations.select_related('user').order_by('registration_date')
        return Response({
            "event": event.title,
            "capacity": event.capacity,
            "registered_count": event.capacity_snapshot().registered_count,
            "registrations": RegistrationSerializer(registrations, many=True).data,
        })

    @action(detail=True, methods=['get', 'post'], permission_classes=[permissions.IsAuthenticatedOrReadOnly])
    def feedback(self, request, pk=None):
        event = self.get_object()
        if request.method == 'GET':
            items = event.feedback.select_related('user')
            return Response({
                "average_rating": items.aggregate(Avg('rating'))['rating__avg'] or 0,
                "feedback": FeedbackSerializer(items, many=True).data,
            })

        serializer = FeedbackSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            feedback = services.submit_feedback(
                event.pk, request.user,
                serializer.validated_data['rating'], serializer.validated_data.get('comment', ''),
            )
        except DomainError as exc:
            return domain_error_response(exc)
        return Response(FeedbackSerializer(feedback).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], permission_classes=[permissions.IsAuthenticated])
    def issue_certificate(self, request, pk=None):
        event = self.get_object()
        serializer = IssueCertificateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            certificate = services.issue_certificate(event.pk, serializer.validated_data['student'], request.user)
        except DomainError as exc:
            return domain_error_response(exc)
        return Response(CertificateSerializer(certificate).data, status=status.HTTP_201_CREATED)


class RegistrationViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = RegistrationSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ['event', 'status']

    def get_queryset(self):
        user = self.request.user
        queryset = Registration.objects.select_related('event', 'user')
        if user_role(user) == Profile.Role.ADMIN:
            return queryset
        return queryset.filter(Q(user=user) | Q(event__organizer=user))

    @action(detail=False, methods=['get'])
    def me(self, request):
        registrations = self.get_queryset().filter(user=request.user)
        return Response(RegistrationSerializer(registrations, many=True).data)

    @action(detail=True, methods=['patch', 'post'])
    def mark_attended(self, request, pk=None):
        registration = self.get_object()
        try:
            registration = services.mark_attended(registration.pk, request.user)
        except DomainError as exc:
            return domain_error_response(exc)
        return Response({"status": "Attendance marked", "registration": RegistrationSerializer(registration).data})

    @action(detail=False, methods=['post'])
    def scan_qr(self, request):
        """
        Parses ticket QR data and marks attendance.
        Format expected: "ID:123|Event:4|User:5"
        """
        serializer = QRScanSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        match = re.search(r'ID:(\d+)', serializer.validated_data['qr_data'])
        if not match:
            return Response({"error": "Invalid QR Format"}, status=400)

        try:
            registration = services.mark_attended(int(match.group(1)), request.user)
        except Registration.DoesNotExist:
            return Response({"error": "Registration not found"}, status=404)
        except DomainError as exc:
            return domain_error_response(exc)
        return Response({
            "status": "success",
            "message": f"Marked present: {registration.user.username}",
            "registration": RegistrationSerializer(registration).data,
        })


class FeedbackViewSet(mixins.ListModelMixin,
                      mixins.RetrieveModelMixin,
                      mixins.DestroyModelMixin,
                      viewsets.GenericViewSet):
    queryset = Feedback.objects.select_related('event', 'user').order_by('-created_at')
    serializer_class = FeedbackSerializer
    permission_classes = [IsAdminRole]
    filterset_fields = ['event', 'rating']

    def perform_destroy(self, instance):
        logger.info("Feedback %s removed by %s", instance.pk, self.request.user)
        instance.delete()


class CertificateViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = CertificateSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ['event', 'student']

    def get_queryset(self):
        user = self.request.user
        queryset = Certificate.objects.select_related('event', 'student', 'issued_by')
        if user_role(user) == Profile.Role.ADMIN:
            return queryset
        return queryset.filter(Q(student=user) | Q(event__organizer=user))

    @action(detail=True, methods=['get'])
    def download(self, request, pk=None):
        """
        Renders the certificate as a PDF.
        """
        certificate = self.get_object()
        context = {
            'student_name': certificate.student.get_full_name() or certificate.student.username,
            'event_title': certificate.event.title,
            'event_date': certificate.event.start_time,
            'issued_at': certificate.issued_at,
            'issued_by': certificate.issued_by.get_full_name() if certificate.issued_by else '',
        }
        html = render_to_string('certificates/certificate.html', context)
        result = io.BytesIO()
        pdf = pisa.pisaDocument(io.BytesIO(html.encode("UTF-8")), result)
        if pdf.err:
            logger.error("PDF rendering failed for certificate %s", certificate.pk)
            return Response({"error": "Could not render certificate"}, status=500)

        response = HttpResponse(result.getvalue(), content_type='application/pdf')
        response['Content-Disposition'] = f'attachment; filename="certificate_{certificate.pk}.pdf"'
        return response

