# patients/views.py
import logging

from django.shortcuts import get_object_or_404

from rest_framework import generics, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.filters import SearchFilter
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from config.clock import resolve_as_of
from config.exceptions import ValidationError
from .aggregate import ORDERINGS, build_patient_state, list_patient_states, summarize
from .followup import FollowUpConfig, FollowUpStatus
from .models import Patient
from .serializers import PatientFollowUpSerializer, PatientSerializer

logger = logging.getLogger(__name__)


def owned_patients(user):
    """Patients a clinician may see: the ones they registered."""
    return Patient.objects.filter(created_by=user)


class FollowUpContextMixin:
    """Adds the request's ``as_of`` moment and follow-up config to the serializer context."""

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context["as_of"] = resolve_as_of(self.request.query_params.get("as_of"))
        context["follow_up_config"] = FollowUpConfig.from_settings()
        return context


class PatientListCreateView(FollowUpContextMixin, generics.ListCreateAPIView):
    serializer_class = PatientSerializer
    permission_classes = [IsAuthenticated]

    filter_backends = [SearchFilter]
    search_fields = [
        "patient_code",
        "first_name",
        "last_name",
        "phone",
    ]

    def get_queryset(self):
        qs = owned_patients(self.request.user)

        # Default: active only; ?archived=true shows ONLY archived
        show_archived = self.request.query_params.get("archived", "false").lower() == "true"
        return qs.filter(is_active=not show_archived)

    def list(self, request, *args, **kwargs):
        """
        Statuses depend on "now", so filtering by status and ordering by due
        date happen on computed states rather than in SQL.

        ?status=overdue|due_soon|on_track|no_visit
        ?ordering=due_date|name|-created_at
        ?as_of=YYYY-MM-DD
        """
        status_filter = request.query_params.get("status") or None
        if status_filter and status_filter not in dict(FollowUpStatus.CHOICES):
            raise ValidationError(f"Unknown status '{status_filter}'.", field="status")

        ordering = request.query_params.get("ordering") or None
        if ordering and ordering not in ORDERINGS:
            raise ValidationError(
                f"Unknown ordering '{ordering}'. Use one of: {', '.join(ORDERINGS)}.",
                field="ordering",
            )

        context = self.get_serializer_context()
        items = list_patient_states(
            self.filter_queryset(self.get_queryset()),
            context["as_of"],
            context["follow_up_config"],
            status=status_filter,
            ordering=ordering,
        )

        page = self.paginate_queryset(items)
        rows = page if page is not None else items
        context["states"] = {patient.pk: state for patient, state in rows}
        serializer = PatientSerializer([patient for patient, _ in rows], many=True, context=context)

        if page is not None:
            return self.get_paginated_response(serializer.data)
        return Response(serializer.data)

    def perform_create(self, serializer):
        patient = serializer.save(created_by=self.request.user)
        logger.info("Patient %s registered by user #%s", patient.patient_code, self.request.user.pk)


class PatientDetailView(FollowUpContextMixin, generics.RetrieveUpdateDestroyAPIView):
    serializer_class = PatientSerializer
    permission_classes = [IsAuthenticated]
    http_method_names = ["get", "patch", "delete", "head", "options"]

    def get_queryset(self):
        return owned_patients(self.request.user)

    def perform_destroy(self, instance):
        # Soft delete: set is_active to False instead of deleting
        instance.is_active = False
        instance.save(update_fields=["is_active", "updated_at"])
        logger.info("Patient %s archived", instance.patient_code)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def archive_patient(request, pk):
    """Archive a patient (soft delete)."""
    patient = get_object_or_404(owned_patients(request.user), pk=pk)

    if not patient.is_active:
        return Response(
            {"detail": "Patient is already archived."},
            status=status.HTTP_400_BAD_REQUEST
        )

    patient.is_active = False
    patient.save(update_fields=["is_active", "updated_at"])
    logger.info("Patient %s archived", patient.patient_code)
    return Response({"detail": "Patient archived successfully."})


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def restore_patient(request, pk):
    """Restore an archived patient."""
    patient = get_object_or_404(owned_patients(request.user), pk=pk)

    if patient.is_active:
        return Response(
            {"detail": "Patient is not archived."},
            status=status.HTTP_400_BAD_REQUEST
        )

    patient.is_active = True
    patient.save(update_fields=["is_active", "updated_at"])
    logger.info("Patient %s restored", patient.patient_code)
    return Response({"detail": "Patient restored successfully."})


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def patient_follow_up(request, pk):
    """
    GET /api/patients/<id>/follow-up/?as_of=YYYY-MM-DD
    Follow-up status and reminder eligibility for one patient.
    """
    patient = get_object_or_404(owned_patients(request.user), pk=pk)
    as_of = resolve_as_of(request.query_params.get("as_of"))

    state = build_patient_state(patient, as_of, FollowUpConfig.from_settings())
    record = {
        **state,
        "patient_id": patient.pk,
        "patient_code": patient.patient_code,
        "full_name": patient.full_name,
        "phone": patient.phone,
        "as_of": as_of,
    }
    return Response(PatientFollowUpSerializer(record).data)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def follow_up_dashboard(request):
    """
    GET /api/patients/dashboard/?as_of=YYYY-MM-DD
    Follow-up counts over the clinician's active patients.
    """
    as_of = resolve_as_of(request.query_params.get("as_of"))
    items = list_patient_states(
        owned_patients(request.user).filter(is_active=True),
        as_of,
        FollowUpConfig.from_settings(),
    )

    summary = summarize(state for _, state in items)
    summary["as_of"] = as_of.isoformat()
    return Response(summary)
