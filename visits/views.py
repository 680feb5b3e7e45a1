# visits/views.py
from rest_framework import generics, permissions

from .models import Visit
from .serializers import VisitSerializer
from .services import create_visit


class VisitListCreateAPIView(generics.ListCreateAPIView):
    serializer_class = VisitSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        """
        Visits of the clinician's own patients.
        Optional filter: ?patient=<patient_id>
        """
        qs = (
            Visit.objects.select_related("patient")
            .filter(patient__created_by=self.request.user)
            .order_by("-visit_date", "-created_at")
        )

        patient_id = self.request.query_params.get("patient")
        if patient_id and patient_id.isdigit():
            qs = qs.filter(patient_id=patient_id)
        elif patient_id:
            qs = qs.none()

        return qs

    def perform_create(self, serializer):
        """
        Recording a visit restarts the patient's follow-up cycle, so the
        insert goes through ``create_visit`` instead of ``serializer.save``.
        """
        data = serializer.validated_data
        serializer.instance = create_visit(
            patient=data["patient"],
            created_by=self.request.user,
            visit_date=data.get("visit_date"),
            next_visit_date=data.get("next_visit_date"),
            diagnosis=data.get("diagnosis", ""),
            notes=data.get("notes", ""),
            visit_type=data.get("visit_type", "CONSULTATION"),
        )


class VisitDetailAPIView(generics.RetrieveAPIView):
    serializer_class = VisitSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        return Visit.objects.select_related("patient").filter(
            patient__created_by=self.request.user,
        )
