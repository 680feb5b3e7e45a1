# visits/serializers.py
from rest_framework import serializers

from patients.models import Patient
from .models import Visit


class VisitSerializer(serializers.ModelSerializer):
    patient_name = serializers.SerializerMethodField()
    created_by = serializers.PrimaryKeyRelatedField(read_only=True)

    def get_patient_name(self, obj):
        p = getattr(obj, "patient", None)
        if not p:
            return None
        return p.full_name or None

    def get_fields(self):
        fields = super().get_fields()
        request = self.context.get("request")
        # Visits can only be recorded for the clinician's own active patients
        if request is not None and "patient" in fields:
            fields["patient"].queryset = Patient.objects.filter(
                created_by=request.user,
                is_active=True,
            )
        return fields

    def validate(self, attrs):
        visit_date = attrs.get("visit_date")
        next_visit_date = attrs.get("next_visit_date")
        if visit_date and next_visit_date and next_visit_date < visit_date:
            raise serializers.ValidationError(
                {"next_visit_date": "Next visit cannot be before the visit date."}
            )
        return attrs

    class Meta:
        model = Visit
        fields = [
            "id",
            "patient",
            "patient_name",
            "created_by",
            "visit_date",
            "visit_type",
            "next_visit_date",
            "diagnosis",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_by", "created_at", "updated_at"]
