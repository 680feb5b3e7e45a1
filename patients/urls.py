from django.urls import path
from .views import (
    PatientListCreateView,
    PatientDetailView,
    archive_patient,
    restore_patient,
    patient_follow_up,
    follow_up_dashboard,
)

urlpatterns = [
    path("", PatientListCreateView.as_view(), name="patient-list-create"),
    path("dashboard/", follow_up_dashboard, name="patient-dashboard"),
    path("<int:pk>/", PatientDetailView.as_view(), name="patient-detail"),
    path("<int:pk>/archive/", archive_patient, name="patient-archive"),
    path("<int:pk>/restore/", restore_patient, name="patient-restore"),
    path("<int:pk>/follow-up/", patient_follow_up, name="patient-follow-up"),
]
