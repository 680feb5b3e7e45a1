from django.urls import path
from .views import VisitListCreateAPIView, VisitDetailAPIView

urlpatterns = [
    path("", VisitListCreateAPIView.as_view(), name="visit-list-create"),
    path("<int:pk>/", VisitDetailAPIView.as_view(), name="visit-detail"),
]
