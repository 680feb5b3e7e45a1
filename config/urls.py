from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView


def health_check(request):
    """
    Health check endpoint for Render and monitoring.
    Returns 200 OK if the service is running.
    """
    return JsonResponse({"status": "ok", "service": "followup-backend"})


urlpatterns = [
    # Health check (no auth required)
    path("health/", health_check, name="health_check"),
    path("api/health/", health_check, name="api_health_check"),

    # Admin
    path("admin/", admin.site.urls),

    # Auth (JWT issued by SimpleJWT)
    path("api/auth/login/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("api/auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),

    # API routes
    path("api/patients/", include("patients.urls")),
    path("api/visits/", include("visits.urls")),
    path("api/reminders/", include("reminders.urls")),
]
