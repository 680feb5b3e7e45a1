from django.urls import path
from .views import ReminderListAPIView, ReminderDetailAPIView, send_reminder

urlpatterns = [
    path("", ReminderListAPIView.as_view(), name="reminder-list"),
    path("send/", send_reminder, name="reminder-send"),
    path("<int:pk>/", ReminderDetailAPIView.as_view(), name="reminder-detail"),
]
