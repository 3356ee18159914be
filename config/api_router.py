from django.conf import settings
from django.urls import include
from django.urls import path
from rest_framework.routers import DefaultRouter
from rest_framework.routers import SimpleRouter

from teamhub.notifications.api.views import NotificationViewSet

router = DefaultRouter() if settings.DEBUG else SimpleRouter()

router.register("notifications", NotificationViewSet, basename="notifications")


app_name = "api"
urlpatterns = [
    path("presence/", include("teamhub.realtime.api.urls")),
    *router.urls,
]
