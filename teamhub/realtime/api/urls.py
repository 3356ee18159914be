from django.urls import path

from .views import OnlineUsersView
from .views import ProjectPresenceView
from .views import UserPresenceView

urlpatterns = [
    path("", OnlineUsersView.as_view(), name="presence-online"),
    path("users/<int:user_id>/", UserPresenceView.as_view(), name="presence-user"),
    path(
        "projects/<int:project_id>/",
        ProjectPresenceView.as_view(),
        name="presence-project",
    ),
]
