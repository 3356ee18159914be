from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import CharField
from django.db.models import EmailField
from django.utils.translation import gettext_lazy as _


class User(AbstractUser):
    """
    Default custom user model for teamhub.

    ``display_name`` and ``avatar_url`` are what collaborators see next to
    presence and activity events.
    """

    class Role(models.TextChoices):
        ADMIN = "admin", _("Admin")
        MEMBER = "member", _("Member")

    # First and last name do not cover name patterns around the globe
    display_name = CharField(_("Display Name"), blank=True, max_length=255)
    email = EmailField(_("email address"), unique=True)
    avatar_url = models.URLField(_("Avatar URL"), max_length=500, blank=True, default="")
    role = CharField(max_length=20, choices=Role.choices, default=Role.MEMBER)
    # Audit timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def get_display_name(self) -> str:
        """Name shown to other users, falling back to the full name then username."""
        if self.display_name:
            return self.display_name
        full_name = f"{self.first_name} {self.last_name}".strip()
        return full_name or self.username
