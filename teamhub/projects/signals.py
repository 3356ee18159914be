from django.db.models.signals import post_delete
from django.db.models.signals import post_save
from django.db.transaction import on_commit
from django.dispatch import receiver

from teamhub.realtime.events.projects import publish_to_project

from .models import ProjectMember

MEMBER_ADDED = "project_member_added"
MEMBER_REMOVED = "project_member_removed"


def _member_payload(member: ProjectMember) -> dict:
    return {"userId": member.user_id, "role": member.role}


@receiver(post_save, sender=ProjectMember)
def announce_member_added(sender, instance, created, **kwargs):
    if created:
        payload = _member_payload(instance)
        on_commit(lambda: publish_to_project(instance.project_id, MEMBER_ADDED, payload))


@receiver(post_delete, sender=ProjectMember)
def announce_member_removed(sender, instance, **kwargs):
    payload = _member_payload(instance)
    on_commit(lambda: publish_to_project(instance.project_id, MEMBER_REMOVED, payload))
