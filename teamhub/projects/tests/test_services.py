from unittest import mock

import pytest

from teamhub.projects import services
from teamhub.projects.models import Project
from teamhub.projects.models import ProjectMember
from teamhub.realtime.events.projects import publish_to_project


@pytest.mark.parametrize(
    ("room_id", "expected"),
    [("12", 12), (" 7 ", 7), (5, 5), ("0", None), (-1, None), ("P1", None), (True, None), (None, None)],
)
def test_parse_project_id(room_id, expected):
    assert services.parse_project_id(room_id) == expected


@pytest.mark.django_db
def test_membership_queries(user, other_user):
    first = Project.objects.create(name="A", owner=user)
    second = Project.objects.create(name="B", owner=other_user)
    ProjectMember.objects.create(project=first, user=user, role=ProjectMember.Role.OWNER)
    ProjectMember.objects.create(project=second, user=user)

    assert services.memberships_for_user(user.pk) == [
        (first.pk, "owner"),
        (second.pk, "member"),
    ]
    assert services.memberships_for_user(other_user.pk) == []
    assert services.is_project_member(user.pk, second.pk)
    assert not services.is_project_member(other_user.pk, second.pk)


@pytest.mark.django_db
def test_membership_changes_are_published_to_the_room(
    user,
    other_user,
    django_capture_on_commit_callbacks,
):
    project = Project.objects.create(name="A", owner=user)
    with mock.patch("teamhub.projects.signals.publish_to_project") as publish:
        with django_capture_on_commit_callbacks(execute=True):
            member = ProjectMember.objects.create(project=project, user=other_user)
        publish.assert_called_once_with(
            project.pk,
            "project_member_added",
            {"userId": other_user.pk, "role": "member"},
        )

        publish.reset_mock()
        with django_capture_on_commit_callbacks(execute=True):
            member.delete()
        publish.assert_called_once_with(
            project.pk,
            "project_member_removed",
            {"userId": other_user.pk, "role": "member"},
        )


def test_publish_to_project_stamps_room_and_time():
    with mock.patch(
        "teamhub.realtime.events.projects.emit_event_to_room",
        return_value=3,
    ) as emit:
        assert publish_to_project(8, "project_member_added", {"userId": 1}) == 3
    room_id, event, message = emit.call_args.args
    assert room_id == 8
    assert event == "project_member_added"
    assert message["roomId"] == "8"
    assert message["userId"] == 1
    assert "emittedAt" in message
