from django.contrib import admin

from teamhub.projects import models


class ProjectMemberInline(admin.TabularInline):
    model = models.ProjectMember
    extra = 0
    raw_id_fields = ["user"]


@admin.register(models.Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ["id", "name", "owner", "created_at"]
    search_fields = ["name", "description"]
    inlines = [ProjectMemberInline]


@admin.register(models.ProjectMember)
class ProjectMemberAdmin(admin.ModelAdmin):
    list_display = ["id", "project", "user", "role", "joined_at"]
    list_filter = ["role"]
