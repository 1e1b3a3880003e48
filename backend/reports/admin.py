"""Tells what to show in the Django admin interface for reports app"""

from django.contrib import admin
from .models import Report, ReportPhoto, Response


class ReportPhotoInline(admin.TabularInline):
    model = ReportPhoto
    extra = 0


class ResponseInline(admin.TabularInline):
    model = Response
    extra = 0
    readonly_fields = ['created_at']


@admin.register(Report)
class ReportAdmin(admin.ModelAdmin):
    """Report admin"""
    list_display = ['id', 'title', 'reporter', 'severity', 'status', 'created_at']
    list_filter = ['status', 'severity', 'created_at']
    search_fields = ['title', 'description', 'reporter__username', 'location_text']
    readonly_fields = ['created_at', 'updated_at']
    date_hierarchy = 'created_at'
    inlines = [ReportPhotoInline, ResponseInline]


@admin.register(Response)
class ResponseAdmin(admin.ModelAdmin):
    list_display = ("report", "volunteer", "status", "created_at")
    list_filter = ("status",)
    search_fields = ("report__id", "volunteer__username")
