from django.contrib import admin

from .models import Blog, BlogMedia


class BlogMediaInline(admin.TabularInline):
    model = BlogMedia
    extra = 0


@admin.register(Blog)
class BlogAdmin(admin.ModelAdmin):
    list_display = ['id', 'title', 'author', 'created_at']
    search_fields = ['title', 'content', 'author__username']
    inlines = [BlogMediaInline]
