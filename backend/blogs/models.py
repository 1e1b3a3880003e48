from django.db import models
from django.conf import settings


class Blog(models.Model):
    """Rescue story / update posted by a user"""

    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='blogs'
    )
    title = models.CharField(max_length=200)
    content = models.TextField()
    tags = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'blogs'
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.title} by {self.author}"


class BlogMedia(models.Model):
    KIND_CHOICES = [
        ('photo', 'Photo'),
        ('video', 'Video'),
    ]

    blog = models.ForeignKey(Blog, on_delete=models.CASCADE, related_name='media')
    file = models.FileField(upload_to='blogs/')
    kind = models.CharField(max_length=10, choices=KIND_CHOICES)

    class Meta:
        db_table = 'blog_media'
        ordering = ['id']
