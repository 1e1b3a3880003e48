from django.db import models
from django.conf import settings


class Report(models.Model):
    """An animal rescue case reported by a user"""

    STATUS_OPEN = 'open'
    STATUS_CLAIMED = 'claimed'
    STATUS_ARRIVED = 'arrived'
    STATUS_RESOLVED = 'resolved'
    STATUS_CLOSED = 'closed'

    STATUS_CHOICES = [
        (STATUS_OPEN, 'Open'),
        (STATUS_CLAIMED, 'Claimed'),
        (STATUS_ARRIVED, 'Volunteer Arrived'),
        (STATUS_RESOLVED, 'Resolved'),
        (STATUS_CLOSED, 'Closed'),
    ]

    SEVERITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
    ]

    reporter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='reports'
    )

    title = models.CharField(max_length=200, blank=True, default='')
    description = models.TextField(blank=True, default='')

    # Location
    latitude = models.DecimalField(max_digits=9, decimal_places=6)
    longitude = models.DecimalField(max_digits=9, decimal_places=6)
    location_text = models.TextField(null=True, blank=True)

    severity = models.CharField(max_length=10, choices=SEVERITY_CHOICES, null=True, blank=True)
    category = models.CharField(max_length=50, null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_OPEN)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'reports'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['latitude', 'longitude'], name='reports_lat_lng_idx'),
            models.Index(fields=['status'], name='reports_status_idx'),
        ]

    def __str__(self):
        return f"Report #{self.id} - {self.title or 'untitled'} - {self.status}"


class ReportPhoto(models.Model):
    """Photo attached to a report"""

    report = models.ForeignKey(Report, on_delete=models.CASCADE, related_name='photos')
    file = models.FileField(upload_to='reports/')
    uploaded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'report_photos'
        ordering = ['id']

    def __str__(self):
        return f"Photo #{self.id} for report {self.report_id}"


class Response(models.Model):
    """A volunteer's offer of help on a report"""

    STATUS_OFFERED = 'offered'
    STATUS_ACCEPTED = 'accepted'
    STATUS_DECLINED = 'declined'

    STATUS_CHOICES = [
        (STATUS_OFFERED, 'Offered'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_DECLINED, 'Declined'),
        ('arrived', 'Arrived'),
        ('resolved', 'Resolved'),
        ('closed', 'Closed'),
    ]

    report = models.ForeignKey(Report, on_delete=models.CASCADE, related_name='responses')
    volunteer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='responses'
    )
    message = models.TextField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_OFFERED)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'responses'
        ordering = ['created_at']

    def __str__(self):
        return f"Response #{self.id} - Report {self.report_id} <- {self.volunteer} ({self.status})"
