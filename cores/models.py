from datetime import timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone


def default_price_per_user():
    return getattr(settings, 'INVOICE_PRICE_PER_USER', 100)


class School(models.Model):
    """A tenant. Every user except the head admin belongs to exactly one school."""

    class Status(models.TextChoices):
        TRIAL = "trial", "Trial"
        ACTIVE = "active", "Active"
        SUSPENDED = "suspended", "Suspended"
        INACTIVE = "inactive", "Inactive"

    name = models.CharField(max_length=200)
    code = models.SlugField(max_length=50, unique=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    address = models.TextField(blank=True)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.TRIAL)
    trial_ends_at = models.DateTimeField(null=True, blank=True)

    # --- Subscription limits ---
    max_students = models.PositiveIntegerField(default=500)
    max_teachers = models.PositiveIntegerField(default=50)
    price_per_user = models.DecimalField(max_digits=10, decimal_places=2, default=default_price_per_user)

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name

    @property
    def is_active(self):
        return self.status in (self.Status.TRIAL, self.Status.ACTIVE)

    def extend_trial(self, days):
        base = self.trial_ends_at if self.trial_ends_at and self.trial_ends_at > timezone.now() else timezone.now()
        self.trial_ends_at = base + timedelta(days=days)
        self.status = self.Status.TRIAL
        self.save(update_fields=['trial_ends_at', 'status'])


class SchoolClass(models.Model):
    """A class or arm inside a school, e.g. JSS1A."""
    school = models.ForeignKey(School, on_delete=models.CASCADE, related_name='classes')
    name = models.CharField(max_length=50)

    class Meta:
        unique_together = ('school', 'name')
        ordering = ['name']

    def __str__(self):
        return self.name


class AuditLog(models.Model):
    ACTION_CHOICES = [
        ('CREATE', 'Create'),
        ('UPDATE', 'Update'),
        ('DELETE', 'Delete'),
        ('LOGIN', 'Login'),
        ('IMPORT', 'Bulk Import'),
        ('GRADE', 'Grade Submitted'),
        ('INVOICE', 'Invoice Changed'),
        ('SCHOOL', 'School Changed'),
    ]

    actor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    school = models.ForeignKey(School, on_delete=models.CASCADE, null=True, blank=True, related_name='audit_logs')
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    target_model = models.CharField(max_length=50, help_text="e.g., User, Invoice, OnlineTest")
    target_object_id = models.CharField(max_length=100, blank=True, null=True)
    details = models.TextField(blank=True, help_text="Description of changes")
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self):
        return f"{self.actor} - {self.action} - {self.timestamp}"

    @classmethod
    def record(cls, request, action, target, details=''):
        user = request.user if request.user.is_authenticated else None
        return cls.objects.create(
            actor=user,
            school=getattr(user, 'school', None),
            action=action,
            target_model=target.__class__.__name__,
            target_object_id=str(target.pk),
            details=details,
            ip_address=request.META.get('REMOTE_ADDR'),
        )


class Notification(models.Model):
    class Type(models.TextChoices):
        INFO = "info", "Info"
        SUCCESS = "success", "Success"
        WARNING = "warning", "Warning"
        ERROR = "error", "Error"
        SYSTEM = "system", "System"

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='notifications')
    school = models.ForeignKey(School, on_delete=models.CASCADE, null=True, blank=True)
    title = models.CharField(max_length=200)
    content = models.TextField()
    type = models.CharField(max_length=20, choices=Type.choices, default=Type.INFO)
    action_url = models.CharField(max_length=255, blank=True, null=True)
    action_text = models.CharField(max_length=50, blank=True, null=True)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.user} - {self.title}"

    @classmethod
    def send(cls, user, title, content, type=Type.INFO, action_url=None, action_text=None):
        return cls.objects.create(
            user=user,
            school=user.school,
            title=title,
            content=content,
            type=type,
            action_url=action_url,
            action_text=action_text,
        )
