# messaging/models.py
from django.conf import settings
from django.db import models


class Conversation(models.Model):
    """
    A thread between two or more users. Broadcasts are conversations the
    sender opens with every targeted user at once.
    """
    # Null when the head admin talks to several schools at once
    school = models.ForeignKey('cores.School', on_delete=models.CASCADE, null=True, blank=True,
                               related_name='conversations')
    participants = models.ManyToManyField(settings.AUTH_USER_MODEL, related_name='conversations')
    subject = models.CharField(max_length=200, blank=True)
    is_broadcast = models.BooleanField(default=False)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True,
                                   related_name='conversations_started')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-updated_at']

    def __str__(self):
        return self.subject or f"Conversation {self.pk}"


class Message(models.Model):
    class Priority(models.TextChoices):
        LOW = "low", "Low"
        NORMAL = "normal", "Normal"
        HIGH = "high", "High"
        URGENT = "urgent", "Urgent"

    conversation = models.ForeignKey(Conversation, on_delete=models.CASCADE, related_name='messages')
    sender = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True,
                               related_name='messages_sent')
    content = models.TextField()
    priority = models.CharField(max_length=10, choices=Priority.choices, default=Priority.NORMAL)
    read_by = models.ManyToManyField(settings.AUTH_USER_MODEL, blank=True, related_name='messages_read')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.sender} - {self.content[:30]}"
