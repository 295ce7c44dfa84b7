"""
Database models for the clinic notification backend.

Users carry a clinic role. A notification is stored once and fanned out
to its recipients through :class:`NotificationRecipient`, which holds the
per-user read state. Live delivery over the event stream is separate
from this record and never affects it.
"""
from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Custom user model with a clinic role.

    Roles mirror the front-end roles: 'admin', 'doctor', 'patient' and
    'receptionist'.
    """
    ROLE_ADMIN = 'admin'
    ROLE_DOCTOR = 'doctor'
    ROLE_PATIENT = 'patient'
    ROLE_RECEPTIONIST = 'receptionist'
    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Administrator'),
        (ROLE_DOCTOR, 'Doctor'),
        (ROLE_PATIENT, 'Patient'),
        (ROLE_RECEPTIONIST, 'Receptionist'),
    ]
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_PATIENT, db_index=True)

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Notification(models.Model):
    """A notification record addressed to one or more users."""
    TYPE_CHOICES = [
        ('appointment_created', 'Appointment created'),
        ('appointment_cancelled', 'Appointment cancelled'),
        ('appointment_rescheduled', 'Appointment rescheduled'),
        ('appointment_completed', 'Appointment completed'),
        ('system', 'System'),
        ('reminder', 'Reminder'),
    ]
    ENTITY_CHOICES = [
        ('appointment', 'Appointment'),
        ('user', 'User'),
        ('system', 'System'),
    ]
    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
        ('urgent', 'Urgent'),
    ]

    title = models.CharField(max_length=255)
    message = models.TextField()
    type = models.CharField(max_length=32, choices=TYPE_CHOICES)
    # 关联实体（预约、用户等），只保存类型与外部 id
    related_entity_type = models.CharField(max_length=20, choices=ENTITY_CHOICES, blank=True)
    related_entity_id = models.CharField(max_length=64, blank=True)
    sender = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='sent_notifications'
    )
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='medium')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['type', '-created_at'], name='notif_type_created_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.title} ({self.type})"

    @classmethod
    def valid_types(cls) -> set[str]:
        return {value for value, _ in cls.TYPE_CHOICES}


class NotificationRecipient(models.Model):
    """Per-recipient delivery row carrying the read state."""
    notification = models.ForeignKey(Notification, on_delete=models.CASCADE, related_name='recipients')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='notification_receipts')
    role = models.CharField(max_length=20, choices=User.ROLE_CHOICES)
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        unique_together = [('notification', 'user')]
        indexes = [
            models.Index(fields=['user', 'is_read'], name='notif_rcpt_user_read_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} <- {self.notification_id} ({'read' if self.is_read else 'unread'})"
