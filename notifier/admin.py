"""
Django admin registrations for the notifier models.

Lets staff inspect stored notifications and their per-recipient read
state under ``/admin/``. Live stream state is not persisted and does not
appear here; see ``/api/realtime/status``.
"""

from django.contrib import admin

from .models import User, Notification, NotificationRecipient


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'is_active', 'is_staff', 'is_superuser')
    list_filter = ('role', 'is_active')
    search_fields = ('username', 'first_name', 'last_name', 'email')


class NotificationRecipientInline(admin.TabularInline):
    model = NotificationRecipient
    extra = 0
    fields = ('user', 'role', 'is_read', 'read_at')
    raw_id_fields = ('user',)


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'type', 'priority', 'sender', 'created_at')
    list_filter = ('type', 'priority')
    search_fields = ('title', 'message')
    raw_id_fields = ('sender',)
    inlines = [NotificationRecipientInline]


@admin.register(NotificationRecipient)
class NotificationRecipientAdmin(admin.ModelAdmin):
    list_display = ('notification', 'user', 'role', 'is_read', 'read_at')
    list_filter = ('is_read', 'role')
    search_fields = ('user__username', 'notification__title')
