from rest_framework import serializers

from notifier.models import Notification


class NotificationListQuerySerializer(serializers.Serializer):
    page = serializers.IntegerField(min_value=1, required=False)
    limit = serializers.IntegerField(min_value=1, max_value=100, required=False)
    read = serializers.BooleanField(required=False, allow_null=True, default=None)


class RelatedEntitySerializer(serializers.Serializer):
    entityType = serializers.ChoiceField(choices=[c for c, _ in Notification.ENTITY_CHOICES])
    entityId = serializers.CharField(max_length=64)


class NotificationCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    message = serializers.CharField(max_length=2000)
    type = serializers.ChoiceField(choices=[c for c, _ in Notification.TYPE_CHOICES])
    recipientIds = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)
    priority = serializers.ChoiceField(choices=[c for c, _ in Notification.PRIORITY_CHOICES], required=False, default='medium')
    relatedEntity = RelatedEntitySerializer(required=False)

    def validate_title(self, v):
        v = (v or '').strip()
        if not v:
            raise serializers.ValidationError('title must not be blank')
        return v
