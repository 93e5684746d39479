from rest_framework import serializers

from clinic.models import Notification

TARGET_GROUPS = ['all', 'admin', 'doctor', 'nurse', 'receptionist', 'lab_technician', 'patient', 'specific']


class NotificationListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Notification.STATUS_CHOICES, required=False)
    type = serializers.ChoiceField(choices=Notification.TYPE_CHOICES, required=False)
    priority = serializers.ChoiceField(choices=Notification.PRIORITY_CHOICES, required=False)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=200)


class SendNotificationSerializer(serializers.Serializer):
    recipientId = serializers.IntegerField(min_value=1)
    type = serializers.ChoiceField(choices=Notification.TYPE_CHOICES, default='custom_message')
    title = serializers.CharField(max_length=255)
    message = serializers.CharField(max_length=2000)
    priority = serializers.ChoiceField(choices=Notification.PRIORITY_CHOICES, default='medium')
    data = serializers.DictField(required=False, default=dict)


class BroadcastSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    message = serializers.CharField(max_length=2000)
    targetGroup = serializers.ChoiceField(source='target_group', choices=TARGET_GROUPS, default='all')
    priority = serializers.ChoiceField(choices=Notification.PRIORITY_CHOICES, default='medium')
    targetUserIds = serializers.ListField(source='target_user_ids', child=serializers.IntegerField(min_value=1),
                                          required=False, default=list)
