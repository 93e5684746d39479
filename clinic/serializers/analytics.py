from rest_framework import serializers


class RevenueTrendQuerySerializer(serializers.Serializer):
    days = serializers.IntegerField(required=False, min_value=1, max_value=365, default=30)


class RefreshQuerySerializer(serializers.Serializer):
    refresh = serializers.BooleanField(required=False, default=False)
