from rest_framework import serializers


class CheckoutSerializer(serializers.Serializer):
    section_id = serializers.IntegerField(min_value=1)
    plan = serializers.ChoiceField(choices=['deposit', 'full'])
