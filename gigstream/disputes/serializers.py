from rest_framework import serializers

from .models import Dispute


class DisputeCreateSerializer(serializers.ModelSerializer):
    """
    Serializer for raising a dispute. The order comes from the URL.
    """
    raised_by = serializers.StringRelatedField(read_only=True)
    status = serializers.CharField(read_only=True)
    reason = serializers.CharField(min_length=20, max_length=2000)

    class Meta:
        model = Dispute
        fields = ['id', 'dispute_type', 'reason', 'raised_by', 'status', 'created_at']
        read_only_fields = ['id', 'raised_by', 'status', 'created_at']


class DisputeDetailSerializer(serializers.ModelSerializer):
    """
    Serializer for retrieving a single dispute with all its details.
    """
    order_id = serializers.IntegerField(source='order.id', read_only=True)
    raised_by = serializers.StringRelatedField()
    resolved_by = serializers.StringRelatedField()

    class Meta:
        model = Dispute
        fields = [
            'id', 'order_id', 'raised_by', 'dispute_type', 'reason', 'status', 'outcome', 'resolution',
            'resolved_by', 'resolved_at', 'closed_at', 'moderator_note', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class ModeratorDisputeUpdateSerializer(serializers.Serializer):
    """
    Moderators resolve a dispute with an outcome for the escrowed payment, or close it.
    """
    status = serializers.ChoiceField(choices=['resolved', 'closed'])
    outcome = serializers.ChoiceField(choices=[c[0] for c in Dispute.OUTCOME_CHOICES], required=False)
    resolution = serializers.CharField(required=False, allow_blank=True, max_length=1000)
    moderator_note = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs['status'] == 'resolved' and not attrs.get('outcome'):
            raise serializers.ValidationError({'outcome': ["An outcome is required to resolve a dispute."]})
        return attrs


class UpdateDisputeSerializer(serializers.ModelSerializer):
    """
    Serializer for the dispute owner to update the reason or type.
    """
    class Meta:
        model = Dispute
        fields = ['dispute_type', 'reason']

    def validate(self, attrs):
        if self.instance.status != 'open':
            raise serializers.ValidationError("Cannot edit a dispute that is no longer open.")
        return attrs
