from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import Conversation, Message

User = get_user_model()


class ParticipantSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = ['id', 'full_name', 'email', 'role']


class MessageSerializer(serializers.ModelSerializer):
    sender = ParticipantSerializer(read_only=True)
    from_current_user = serializers.SerializerMethodField()
    is_read = serializers.SerializerMethodField()

    class Meta:
        model = Message
        fields = ['id', 'conversation', 'sender', 'content', 'priority', 'created_at', 'from_current_user',
                  'is_read']

    def get_from_current_user(self, obj):
        return obj.sender_id == self.context['request'].user.pk

    def get_is_read(self, obj):
        user = self.context['request'].user
        return obj.sender_id == user.pk or obj.read_by.filter(pk=user.pk).exists()


class ConversationSerializer(serializers.ModelSerializer):
    participants = ParticipantSerializer(many=True, read_only=True)
    last_message = serializers.SerializerMethodField()
    unread_count = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = ['id', 'subject', 'is_broadcast', 'participants', 'last_message', 'unread_count', 'updated_at']

    def get_last_message(self, obj):
        message = obj.messages.select_related('sender').order_by('-created_at').first()
        return MessageSerializer(message, context=self.context).data if message else None

    def get_unread_count(self, obj):
        user = self.context['request'].user
        return obj.messages.exclude(sender=user).exclude(read_by=user).count()


class ConversationDetailSerializer(ConversationSerializer):
    messages = serializers.SerializerMethodField()

    class Meta(ConversationSerializer.Meta):
        fields = ConversationSerializer.Meta.fields + ['messages']

    def get_messages(self, obj):
        messages = obj.messages.select_related('sender').prefetch_related('read_by')
        return MessageSerializer(messages, many=True, context=self.context).data


class StartConversationSerializer(serializers.Serializer):
    participant_ids = serializers.ListField(child=serializers.IntegerField(), min_length=1)
    subject = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    content = serializers.CharField(required=False, allow_blank=True, default='')


class SendMessageSerializer(serializers.Serializer):
    conversation_id = serializers.IntegerField()
    content = serializers.CharField(trim_whitespace=True)
    priority = serializers.ChoiceField(choices=Message.Priority.choices, default=Message.Priority.NORMAL)


class BroadcastSerializer(serializers.Serializer):
    subject = serializers.CharField(max_length=200)
    content = serializers.CharField()
    target_roles = serializers.ListField(child=serializers.ChoiceField(choices=User.Role.choices),
                                         required=False, default=list)
    priority = serializers.ChoiceField(choices=Message.Priority.choices, default=Message.Priority.NORMAL)
