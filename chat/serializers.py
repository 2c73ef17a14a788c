from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import Chat, ChatParticipant, Message

User = get_user_model()


class ChatUserSerializer(serializers.ModelSerializer):
    name = serializers.CharField(source='display_name', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'name', 'email', 'role']


class ParticipantSerializer(serializers.ModelSerializer):
    id = serializers.IntegerField(source='user.id', read_only=True)
    name = serializers.CharField(source='user.display_name', read_only=True)
    email = serializers.EmailField(source='user.email', read_only=True)
    user_role = serializers.CharField(source='user.role', read_only=True)

    class Meta:
        model = ChatParticipant
        fields = ['id', 'name', 'email', 'user_role', 'role', 'last_read_at', 'joined_at']


def reactions_summary(message):
    """{emoji: [user ids]}"""
    summary = {}
    for reaction in message.reactions.all():
        summary.setdefault(reaction.emoji, []).append(reaction.user_id)
    return summary


class MessageSerializer(serializers.ModelSerializer):
    chat_id = serializers.UUIDField(source='chat.id', read_only=True)
    sender_id = serializers.IntegerField(source='sender.id', read_only=True)
    sender_name = serializers.CharField(source='sender.display_name', read_only=True)
    reply_to = serializers.SerializerMethodField()
    reactions = serializers.SerializerMethodField()

    class Meta:
        model = Message
        fields = [
            'id', 'chat_id', 'sender_id', 'sender_name', 'content', 'type',
            'reply_to', 'forwarded_from', 'attachments', 'reactions',
            'is_edited', 'is_deleted', 'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_reply_to(self, obj):
        original = obj.reply_to
        if original is None:
            return None
        return {
            'id': str(original.id),
            'content': '' if original.is_deleted else original.content[:100],
            'sender_name': original.sender.display_name,
        }

    def get_reactions(self, obj):
        return {} if obj.is_deleted else reactions_summary(obj)

    def to_representation(self, instance):
        data = super().to_representation(instance)
        if instance.is_deleted:
            data['content'] = ''
            data['attachments'] = []
        return data


class ChatListSerializer(serializers.ModelSerializer):
    """
    Chat as listed for one participant. Expects ``participant`` objects of
    the caller in context under ``memberships`` keyed by chat id.
    """
    participants = ParticipantSerializer(many=True, read_only=True)
    course_title = serializers.CharField(source='course.title', read_only=True, default=None)
    last_message = serializers.SerializerMethodField()
    unread_count = serializers.SerializerMethodField()
    is_pinned = serializers.SerializerMethodField()
    is_muted = serializers.SerializerMethodField()
    is_archived = serializers.SerializerMethodField()

    class Meta:
        model = Chat
        fields = [
            'id', 'name', 'type', 'course', 'course_title', 'participants',
            'last_message', 'unread_count', 'is_pinned', 'is_muted', 'is_archived',
            'created_at', 'updated_at'
        ]

    def _membership(self, obj):
        return self.context.get('memberships', {}).get(obj.id)

    def get_last_message(self, obj):
        message = obj.messages.select_related('sender').order_by('-created_at').first()
        return MessageSerializer(message).data if message else None

    def get_unread_count(self, obj):
        from .services import unread_count
        membership = self._membership(obj)
        if membership is None:
            return 0
        return unread_count(obj, membership.user, membership.last_read_at)

    def get_is_pinned(self, obj):
        membership = self._membership(obj)
        return bool(membership and membership.is_pinned)

    def get_is_muted(self, obj):
        membership = self._membership(obj)
        return bool(membership and membership.is_muted)

    def get_is_archived(self, obj):
        membership = self._membership(obj)
        return bool(membership and membership.is_archived)


class ChatCreateSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=['DIRECT', 'GROUP', 'COURSE'], default='DIRECT')
    user_id = serializers.IntegerField(required=False)
    user_email = serializers.EmailField(required=False)
    name = serializers.CharField(required=False, allow_blank=True, max_length=200)
    participant_ids = serializers.ListField(child=serializers.IntegerField(), required=False, default=list)
    course_id = serializers.UUIDField(required=False)

    def validate(self, attrs):
        chat_type = attrs['type']
        if chat_type == 'DIRECT':
            if attrs.get('user_id'):
                other = User.objects.filter(id=attrs['user_id'], is_active=True).first()
            elif attrs.get('user_email'):
                other = User.objects.filter(email__iexact=attrs['user_email'], is_active=True).first()
            else:
                raise serializers.ValidationError({'user_id': 'user_id or user_email is required'})
            if other is None:
                raise serializers.ValidationError({'user_id': 'User not found'})
            attrs['other'] = other
        elif chat_type == 'GROUP':
            if not attrs.get('name', '').strip():
                raise serializers.ValidationError({'name': 'Group chats need a name'})
            users = list(User.objects.filter(id__in=attrs['participant_ids'], is_active=True))
            if not users:
                raise serializers.ValidationError({'participant_ids': 'Add at least one participant'})
            attrs['users'] = users
        elif not attrs.get('course_id'):
            raise serializers.ValidationError({'course_id': 'course_id is required for course chats'})
        return attrs


class MessageCreateSerializer(serializers.Serializer):
    content = serializers.CharField(required=False, allow_blank=True, default='', max_length=5000)
    type = serializers.ChoiceField(choices=Message.TYPE_CHOICES, default='TEXT')
    reply_to = serializers.UUIDField(required=False, allow_null=True)
    attachments = serializers.ListField(child=serializers.DictField(), required=False, default=list)

    def validate(self, attrs):
        if not attrs['content'].strip() and not attrs['attachments']:
            raise serializers.ValidationError('Message content or attachments required')
        if attrs['type'] == 'SYSTEM':
            raise serializers.ValidationError({'type': 'System messages cannot be sent by users'})
        return attrs


class MessageUpdateSerializer(serializers.Serializer):
    content = serializers.CharField(max_length=5000)


class ReactionSerializer(serializers.Serializer):
    emoji = serializers.CharField(max_length=32)
    action = serializers.ChoiceField(choices=['add', 'remove'], default='add')


class ForwardSerializer(serializers.Serializer):
    chat_ids = serializers.ListField(child=serializers.UUIDField(), min_length=1)


class ChatSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = ChatParticipant
        fields = ['is_pinned', 'is_muted', 'is_archived']
