"""
Chats, messages and the channel layer fan-out.

Every write goes through these functions so the REST views and the
WebSocket consumer persist and broadcast messages the same way.
"""
import json
import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.contrib.auth import get_user_model
from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from backend.exceptions import ChatAccessDenied, NotMessageSender, ServiceError
from .models import Chat, ChatParticipant, Message, MessageReaction

logger = logging.getLogger(__name__)

User = get_user_model()

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


def user_group(user_id):
    """Personal channel layer group of a user"""
    return f"user_{user_id}"


def _group_send(group, message):
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    try:
        async_to_sync(channel_layer.group_send)(group, message)
    except Exception as e:
        logger.error(f"Failed to send {message['type']} to {group}: {e}")


def _plain(payload):
    """Serializer output reduced to JSON types for msgpack based layers"""
    return json.loads(json.dumps(payload, cls=DjangoJSONEncoder))


def broadcast(group, event, payload, exclude=None):
    """
    Send ``{'type': event, 'payload': payload}`` to every socket in ``group``.
    ``exclude`` is a channel name that should not receive the frame.
    Failures are logged, a message is never lost because the layer is down.
    """
    message = {'type': 'chat.event', 'event': event, 'payload': _plain(payload)}
    if exclude:
        message['exclude'] = exclude
    _group_send(group, message)


def message_payload(message):
    from .serializers import MessageSerializer
    return _plain(MessageSerializer(message).data)


def broadcast_message(message):
    _group_send(message.chat.group_name, {'type': 'chat.message', 'payload': message_payload(message)})


def notify_participants(chat, event, payload):
    """Personal-group fan-out, reaches sockets not yet joined to the chat group"""
    for user_id in chat.participants.values_list('user_id', flat=True):
        broadcast(user_group(user_id), event, payload)


def is_participant(chat, user):
    return chat.participants.filter(user=user).exists()


def get_chat_for_user(chat_id, user):
    """The chat if ``user`` takes part in it, ChatAccessDenied otherwise."""
    chat = Chat.objects.filter(id=chat_id, participants__user=user).select_related('course').first()
    if chat is None:
        raise ChatAccessDenied()
    return chat


def get_message_for_user(message_id, user):
    message = Message.objects.select_related('chat', 'sender').filter(id=message_id).first()
    if message is None or not is_participant(message.chat, user):
        raise ChatAccessDenied('Message not found')
    return message


def user_chat_ids(user):
    return list(
        ChatParticipant.objects.filter(user=user).values_list('chat_id', flat=True)
    )


def user_chats(user):
    """
    Chats of ``user`` with their membership rows, pinned first then the most
    recently active.
    """
    memberships = {
        membership.chat_id: membership
        for membership in ChatParticipant.objects.filter(user=user).select_related('user')
    }
    chats = list(
        Chat.objects.filter(id__in=memberships.keys())
        .select_related('course')
        .prefetch_related('participants__user')
    )
    chats.sort(key=lambda chat: chat.updated_at, reverse=True)
    chats.sort(key=lambda chat: not memberships[chat.id].is_pinned)
    return chats, memberships


def unread_count(chat, user, last_read_at=None):
    messages = chat.messages.filter(is_deleted=False).exclude(sender=user)
    if last_read_at is not None:
        messages = messages.filter(created_at__gt=last_read_at)
    return messages.count()


def _add_participants(chat, users, admins=()):
    admin_ids = {admin.id for admin in admins}
    for user in users:
        ChatParticipant.objects.get_or_create(
            chat=chat,
            user=user,
            defaults={'role': 'ADMIN' if user.id in admin_ids else 'MEMBER'},
        )


def get_or_create_direct_chat(user, other):
    """The DIRECT chat between two users, created on first use. Returns (chat, created)."""
    if user.id == other.id:
        raise ServiceError('You cannot start a chat with yourself')

    existing = (
        Chat.objects.filter(type='DIRECT')
        .annotate(
            member_count=Count('participants', distinct=True),
            matched=Count('participants', filter=Q(participants__user__in=[user, other]), distinct=True),
        )
        .filter(member_count=2, matched=2)
        .first()
    )
    if existing is not None:
        return existing, False

    with transaction.atomic():
        chat = Chat.objects.create(type='DIRECT', created_by=user)
        _add_participants(chat, [user, other])
    logger.info(f"Direct chat {chat.id} created between {user.email} and {other.email}")
    notify_participants(chat, 'chat_update', {'chat_id': str(chat.id), 'action': 'created'})
    return chat, True


def create_group_chat(user, name, members):
    with transaction.atomic():
        chat = Chat.objects.create(type='GROUP', name=name.strip(), created_by=user)
        _add_participants(chat, [user, *[m for m in members if m.id != user.id]], admins=[user])
    logger.info(f"Group chat '{chat.name}' created by {user.email}")
    notify_participants(chat, 'chat_update', {'chat_id': str(chat.id), 'action': 'created'})
    return chat


def create_course_chat(user, course):
    """
    The COURSE chat of a course: its tutors and active students. Only staff
    and the course's tutors may open it. An existing course chat is reused
    and topped up with students enrolled since.
    """
    if not (user.is_staff_role or course.is_tutor(user)):
        raise ServiceError('Only staff or course tutors can create course chats')

    tutors = list(User.objects.filter(course_assignments__course=course).distinct())
    students = list(
        User.objects.filter(course_enrollments__course=course, course_enrollments__status='ACTIVE').distinct()
    )

    with transaction.atomic():
        chat = Chat.objects.filter(type='COURSE', course=course).first()
        if chat is None:
            chat = Chat.objects.create(type='COURSE', course=course, name=course.title, created_by=user)
        _add_participants(chat, [user, *tutors, *students], admins=[user, *tutors])
    notify_participants(chat, 'chat_update', {'chat_id': str(chat.id), 'action': 'created'})
    return chat


def chat_history(chat, before=None, limit=DEFAULT_PAGE_SIZE):
    """
    Up to ``limit`` messages older than the message ``before`` (the newest
    page when omitted), returned oldest first, plus whether more exist.
    """
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    messages = chat.messages.select_related('sender', 'reply_to__sender').prefetch_related('reactions')
    if before:
        anchor = chat.messages.filter(id=before).first()
        if anchor is None:
            raise ServiceError('Unknown message cursor')
        messages = messages.filter(created_at__lt=anchor.created_at)

    page = list(messages.order_by('-created_at')[:limit + 1])
    has_more = len(page) > limit
    return list(reversed(page[:limit])), has_more


def send_message(chat, sender, content='', type='TEXT', reply_to=None, attachments=None,
                 forwarded_from=None, broadcast=True):
    content = (content or '').strip()
    attachments = attachments or []
    if not content and not attachments:
        raise ServiceError('Message content or attachments required')

    reply = None
    if reply_to:
        reply = chat.messages.filter(id=reply_to).first()
        if reply is None:
            raise ServiceError('Replied message is not in this chat')

    with transaction.atomic():
        message = Message.objects.create(
            chat=chat,
            sender=sender,
            content=content,
            type=type,
            reply_to=reply,
            attachments=attachments,
            forwarded_from=forwarded_from,
        )
        # auto_now on save() moves the chat up the list
        chat.save(update_fields=['updated_at'])
        ChatParticipant.objects.filter(chat=chat, user=sender).update(last_read_at=message.created_at)

    if broadcast:
        broadcast_message(message)
    return message


def edit_message(message, user, content):
    if message.sender_id != user.id:
        raise NotMessageSender()
    if message.is_deleted:
        raise ServiceError('Deleted messages cannot be edited')
    content = content.strip()
    if not content:
        raise ServiceError('Message content required')

    message.content = content
    message.is_edited = True
    message.save(update_fields=['content', 'is_edited', 'updated_at'])
    broadcast_message(message)
    return message


def delete_message(message, user):
    if message.sender_id != user.id:
        raise NotMessageSender()
    message.is_deleted = True
    message.content = ''
    message.attachments = []
    message.save(update_fields=['is_deleted', 'content', 'attachments', 'updated_at'])
    message.reactions.all().delete()
    broadcast_message(message)
    return message


def mark_read(chat, user):
    now = timezone.now()
    ChatParticipant.objects.filter(chat=chat, user=user).update(last_read_at=now)
    return now


def react(message, user, emoji, action='add'):
    """Add or remove an emoji reaction. Returns the {emoji: [user ids]} summary."""
    from .serializers import reactions_summary

    if message.is_deleted:
        raise ServiceError('Cannot react to a deleted message')
    if action == 'remove':
        MessageReaction.objects.filter(message=message, user=user, emoji=emoji).delete()
    else:
        MessageReaction.objects.get_or_create(message=message, user=user, emoji=emoji)

    summary = reactions_summary(message)
    broadcast(message.chat.group_name, 'reaction', {
        'chat_id': str(message.chat_id),
        'message_id': str(message.id),
        'reactions': summary,
    })
    return summary


def forward_message(message, user, chat_ids):
    """Copy a message into other chats of the user. All targets must be the user's."""
    if message.is_deleted:
        raise ServiceError('Deleted messages cannot be forwarded')

    targets = list(Chat.objects.filter(id__in=chat_ids, participants__user=user).distinct())
    if len(targets) != len(set(chat_ids)):
        raise ChatAccessDenied()

    return [
        send_message(
            chat,
            user,
            content=message.content,
            type=message.type,
            attachments=message.attachments,
            forwarded_from=message,
        )
        for chat in targets
    ]


def update_settings(chat, user, **flags):
    membership = ChatParticipant.objects.get(chat=chat, user=user)
    for field in ('is_pinned', 'is_muted', 'is_archived'):
        if field in flags:
            setattr(membership, field, flags[field])
    membership.save()
    return membership
