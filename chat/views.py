import logging
import uuid

from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from rest_framework import permissions, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.views import APIView

from backend.exceptions import ServiceError, error_response
from courses.models import Course
from . import services
from .serializers import (
    ChatCreateSerializer, ChatListSerializer, ChatSettingsSerializer, ChatUserSerializer,
    ForwardSerializer, MessageCreateSerializer, MessageSerializer, MessageUpdateSerializer,
    ReactionSerializer
)

logger = logging.getLogger(__name__)

User = get_user_model()


def _invalid(message, errors):
    return Response({'error': message, 'details': errors}, status=status.HTTP_400_BAD_REQUEST)


def _chat_data(chat, user):
    membership = chat.participants.select_related('user').get(user=user)
    return ChatListSerializer(chat, context={'memberships': {chat.id: membership}}).data


class ChatListCreateView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        """Caller's chats, pinned first. ``?archived=true`` lists archived chats instead."""
        chats, memberships = services.user_chats(request.user)
        show_archived = request.query_params.get('archived', '').lower() == 'true'
        chats = [chat for chat in chats if memberships[chat.id].is_archived == show_archived]
        return Response(ChatListSerializer(chats, many=True, context={'memberships': memberships}).data)

    def post(self, request):
        serializer = ChatCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid('Invalid chat data', serializer.errors)
        data = serializer.validated_data

        try:
            if data['type'] == 'DIRECT':
                chat, created = services.get_or_create_direct_chat(request.user, data['other'])
            elif data['type'] == 'GROUP':
                chat, created = services.create_group_chat(request.user, data['name'], data['users']), True
            else:
                course = get_object_or_404(Course, id=data['course_id'])
                chat, created = services.create_course_chat(request.user, course), True
        except ServiceError as e:
            return error_response(e)

        return Response(
            _chat_data(chat, request.user),
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def find_user(request):
    email = request.query_params.get('email', '').strip()
    if not email:
        return Response({'error': 'email is required'}, status=status.HTTP_400_BAD_REQUEST)

    user = User.objects.filter(email__iexact=email, is_active=True).exclude(id=request.user.id).first()
    if user is None:
        return Response({'error': 'User not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response(ChatUserSerializer(user).data)


class ChatMessagesView(APIView):
    """
    GET: history page, ``?before=<message id>&limit=50``, oldest first.
    POST: send a message.
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, chat_id):
        try:
            chat = services.get_chat_for_user(chat_id, request.user)
        except ServiceError as e:
            return error_response(e)

        before = request.query_params.get('before')
        if before:
            try:
                before = uuid.UUID(before)
            except ValueError:
                return Response({'error': 'Invalid message cursor'}, status=status.HTTP_400_BAD_REQUEST)
        try:
            limit = int(request.query_params.get('limit', services.DEFAULT_PAGE_SIZE))
        except ValueError:
            limit = services.DEFAULT_PAGE_SIZE

        try:
            messages, has_more = services.chat_history(chat, before=before, limit=limit)
        except ServiceError as e:
            return error_response(e)
        return Response({
            'messages': MessageSerializer(messages, many=True).data,
            'has_more': has_more,
        })

    def post(self, request, chat_id):
        try:
            chat = services.get_chat_for_user(chat_id, request.user)
        except ServiceError as e:
            return error_response(e)

        serializer = MessageCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid('Invalid message', serializer.errors)

        try:
            message = services.send_message(chat, request.user, **serializer.validated_data)
        except ServiceError as e:
            return error_response(e)
        return Response(MessageSerializer(message).data, status=status.HTTP_201_CREATED)


class MessageDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def patch(self, request, message_id):
        serializer = MessageUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return _invalid('Invalid message', serializer.errors)
        try:
            message = services.get_message_for_user(message_id, request.user)
            message = services.edit_message(message, request.user, serializer.validated_data['content'])
        except ServiceError as e:
            return error_response(e)
        return Response(MessageSerializer(message).data)

    def delete(self, request, message_id):
        try:
            message = services.get_message_for_user(message_id, request.user)
            services.delete_message(message, request.user)
        except ServiceError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([permissions.IsAuthenticated])
def mark_read(request, chat_id):
    try:
        chat = services.get_chat_for_user(chat_id, request.user)
    except ServiceError as e:
        return error_response(e)
    read_at = services.mark_read(chat, request.user)
    return Response({'chat_id': str(chat.id), 'last_read_at': read_at, 'unread_count': 0})


@api_view(['POST'])
@permission_classes([permissions.IsAuthenticated])
def react(request, message_id):
    serializer = ReactionSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid('Invalid reaction', serializer.errors)
    try:
        message = services.get_message_for_user(message_id, request.user)
        summary = services.react(message, request.user, **serializer.validated_data)
    except ServiceError as e:
        return error_response(e)
    return Response({'message_id': str(message.id), 'reactions': summary})


@api_view(['POST'])
@permission_classes([permissions.IsAuthenticated])
def forward(request, message_id):
    serializer = ForwardSerializer(data=request.data)
    if not serializer.is_valid():
        return _invalid('Invalid forward request', serializer.errors)
    try:
        message = services.get_message_for_user(message_id, request.user)
        forwarded = services.forward_message(message, request.user, serializer.validated_data['chat_ids'])
    except ServiceError as e:
        return error_response(e)
    return Response(MessageSerializer(forwarded, many=True).data, status=status.HTTP_201_CREATED)


@api_view(['PATCH'])
@permission_classes([permissions.IsAuthenticated])
def chat_settings(request, chat_id):
    try:
        chat = services.get_chat_for_user(chat_id, request.user)
    except ServiceError as e:
        return error_response(e)

    serializer = ChatSettingsSerializer(data=request.data, partial=True)
    if not serializer.is_valid():
        return _invalid('Invalid settings', serializer.errors)
    membership = services.update_settings(chat, request.user, **serializer.validated_data)
    return Response(ChatSettingsSerializer(membership).data)
