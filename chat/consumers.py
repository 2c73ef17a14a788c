"""
WebSocket consumer for real-time chat.

Frames in both directions are JSON objects ``{"type": ..., "payload": {...}}``.
The client authenticates with a ``token`` query parameter or a first
``auth`` frame carrying a Firebase ID token.
"""
import json
import logging
import uuid
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from django.core.exceptions import ValidationError

from authentication.authentication import (
    ensure_firebase_initialized, get_or_create_user, verify_token_with_retry
)
from backend.exceptions import ServiceError
from . import services

logger = logging.getLogger(__name__)

AUTH_FAILED_CODE = 4001


@database_sync_to_async
def authenticate_token(token):
    if not ensure_firebase_initialized():
        raise ValueError("Authentication service unavailable")
    decoded_token = verify_token_with_retry(token)
    if not decoded_token.get('uid') or not decoded_token.get('email'):
        raise ValueError("Invalid token: missing required fields")
    return get_or_create_user(decoded_token)


@database_sync_to_async
def get_chat_ids(user):
    return [str(chat_id) for chat_id in services.user_chat_ids(user)]


@database_sync_to_async
def check_participant(chat_id, user):
    services.get_chat_for_user(chat_id, user)


@database_sync_to_async
def persist_message(user, chat_id, payload):
    chat = services.get_chat_for_user(chat_id, user)
    message = services.send_message(
        chat,
        user,
        content=payload.get('content', ''),
        type=payload.get('type', 'TEXT'),
        reply_to=payload.get('reply_to'),
        attachments=payload.get('attachments') or [],
        broadcast=False,
    )
    return services.message_payload(message)


@database_sync_to_async
def persist_read(user, chat_id):
    chat = services.get_chat_for_user(chat_id, user)
    return services.mark_read(chat, user).isoformat()


def group_for(chat_id):
    return f"chat_{chat_id}"


class ChatConsumer(AsyncWebsocketConsumer):
    """
    One socket per signed-in user. After authentication the socket joins
    the group of every chat the user takes part in plus a personal group,
    so messages sent through the REST API reach it as well.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.user = None
        self.chat_ids = set()

    @property
    def authenticated(self):
        return self.user is not None

    async def connect(self):
        await self.accept()

        query = parse_qs(self.scope.get('query_string', b'').decode())
        token = (query.get('token') or [None])[0]
        if token:
            await self.handle_auth({'token': token})
        else:
            await self.send_json('connected', {'message': 'WebSocket connected. Please authenticate.'})

    async def disconnect(self, close_code):
        if not self.authenticated:
            return
        await self.broadcast_presence('user_offline')
        for chat_id in self.chat_ids:
            await self.channel_layer.group_discard(group_for(chat_id), self.channel_name)
        await self.channel_layer.group_discard(services.user_group(self.user.id), self.channel_name)
        logger.info(f"Chat socket closed for {self.user.email} ({close_code})")

    async def receive(self, text_data=None, bytes_data=None):
        if text_data is None and bytes_data:
            text_data = bytes_data.decode('utf-8')
        try:
            data = json.loads(text_data or '')
        except json.JSONDecodeError:
            await self.send_error("Invalid JSON format")
            return
        if not isinstance(data, dict):
            await self.send_error("Frames must be JSON objects")
            return

        message_type = data.get('type')
        payload = data.get('payload') or {}
        if not isinstance(payload, dict):
            await self.send_error("Payload must be a JSON object")
            return

        if message_type == 'auth':
            # token may sit at the top level or inside the payload
            await self.handle_auth({'token': data.get('token') or payload.get('token')})
            return

        if message_type == 'ping':
            await self.send_json('pong', {})
            return

        if not self.authenticated:
            await self.send_error("Authentication required. Please send 'auth' message first.")
            await self.close(code=AUTH_FAILED_CODE)
            return

        handler = self.handlers.get(message_type)
        if handler is None:
            await self.send_error(f"Unknown message type: {message_type}")
            return

        try:
            await handler(self, payload)
        except ServiceError as e:
            await self.send_error(e.message)
        except (ValueError, ValidationError) as e:
            await self.send_error(str(e))

    async def handle_auth(self, data):
        if self.authenticated:
            await self.send_json('auth_success', {'user_id': self.user.id, 'chats': sorted(self.chat_ids)})
            return

        token = data.get('token')
        if not token:
            await self.send_error("Token is required for authentication")
            await self.close(code=AUTH_FAILED_CODE)
            return

        try:
            user = await authenticate_token(token)
        except Exception as e:
            logger.warning(f"Chat socket authentication failed: {e}")
            await self.send_error("Authentication failed")
            await self.close(code=AUTH_FAILED_CODE)
            return

        self.user = user
        self.chat_ids = set(await get_chat_ids(user))
        await self.channel_layer.group_add(services.user_group(user.id), self.channel_name)
        for chat_id in self.chat_ids:
            await self.channel_layer.group_add(group_for(chat_id), self.channel_name)

        await self.send_json('auth_success', {'user_id': user.id, 'chats': sorted(self.chat_ids)})
        await self.broadcast_presence('user_online')
        logger.info(f"Chat socket authenticated: {user.email}")

    def _chat_id(self, payload):
        chat_id = payload.get('chat_id')
        if not chat_id:
            raise ValueError("chat_id is required")
        return str(uuid.UUID(str(chat_id)))

    async def join_chat(self, payload):
        chat_id = self._chat_id(payload)
        await check_participant(chat_id, self.user)
        self.chat_ids.add(chat_id)
        await self.channel_layer.group_add(group_for(chat_id), self.channel_name)
        await self.send_json('chat_joined', {'chat_id': chat_id})

    async def leave_chat(self, payload):
        chat_id = self._chat_id(payload)
        self.chat_ids.discard(chat_id)
        await self.channel_layer.group_discard(group_for(chat_id), self.channel_name)
        await self.send_json('chat_left', {'chat_id': chat_id})

    async def send_message(self, payload):
        chat_id = self._chat_id(payload)
        if payload.get('type') == 'SYSTEM':
            raise ValueError("System messages cannot be sent by users")
        message = await persist_message(self.user, chat_id, payload)
        if chat_id not in self.chat_ids:
            self.chat_ids.add(chat_id)
            await self.channel_layer.group_add(group_for(chat_id), self.channel_name)
        await self.channel_layer.group_send(group_for(chat_id), {
            'type': 'chat.message',
            'payload': message,
        })

    async def typing(self, payload):
        await self._relay_typing('typing', payload)

    async def stop_typing(self, payload):
        await self._relay_typing('stop_typing', payload)

    async def _relay_typing(self, event, payload):
        chat_id = self._chat_id(payload)
        if chat_id not in self.chat_ids:
            raise ValueError("Join the chat first")
        await self.channel_layer.group_send(group_for(chat_id), {
            'type': 'chat.event',
            'event': event,
            'payload': {'chat_id': chat_id, 'user_id': self.user.id, 'name': self.user.display_name},
            'exclude': self.channel_name,
        })

    async def mark_read(self, payload):
        chat_id = self._chat_id(payload)
        read_at = await persist_read(self.user, chat_id)
        await self.channel_layer.group_send(group_for(chat_id), {
            'type': 'chat.event',
            'event': 'read',
            'payload': {'chat_id': chat_id, 'user_id': self.user.id, 'last_read_at': read_at},
            'exclude': self.channel_name,
        })

    handlers = {
        'join_chat': join_chat,
        'leave_chat': leave_chat,
        'send_message': send_message,
        'typing': typing,
        'stop_typing': stop_typing,
        'mark_read': mark_read,
    }

    async def broadcast_presence(self, event):
        payload = {'user_id': self.user.id, 'name': self.user.display_name}
        for chat_id in self.chat_ids:
            await self.channel_layer.group_send(group_for(chat_id), {
                'type': 'chat.event',
                'event': event,
                'payload': payload,
                'exclude': self.channel_name,
            })

    # Channel layer handlers

    async def chat_message(self, event):
        await self.send_json('message', event['payload'])

    async def chat_event(self, event):
        if event.get('exclude') == self.channel_name:
            return
        if event['event'] == 'chat_update' and event['payload'].get('action') == 'created':
            chat_id = event['payload']['chat_id']
            if chat_id not in self.chat_ids:
                self.chat_ids.add(chat_id)
                await self.channel_layer.group_add(group_for(chat_id), self.channel_name)
        await self.send_json(event['event'], event['payload'])

    async def send_json(self, message_type, payload):
        await self.send(text_data=json.dumps({'type': message_type, 'payload': payload}))

    async def send_error(self, message):
        await self.send_json('error', {'message': message})
