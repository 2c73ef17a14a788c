import asyncio
import json
from datetime import timedelta
from unittest import mock

from channels.db import database_sync_to_async
from channels.testing import WebsocketCommunicator
from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TransactionTestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from courses.models import CourseTutor
from student.tests import CourseFixtureMixin
from . import services
from .client import RealtimeMessagingClient
from .consumers import ChatConsumer
from .models import Chat, Message

User = get_user_model()


class ChatAPITest(CourseFixtureMixin, APITestCase):

    def setUp(self):
        self.alina = User.objects.create_user(email='alina@test.com', first_name='Alina')
        self.timur = User.objects.create_user(email='timur@test.com', first_name='Timur')
        self.dias = User.objects.create_user(email='dias@test.com', first_name='Dias')
        self.chat, _ = services.get_or_create_direct_chat(self.alina, self.timur)
        self.client.force_authenticate(self.alina)

    def messages_url(self, chat=None):
        return reverse('chat:chat-messages', args=[(chat or self.chat).id])

    def test_requires_authentication(self):
        self.client.force_authenticate(None)
        response = self.client.get(reverse('chat:chat-list'))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_direct_chat_is_reused(self):
        response = self.client.post(reverse('chat:chat-list'), {'type': 'DIRECT', 'user_id': self.timur.id})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['id'], str(self.chat.id))
        self.assertEqual(Chat.objects.filter(type='DIRECT').count(), 1)

    def test_create_direct_chat_by_email(self):
        response = self.client.post(reverse('chat:chat-list'), {'type': 'DIRECT', 'user_email': 'DIAS@test.com'})

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        emails = {participant['email'] for participant in response.data['participants']}
        self.assertEqual(emails, {'alina@test.com', 'dias@test.com'})

    def test_cannot_chat_with_self(self):
        response = self.client.post(reverse('chat:chat-list'), {'type': 'DIRECT', 'user_id': self.alina.id})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_group_chat_needs_name(self):
        response = self.client.post(
            reverse('chat:chat-list'), {'type': 'GROUP', 'participant_ids': [self.timur.id]}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(
            reverse('chat:chat-list'),
            {'type': 'GROUP', 'name': 'Study group', 'participant_ids': [self.timur.id, self.dias.id]},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(len(response.data['participants']), 3)

    def test_course_chat_for_tutor(self):
        self.create_course()
        tutor = User.objects.create_user(email='tutor@test.com', role=User.Role.TUTOR)
        CourseTutor.objects.create(course=self.course, tutor=tutor, is_primary=True)
        self.enroll(self.alina)
        self.enroll(self.timur, status='CANCELLED')

        response = self.client.post(
            reverse('chat:chat-list'), {'type': 'COURSE', 'course_id': str(self.course.id)}
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        self.client.force_authenticate(tutor)
        response = self.client.post(
            reverse('chat:chat-list'), {'type': 'COURSE', 'course_id': str(self.course.id)}
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['name'], 'NUET Critical Thinking')
        emails = {participant['email'] for participant in response.data['participants']}
        self.assertEqual(emails, {'tutor@test.com', 'alina@test.com'})

    def test_find_user(self):
        response = self.client.get(reverse('chat:find-user'), {'email': 'timur@test.com'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['name'], 'Timur')

        response = self.client.get(reverse('chat:find-user'), {'email': 'nobody@test.com'})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_send_message(self):
        response = self.client.post(self.messages_url(), {'content': '  Salem!  '})

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['content'], 'Salem!')
        self.assertEqual(response.data['sender_id'], self.alina.id)

    def test_message_needs_content_or_attachments(self):
        response = self.client.post(self.messages_url(), {'content': '   '})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(
            self.messages_url(),
            {'type': 'FILE', 'attachments': [{'name': 'notes.pdf', 'url': 'https://files.test/notes.pdf'}]},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_reply_must_be_in_same_chat(self):
        other_chat, _ = services.get_or_create_direct_chat(self.alina, self.dias)
        foreign = services.send_message(other_chat, self.dias, content='Hi')

        response = self.client.post(self.messages_url(), {'content': 'Re', 'reply_to': str(foreign.id)})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        original = services.send_message(self.chat, self.timur, content='Question about logic')
        response = self.client.post(self.messages_url(), {'content': 'Answer', 'reply_to': str(original.id)})
        self.assertEqual(response.data['reply_to']['content'], 'Question about logic')

    def test_non_participant_gets_404(self):
        self.client.force_authenticate(self.dias)
        self.assertEqual(self.client.get(self.messages_url()).status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(
            self.client.post(self.messages_url(), {'content': 'Hi'}).status_code, status.HTTP_404_NOT_FOUND
        )

    def test_history_pages_backwards(self):
        first = services.send_message(self.chat, self.timur, content='one')
        second = services.send_message(self.chat, self.alina, content='two')
        third = services.send_message(self.chat, self.timur, content='three')
        base = timezone.now() - timedelta(minutes=10)
        for minutes, message in enumerate([first, second, third]):
            Message.objects.filter(id=message.id).update(created_at=base + timedelta(minutes=minutes))

        response = self.client.get(self.messages_url(), {'limit': 2})
        self.assertEqual([m['content'] for m in response.data['messages']], ['two', 'three'])
        self.assertTrue(response.data['has_more'])

        response = self.client.get(self.messages_url(), {'limit': 2, 'before': str(second.id)})
        self.assertEqual([m['content'] for m in response.data['messages']], ['one'])
        self.assertFalse(response.data['has_more'])

    def test_only_sender_edits(self):
        message = services.send_message(self.chat, self.timur, content='Typo')
        url = reverse('chat:message-detail', args=[message.id])

        response = self.client.patch(url, {'content': 'Hacked'})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.timur)
        response = self.client.patch(url, {'content': 'Fixed'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['content'], 'Fixed')
        self.assertTrue(response.data['is_edited'])

    def test_deleted_message_is_a_tombstone(self):
        message = services.send_message(self.chat, self.alina, content='Oops', attachments=[{'name': 'a.png'}])

        response = self.client.delete(reverse('chat:message-detail', args=[message.id]))
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

        listed = self.client.get(self.messages_url()).data['messages']
        self.assertEqual(len(listed), 1)
        self.assertTrue(listed[0]['is_deleted'])
        self.assertEqual(listed[0]['content'], '')
        self.assertEqual(listed[0]['attachments'], [])

    def test_unread_count_and_mark_read(self):
        own = services.send_message(self.chat, self.alina, content='Ready for the mock test?')
        services.send_message(self.chat, self.timur, content='Almost')
        services.send_message(self.chat, self.timur, content='See you tomorrow')
        Message.objects.filter(id=own.id).update(created_at=timezone.now() - timedelta(minutes=5))
        self.chat.participants.filter(user=self.alina).update(last_read_at=timezone.now() - timedelta(minutes=5))

        listed = self.client.get(reverse('chat:chat-list')).data
        self.assertEqual(listed[0]['unread_count'], 2)
        self.assertEqual(listed[0]['last_message']['sender_id'], self.timur.id)

        response = self.client.post(reverse('chat:chat-read', args=[self.chat.id]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(self.client.get(reverse('chat:chat-list')).data[0]['unread_count'], 0)

    def test_pinned_chats_first_and_archived_hidden(self):
        newer, _ = services.get_or_create_direct_chat(self.alina, self.dias)
        Chat.objects.filter(id=self.chat.id).update(updated_at=timezone.now() - timedelta(hours=1))

        listed = self.client.get(reverse('chat:chat-list')).data
        self.assertEqual([c['id'] for c in listed], [str(newer.id), str(self.chat.id)])

        response = self.client.patch(reverse('chat:chat-settings', args=[self.chat.id]), {'is_pinned': True})
        self.assertEqual(response.data, {'is_pinned': True, 'is_muted': False, 'is_archived': False})
        listed = self.client.get(reverse('chat:chat-list')).data
        self.assertEqual([c['id'] for c in listed], [str(self.chat.id), str(newer.id)])

        self.client.patch(reverse('chat:chat-settings', args=[newer.id]), {'is_archived': True})
        self.assertEqual(len(self.client.get(reverse('chat:chat-list')).data), 1)
        archived = self.client.get(reverse('chat:chat-list'), {'archived': 'true'}).data
        self.assertEqual([c['id'] for c in archived], [str(newer.id)])

    def test_reactions(self):
        message = services.send_message(self.chat, self.timur, content='Passed!')
        url = reverse('chat:message-reactions', args=[message.id])

        response = self.client.post(url, {'emoji': '🎉'})
        self.assertEqual(response.data['reactions'], {'🎉': [self.alina.id]})

        response = self.client.post(url, {'emoji': '🎉', 'action': 'remove'})
        self.assertEqual(response.data['reactions'], {})

    def test_forward_only_to_own_chats(self):
        message = services.send_message(self.chat, self.timur, content='Exam date is 12 May')
        group = services.create_group_chat(self.alina, 'Study group', [self.dias])
        foreign, _ = services.get_or_create_direct_chat(self.timur, self.dias)
        url = reverse('chat:message-forward', args=[message.id])

        response = self.client.post(url, {'chat_ids': [str(foreign.id)]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        response = self.client.post(url, {'chat_ids': [str(group.id)]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(str(response.data[0]['forwarded_from']), str(message.id))
        self.assertEqual(group.messages.get().content, 'Exam date is 12 May')


def decoded_tokens(token):
    emails = {'alina-token': 'alina@test.com', 'timur-token': 'timur@test.com'}
    if token not in emails:
        raise ValueError('Invalid authentication token')
    return {'uid': f'uid-{token}', 'email': emails[token]}


@mock.patch('chat.consumers.ensure_firebase_initialized', return_value=True)
@mock.patch('chat.consumers.verify_token_with_retry', side_effect=decoded_tokens)
class ChatConsumerTest(TransactionTestCase):

    def setUp(self):
        self.alina = User.objects.create_user(email='alina@test.com', first_name='Alina')
        self.timur = User.objects.create_user(email='timur@test.com', first_name='Timur')
        self.chat, _ = services.get_or_create_direct_chat(self.alina, self.timur)

    async def open_socket(self, token):
        communicator = WebsocketCommunicator(ChatConsumer.as_asgi(), f'/ws/chat/?token={token}')
        connected, _ = await communicator.connect()
        self.assertTrue(connected)
        frame = await communicator.receive_json_from()
        self.assertEqual(frame['type'], 'auth_success')
        return communicator, frame

    async def test_invalid_token_closes_socket(self, *mocks):
        communicator = WebsocketCommunicator(ChatConsumer.as_asgi(), '/ws/chat/?token=bogus')
        await communicator.connect()

        frame = await communicator.receive_json_from()
        self.assertEqual(frame, {'type': 'error', 'payload': {'message': 'Authentication failed'}})
        closed = await communicator.receive_output()
        self.assertEqual(closed['type'], 'websocket.close')
        self.assertEqual(closed['code'], 4001)

    async def test_auth_frame_and_ping(self, *mocks):
        communicator = WebsocketCommunicator(ChatConsumer.as_asgi(), '/ws/chat/')
        await communicator.connect()
        self.assertEqual((await communicator.receive_json_from())['type'], 'connected')

        await communicator.send_json_to({'type': 'ping'})
        self.assertEqual(await communicator.receive_json_from(), {'type': 'pong', 'payload': {}})

        await communicator.send_json_to({'type': 'auth', 'token': 'alina-token'})
        frame = await communicator.receive_json_from()
        self.assertEqual(frame['type'], 'auth_success')
        self.assertEqual(frame['payload']['chats'], [str(self.chat.id)])
        await communicator.disconnect()

    async def test_frames_before_auth_are_rejected(self, *mocks):
        communicator = WebsocketCommunicator(ChatConsumer.as_asgi(), '/ws/chat/')
        await communicator.connect()
        await communicator.receive_json_from()

        await communicator.send_json_to({'type': 'typing', 'payload': {'chat_id': str(self.chat.id)}})
        self.assertEqual((await communicator.receive_json_from())['type'], 'error')
        self.assertEqual((await communicator.receive_output())['code'], 4001)

    async def test_payload_must_be_an_object(self, *mocks):
        communicator = WebsocketCommunicator(ChatConsumer.as_asgi(), '/ws/chat/')
        await communicator.connect()
        await communicator.receive_json_from()
        error = {'type': 'error', 'payload': {'message': 'Payload must be a JSON object'}}

        await communicator.send_json_to({'type': 'auth', 'payload': 'alina-token'})
        self.assertEqual(await communicator.receive_json_from(), error)

        await communicator.send_json_to({'type': 'auth', 'token': 'alina-token'})
        self.assertEqual((await communicator.receive_json_from())['type'], 'auth_success')

        await communicator.send_json_to({'type': 'typing', 'payload': [str(self.chat.id)]})
        self.assertEqual(await communicator.receive_json_from(), error)
        await communicator.disconnect()

    async def test_send_message_is_saved_and_broadcast(self, *mocks):
        timur, _ = await self.open_socket('timur-token')
        alina, _ = await self.open_socket('alina-token')
        online = await timur.receive_json_from()
        self.assertEqual(online['type'], 'user_online')
        self.assertEqual(online['payload']['user_id'], self.alina.id)

        await alina.send_json_to({
            'type': 'send_message',
            'payload': {'chat_id': str(self.chat.id), 'content': 'Salem, Timur!'},
        })

        for communicator in (alina, timur):
            frame = await communicator.receive_json_from()
            self.assertEqual(frame['type'], 'message')
            self.assertEqual(frame['payload']['content'], 'Salem, Timur!')
        count = await database_sync_to_async(Message.objects.filter(chat=self.chat).count)()
        self.assertEqual(count, 1)

        await alina.disconnect()
        offline = await timur.receive_json_from()
        self.assertEqual(offline['type'], 'user_offline')
        await timur.disconnect()

    async def test_typing_is_relayed_to_others_only(self, *mocks):
        timur, _ = await self.open_socket('timur-token')
        alina, _ = await self.open_socket('alina-token')
        await timur.receive_json_from()

        await alina.send_json_to({'type': 'typing', 'payload': {'chat_id': str(self.chat.id)}})

        frame = await timur.receive_json_from()
        self.assertEqual(frame['type'], 'typing')
        self.assertEqual(frame['payload']['user_id'], self.alina.id)
        self.assertTrue(await alina.receive_nothing())
        await alina.disconnect()
        await timur.disconnect()

    async def test_messages_sent_over_rest_reach_socket(self, *mocks):
        alina, _ = await self.open_socket('alina-token')

        await database_sync_to_async(services.send_message)(self.chat, self.timur, content='From the API')

        frame = await alina.receive_json_from()
        self.assertEqual(frame['type'], 'message')
        self.assertEqual(frame['payload']['sender_id'], self.timur.id)
        await alina.disconnect()

    async def test_cannot_join_foreign_chat(self, *mocks):
        outsider = await database_sync_to_async(User.objects.create_user)(email='dias@test.com')
        other_chat, _ = await database_sync_to_async(services.get_or_create_direct_chat)(outsider, self.timur)
        alina, _ = await self.open_socket('alina-token')

        await alina.send_json_to({'type': 'join_chat', 'payload': {'chat_id': str(other_chat.id)}})

        frame = await alina.receive_json_from()
        self.assertEqual(frame, {'type': 'error', 'payload': {'message': 'Chat not found'}})
        await alina.disconnect()


class FakeWebSocket:

    def __init__(self):
        self.sent = []
        self.frames = asyncio.Queue()
        self.closed = False

    def push(self, frame):
        self.frames.put_nowait(json.dumps(frame))

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def close(self):
        self.closed = True
        self.frames.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        frame = await self.frames.get()
        if frame is None:
            raise StopAsyncIteration
        return frame


class RealtimeMessagingClientTest(SimpleTestCase):

    def make_client(self, sockets=None, failures=0):
        self.sockets = sockets if sockets is not None else [FakeWebSocket()]
        self.urls = []
        remaining = {'failures': failures}

        async def connect(url):
            self.urls.append(url)
            if remaining['failures']:
                remaining['failures'] -= 1
                raise OSError('Connection refused')
            return self.sockets.pop(0)

        return RealtimeMessagingClient('ws://chat.test/ws/chat/', 'abc', connect=connect)

    def test_backoff_doubles_and_caps(self):
        client = self.make_client()
        self.assertEqual([client.reconnect_delay(n) for n in range(7)], [1, 2, 4, 8, 16, 30, 30])

    async def test_connect_sends_token_and_dispatches_events(self):
        client = self.make_client()
        received = []

        async def on_message(payload):
            received.append(('message', payload['content']))

        client.on('message', on_message)
        client.on('typing', lambda payload: received.append(('typing', payload['user_id'])))

        await client.connect()
        socket = client.websocket
        socket.push({'type': 'typing', 'payload': {'user_id': 7}})
        socket.push({'type': 'message', 'payload': {'content': 'Hi'}})
        socket.push({'type': 'unknown', 'payload': {}})
        await asyncio.sleep(0.01)

        self.assertEqual(self.urls, ['ws://chat.test/ws/chat/?token=abc'])
        self.assertEqual(received, [('typing', 7), ('message', 'Hi')])
        await client.disconnect()

    async def test_gives_up_after_five_attempts(self):
        client = self.make_client(sockets=[], failures=10)
        delays = []
        errors = []
        client.on('error', lambda payload: errors.append(payload['message']))

        async def fake_sleep(delay):
            delays.append(delay)

        with mock.patch('chat.client.asyncio.sleep', new=fake_sleep):
            await client._reconnect()

        self.assertEqual(delays, [1, 2, 4, 8, 16])
        self.assertEqual(len(self.urls), 5)
        self.assertEqual(errors, ['Unable to reconnect'])
        self.assertFalse(client.should_reconnect)

    async def test_successful_reconnect_resets_attempts(self):
        client = self.make_client(failures=2)
        delays = []

        async def fake_sleep(delay):
            delays.append(delay)

        with mock.patch('chat.client.asyncio.sleep', new=fake_sleep):
            await client._reconnect()

        self.assertEqual(delays, [1, 2, 4])
        self.assertTrue(client.connected)
        self.assertEqual(client.reconnect_attempts, 0)
        await client.disconnect()

    async def test_dropped_connection_reconnects(self):
        second = FakeWebSocket()
        client = self.make_client(sockets=[FakeWebSocket(), second])
        client.INITIAL_RECONNECT_DELAY = 0

        await client.connect()
        client.websocket.frames.put_nowait(None)
        await asyncio.sleep(0.01)

        self.assertIs(client.websocket, second)
        await client.disconnect()

    async def test_send_message_and_typing_auto_stop(self):
        client = self.make_client()
        client.TYPING_TIMEOUT = 0.01
        await client.connect()
        socket = client.websocket

        await client.start_typing('chat-1')
        await client.start_typing('chat-1')
        await asyncio.sleep(0.05)
        await client.start_typing('chat-1')
        await client.send_message('chat-1', 'Done', reply_to='msg-1')

        self.assertEqual([frame['type'] for frame in socket.sent], [
            'typing', 'stop_typing', 'typing', 'stop_typing', 'send_message',
        ])
        self.assertEqual(socket.sent[-1]['payload'], {
            'chat_id': 'chat-1', 'content': 'Done', 'type': 'TEXT', 'reply_to': 'msg-1',
        })
        await client.disconnect()

    async def test_disconnect_does_not_reconnect(self):
        client = self.make_client()
        await client.connect()
        socket = client.websocket

        await client.disconnect()

        self.assertTrue(socket.closed)
        self.assertFalse(client.connected)
        self.assertEqual(len(self.urls), 1)
        with self.assertRaises(ConnectionError):
            await client.send('ping')

    async def test_failing_handler_does_not_stop_listener(self):
        client = self.make_client()
        received = []

        def on_message(payload):
            received.append(payload['content'])
            if payload['content'] == 'first':
                raise ValueError('bad handler')

        client.on('message', on_message)
        await client.connect()
        socket = client.websocket

        with self.assertLogs('chat.client', level='ERROR'):
            socket.push({'type': 'message', 'payload': {'content': 'first'}})
            socket.push(['not', 'an', 'object'])
            socket.push({'type': 'message', 'payload': {'content': 'second'}})
            await asyncio.sleep(0.01)

        self.assertEqual(received, ['first', 'second'])
        self.assertIs(client.websocket, socket)
        self.assertFalse(socket.closed)
        await client.disconnect()

    async def test_disconnect_during_handshake_drops_new_socket(self):
        socket = FakeWebSocket()
        handshake = asyncio.Event()

        async def slow_connect(url):
            await handshake.wait()
            return socket

        client = RealtimeMessagingClient('ws://chat.test/ws/chat/', 'abc', connect=slow_connect)
        pending = asyncio.create_task(client.connect())
        await asyncio.sleep(0)

        await client.disconnect()
        handshake.set()
        await pending

        self.assertTrue(socket.closed)
        self.assertFalse(client.connected)
        self.assertIsNone(client._listener)
