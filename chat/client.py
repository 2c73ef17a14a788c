"""
Asyncio client for the chat WebSocket.

Usage:
    python -m chat.client --token <firebase id token> [--url ws://localhost:8000/ws/chat/]

To get a Firebase token:
1. Open the web app in a browser and sign in
2. Open DevTools Console
3. Run: firebase.auth().currentUser.getIdToken().then(token => console.log(token))
"""
import asyncio
import json
import logging
import os
from urllib.parse import urlencode

import websockets
import websockets.exceptions

logger = logging.getLogger(__name__)

EVENTS = (
    'message', 'typing', 'stop_typing', 'user_online', 'user_offline',
    'chat_update', 'error',
)


class RealtimeMessagingClient:
    """
    Keeps one socket open, dispatches incoming frames to the callbacks
    registered with ``on`` and reconnects with exponential backoff when the
    connection drops.
    """

    INITIAL_RECONNECT_DELAY = 1
    MAX_RECONNECT_DELAY = 30
    MAX_RECONNECT_ATTEMPTS = 5
    TYPING_TIMEOUT = 3

    def __init__(self, url, token, connect=None):
        self.url = url
        self.token = token
        self.handlers = {event: [] for event in EVENTS}
        self.websocket = None
        self.reconnect_attempts = 0
        self.should_reconnect = True
        self._connect = connect or websockets.connect
        self._listener = None
        self._typing_timers = {}

    @property
    def connected(self):
        return self.websocket is not None

    def on(self, event, callback):
        """Register ``callback(payload)``; coroutine functions are awaited."""
        self.handlers.setdefault(event, []).append(callback)

    def off(self, event, callback):
        if callback in self.handlers.get(event, []):
            self.handlers[event].remove(callback)

    def reconnect_delay(self, attempt):
        return min(self.INITIAL_RECONNECT_DELAY * 2 ** attempt, self.MAX_RECONNECT_DELAY)

    def _socket_url(self):
        separator = '&' if '?' in self.url else '?'
        return f"{self.url}{separator}{urlencode({'token': self.token})}"

    async def connect(self):
        self.should_reconnect = True
        return await self._open()

    async def _open(self):
        websocket = await self._connect(self._socket_url())
        if not self.should_reconnect:
            # disconnect() ran during the handshake
            await websocket.close()
            return self
        self.websocket = websocket
        self.reconnect_attempts = 0
        logger.info(f"Connected to {self.url}")
        self._listener = asyncio.create_task(self._listen(websocket))
        return self

    async def _listen(self, websocket):
        try:
            async for raw in websocket:
                try:
                    frame = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"Ignoring malformed frame: {raw[:100]}")
                    continue
                if not isinstance(frame, dict):
                    logger.warning(f"Ignoring frame that is not an object: {raw[:100]}")
                    continue
                await self._dispatch(frame)
        except websockets.exceptions.ConnectionClosed as e:
            logger.info(f"Connection closed: {e}")
        except Exception as e:
            logger.error(f"Listener stopped: {e}", exc_info=True)
            await websocket.close()
        finally:
            if self.websocket is websocket:
                self.websocket = None
        if self.should_reconnect:
            await self._reconnect()

    async def _reconnect(self):
        while self.should_reconnect and self.reconnect_attempts < self.MAX_RECONNECT_ATTEMPTS:
            delay = self.reconnect_delay(self.reconnect_attempts)
            self.reconnect_attempts += 1
            logger.info(
                f"Reconnecting in {delay}s "
                f"(attempt {self.reconnect_attempts} of {self.MAX_RECONNECT_ATTEMPTS})"
            )
            await asyncio.sleep(delay)
            if not self.should_reconnect:
                return
            try:
                await self._open()
                return
            except (OSError, websockets.exceptions.WebSocketException) as e:
                logger.warning(f"Reconnect failed: {e}")

        if self.should_reconnect:
            self.should_reconnect = False
            await self._dispatch({'type': 'error', 'payload': {'message': 'Unable to reconnect'}})

    async def _dispatch(self, frame):
        event = frame.get('type')
        callbacks = self.handlers.get(event)
        if not callbacks:
            logger.debug(f"No handler for {event}")
            return
        for callback in list(callbacks):
            try:
                result = callback(frame.get('payload') or {})
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Handler for {event} failed: {e}", exc_info=True)

    async def send(self, message_type, payload=None):
        if self.websocket is None:
            raise ConnectionError("Not connected")
        await self.websocket.send(json.dumps({'type': message_type, 'payload': payload or {}}))

    async def send_message(self, chat_id, content, type='TEXT', reply_to=None, attachments=None):
        if chat_id in self._typing_timers:
            await self.stop_typing(chat_id)
        payload = {'chat_id': str(chat_id), 'content': content, 'type': type}
        if reply_to:
            payload['reply_to'] = str(reply_to)
        if attachments:
            payload['attachments'] = attachments
        await self.send('send_message', payload)

    async def join_chat(self, chat_id):
        await self.send('join_chat', {'chat_id': str(chat_id)})

    async def leave_chat(self, chat_id):
        await self.send('leave_chat', {'chat_id': str(chat_id)})

    async def mark_read(self, chat_id):
        await self.send('mark_read', {'chat_id': str(chat_id)})

    async def ping(self):
        await self.send('ping')

    async def start_typing(self, chat_id):
        """Send ``typing`` once and stop it automatically after TYPING_TIMEOUT seconds of quiet."""
        timer = self._typing_timers.pop(chat_id, None)
        if timer is None:
            await self.send('typing', {'chat_id': str(chat_id)})
        else:
            timer.cancel()
        self._typing_timers[chat_id] = asyncio.create_task(self._auto_stop_typing(chat_id))

    async def _auto_stop_typing(self, chat_id):
        await asyncio.sleep(self.TYPING_TIMEOUT)
        await self.stop_typing(chat_id)

    async def stop_typing(self, chat_id):
        timer = self._typing_timers.pop(chat_id, None)
        if timer is None:
            return
        if timer is not asyncio.current_task():
            timer.cancel()
        if self.connected:
            await self.send('stop_typing', {'chat_id': str(chat_id)})

    async def disconnect(self):
        """Close the socket for good; no reconnect follows."""
        self.should_reconnect = False
        for timer in self._typing_timers.values():
            timer.cancel()
        self._typing_timers.clear()

        websocket, self.websocket = self.websocket, None
        if websocket is not None:
            await websocket.close()
        if self._listener is not None and self._listener is not asyncio.current_task():
            await asyncio.gather(self._listener, return_exceptions=True)
            self._listener = None


async def run(url, token):
    client = RealtimeMessagingClient(url, token)
    for event in EVENTS:
        client.on(event, lambda payload, event=event: print(f"[{event}] {json.dumps(payload)}"))

    try:
        await client.connect()
    except (OSError, websockets.exceptions.WebSocketException) as e:
        print(f"❌ Connection error: {e}")
        print("\nMake sure:")
        print("1. Django server is running with Daphne: daphne -b 0.0.0.0 -p 8000 backend.asgi:application")
        print("2. Redis is running (or USE_INMEMORY_CHANNELS=true)")
        print("3. You have a valid Firebase token")
        return

    print("✓ Connected, listening for events (Ctrl+C to stop)")
    try:
        while client.connected or client.should_reconnect:
            await asyncio.sleep(1)
    finally:
        await client.disconnect()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description='Listen to chat events over WebSocket')
    parser.add_argument('--token', type=str, default=os.getenv('FIREBASE_TOKEN'),
                        help='Firebase token (or set FIREBASE_TOKEN env var)')
    parser.add_argument('--url', type=str, default=os.getenv('WS_URL', 'ws://localhost:8000/ws/chat/'),
                        help='WebSocket URL (or set WS_URL env var)')
    args = parser.parse_args()

    if not args.token:
        parser.error("a Firebase token is required")

    logging.basicConfig(level=logging.INFO)
    try:
        asyncio.run(run(args.url, args.token))
    except KeyboardInterrupt:
        pass
