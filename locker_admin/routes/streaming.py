"""Server-Sent-Events plumbing shared by the realtime admin endpoints."""
import datetime
import json
import logging
import queue
import threading

from flask import Response, stream_with_context
from flask.json.provider import DefaultJSONProvider

from .. import config
from ..errors import LockerAdminError
from ..services.live_store import LiveStore

_logger = logging.getLogger(__name__)
_logger.setLevel(logging.INFO)

KEEPALIVE_MESSAGE = "data: {\"event\": \"keepalive\"}\n\n"


def json_default(value):
    """JSON encoder fallback: ISO-8601 datetimes, str() for store sentinels."""
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    return str(value)


class IsoJSONProvider(DefaultJSONProvider):
    """Flask JSON provider that writes datetimes as ISO-8601 like the streams do."""

    @staticmethod
    def default(o):
        return json_default(o)


def sse_message(payload: dict) -> str:
    """Format payload as SSE data string.
    Uses only the 'data' field for simplicity; clients parse JSON.
    """
    try:
        return f"data: {json.dumps(payload, default=json_default)}\n\n"
    except (TypeError, ValueError) as e:
        _logger.error(f"Could not encode SSE payload: {str(e)}")
        return "data: {\"success\": false}\n\n"


def live_event_stream(repo, collections, compute, key: str,
                      keepalive_seconds: int = None, max_messages: int = None):
    """
    Stream ``compute(slots)`` as ``{'success': True, key: view}`` events every
    time one of ``collections`` changes. All listeners are unsubscribed when
    the client disconnects.

    ``max_messages`` ends the stream after that many data events.
    """
    keepalive_seconds = keepalive_seconds or config.SSE_KEEPALIVE_SECONDS

    def gen():
        q = queue.Queue(maxsize=100)
        stop_event = threading.Event()

        def push(message):
            try:
                q.put_nowait(message)
            except queue.Full:
                _logger.warning('SSE queue full; dropping update')

        def on_view(view):
            push(sse_message({
                'success': True,
                key: view,
                'meta': {'read_time': datetime.datetime.utcnow().isoformat() + 'Z'},
            }))

        def on_error(name, error):
            message = error.message if isinstance(error, LockerAdminError) else str(error)
            push(sse_message({'success': False, 'error': message, 'collection': name}))

        store = LiveStore(repo, collections, compute, on_view, on_error)
        try:
            store.start()
        except LockerAdminError as e:
            push(sse_message({'success': False, 'error': f'watch-init: {e.message}', 'code': e.code}))
            stop_event.set()

        def keepalive():
            while not stop_event.wait(keepalive_seconds):
                push(KEEPALIVE_MESSAGE)

        ka_thread = threading.Thread(target=keepalive, daemon=True)
        ka_thread.start()

        sent = 0
        try:
            while True:
                try:
                    msg = q.get(timeout=1.0)
                except queue.Empty:
                    if stop_event.is_set():
                        break
                    continue
                yield msg
                if msg != KEEPALIVE_MESSAGE:
                    sent += 1
                if max_messages is not None and sent >= max_messages:
                    break
        finally:
            stop_event.set()
            store.stop()

    return Response(stream_with_context(gen()), mimetype='text/event-stream')
