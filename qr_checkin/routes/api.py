"""
API routes for live dashboards.

Includes:
- Server-sent event stream of guest and attendance changes
"""

import json
import queue
from flask import Blueprint, Response, current_app, request

from qr_checkin.routes.auth import staff_required

api_bp = Blueprint('api', __name__, url_prefix='/api')

# Seconds between keep-alive comments on an idle stream
KEEPALIVE_SECONDS = 15
MAX_PENDING_EVENTS = 100
WATCHED_TABLES = ('guests', 'attendance')


def event_stream(feed, tables, keepalive=KEEPALIVE_SECONDS):
    """Yield SSE frames for feed events until the client disconnects."""
    pending = queue.Queue(maxsize=MAX_PENDING_EVENTS)

    def on_change(event):
        try:
            pending.put_nowait(event)
        except queue.Full:
            # Slow client, drop the event
            pass

    unsubscribe = feed.subscribe(on_change, tables=tables)
    try:
        yield 'retry: 3000\n\n'
        while True:
            try:
                event = pending.get(timeout=keepalive)
            except queue.Empty:
                yield ': keep-alive\n\n'
                continue
            yield f"event: {event.table}\ndata: {json.dumps(event.to_dict())}\n\n"
    finally:
        unsubscribe()


@api_bp.route('/changes')
@staff_required
def changes():
    """
    Stream insert/update/delete events for dashboards.

    Query params:
        table: Restrict to 'guests' or 'attendance' (repeatable)
    """
    tables = [t for t in request.args.getlist('table') if t in WATCHED_TABLES] or list(WATCHED_TABLES)
    feed = current_app.extensions['change_feed']
    return Response(
        event_stream(feed, tables),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'}
    )
