"""
Per-station debounce for scanner callbacks.

A camera decoder fires the same payload many times per second while a badge
is in view. A ScanStation drops a payload that arrives while a check-in for
that same payload is still running at the station, so one physical scan
makes one round-trip. Other codes go through. Duplicate counting is
prevented by the database either way.
"""

import threading
from contextlib import contextmanager

# Longest station id a client may send
MAX_STATION_ID_LENGTH = 64


def _payload_key(payload):
    if isinstance(payload, str):
        return payload.strip()
    return repr(payload)


class ScanStation:
    """In-flight payloads for one scanning device."""

    def __init__(self, station_id=None):
        self.station_id = station_id
        self._lock = threading.Lock()
        self._in_flight = set()

    @property
    def busy(self):
        with self._lock:
            return bool(self._in_flight)

    def begin(self, payload):
        """Mark a payload in flight. False if it already was."""
        key = _payload_key(payload)
        with self._lock:
            if key in self._in_flight:
                return False
            self._in_flight.add(key)
            return True

    def finish(self, payload):
        with self._lock:
            self._in_flight.discard(_payload_key(payload))

    def handle_decoded(self, service, payload, actor_id=None):
        """
        Run a check-in for a decoded payload unless the same one is in flight.

        Returns:
            CheckInResult, or None if the payload was dropped

        Raises:
            CodeValidationError: If the payload is blank
        """
        if not self.begin(payload):
            return None
        try:
            return service.check_in(payload, actor_id)
        finally:
            self.finish(payload)


class ScanStationRegistry:
    """
    Stations keyed by id.

    A station exists only while a request holds it, so the registry stays
    as small as the number of scans in progress.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._stations = {}
        self._holders = {}

    @contextmanager
    def checkout(self, station_id):
        with self._lock:
            station = self._stations.get(station_id)
            if station is None:
                station = ScanStation(station_id)
                self._stations[station_id] = station
            self._holders[station_id] = self._holders.get(station_id, 0) + 1
        try:
            yield station
        finally:
            with self._lock:
                self._holders[station_id] -= 1
                if self._holders[station_id] == 0:
                    del self._holders[station_id]
                    del self._stations[station_id]

    def __len__(self):
        with self._lock:
            return len(self._stations)
