import threading

import pytest

from qr_checkin.errors import CodeValidationError
from qr_checkin.services.scan_station import ScanStation, ScanStationRegistry


class SlowService:
    """Blocks inside check_in until released."""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()
        self.calls = []

    def check_in(self, code, actor_id=None):
        self.calls.append(code)
        self.entered.set()
        self.release.wait(timeout=5)
        return 'done'


class EchoService:
    def check_in(self, code, actor_id=None):
        if not isinstance(code, str) or not code.strip():
            raise CodeValidationError()
        return (code, actor_id)


def test_repeat_of_in_flight_code_is_dropped():
    station = ScanStation('gate-1')
    service = SlowService()
    results = []

    worker = threading.Thread(target=lambda: results.append(station.handle_decoded(service, 'GUEST-1')))
    worker.start()
    assert service.entered.wait(timeout=5)

    assert station.busy
    assert station.handle_decoded(service, 'GUEST-1') is None
    assert station.handle_decoded(service, ' GUEST-1 ') is None

    service.release.set()
    worker.join(timeout=5)

    assert results == ['done']
    assert service.calls == ['GUEST-1']
    assert not station.busy


def test_other_code_goes_through_while_busy():
    station = ScanStation('gate-1')
    assert station.begin('GUEST-1')

    assert station.handle_decoded(EchoService(), 'GUEST-2') == ('GUEST-2', None)

    station.finish('GUEST-1')
    assert not station.busy


def test_station_accepts_next_scan_after_result():
    station = ScanStation()
    service = EchoService()

    assert station.handle_decoded(service, 'A', actor_id='staff-1') == ('A', 'staff-1')
    assert station.handle_decoded(service, 'A') == ('A', None)


def test_station_is_released_after_validation_error():
    station = ScanStation()

    with pytest.raises(CodeValidationError):
        station.handle_decoded(EchoService(), '   ')
    with pytest.raises(CodeValidationError):
        station.handle_decoded(EchoService(), ['not', 'text'])

    assert not station.busy


def test_registry_shares_station_while_held():
    registry = ScanStationRegistry()

    with registry.checkout('gate-1') as outer:
        with registry.checkout('gate-1') as inner:
            assert inner is outer
        with registry.checkout('gate-2') as other:
            assert other is not outer
            assert len(registry) == 2
        assert len(registry) == 1

    assert len(registry) == 0


def test_registry_releases_station_after_error():
    registry = ScanStationRegistry()

    with pytest.raises(CodeValidationError):
        with registry.checkout('gate-1') as station:
            station.handle_decoded(EchoService(), '')

    assert len(registry) == 0
