import pytest
from conftest import FakeClock
from db.database import SessionLocal
from db.models import DbBlocked_Device, DbThreat_Event
from security.config import ThreatConfig
from security.detectors import DetectionContext
from security.recorder import ThreatEventRecorder
from security.threat_service import ThreatDetectionService


def _ctx(fp="fp-rec"):
    return DetectionContext(ip="10.0.0.5", user_agent="curl/8.4", path="/admin/login", fingerprint=fp)


@pytest.fixture
def service(recorder):
    return ThreatDetectionService(ThreatConfig(), recorder=recorder, clock=FakeClock())


def test_flush_persists_threat_events(service, recorder, db):
    event = service.detect_threats(_ctx())
    assert recorder.pending() == 1

    assert recorder.flush() == 1
    assert recorder.written == 1

    row = db.query(DbThreat_Event).filter(DbThreat_Event.ID == event.id).first()
    assert row is not None
    assert row.Type == "scraping"
    assert row.Severity == "medium"
    assert row.Source_IP == "10.0.0.5"
    assert row.Blocked is False


def test_block_and_unblock_rows(service, recorder, db):
    service.block("fp-rec", "manual", {"by": "admin"})
    service.unblock("fp-rec")
    service.block("fp-rec", "again")
    recorder.flush()

    rows = db.query(DbBlocked_Device).filter(DbBlocked_Device.Device_Fingerprint == "fp-rec").all()
    assert len(rows) == 2
    assert sorted(r.Is_Active for r in rows) == [False, True]
    inactive = [r for r in rows if not r.Is_Active][0]
    assert inactive.Unblocked_At is not None


def test_automatic_block_is_persisted(service, recorder, db):
    service.record_blocked_access(_ctx("fp-auto"))
    recorder.flush()

    events = db.query(DbThreat_Event).filter(DbThreat_Event.Device_Fingerprint == "fp-auto").all()
    assert len(events) == 1 and events[0].Blocked is True
    blocked = db.query(DbBlocked_Device).filter(DbBlocked_Device.Is_Active == True).all()
    assert [b.Device_Fingerprint for b in blocked] == ["fp-auto"]


class FailingSession:
    """Session giả: mọi thao tác ghi đều lỗi"""

    def add(self, obj):
        raise RuntimeError("db down")

    def close(self):
        pass


def test_failed_write_is_counted_not_raised(service):
    recorder = ThreatEventRecorder(FailingSession, maxsize=10, max_retries=2, retry_sleep=0)
    recorder.record_event(service.record_blocked_access(_ctx()))

    assert recorder.flush() == 1
    assert recorder.failed == 1
    assert recorder.written == 0


def test_full_queue_drops_jobs(service):
    recorder = ThreatEventRecorder(SessionLocal, maxsize=2, max_retries=1, retry_sleep=0)
    event = service.record_blocked_access(_ctx())

    results = [recorder.record_event(event) for _ in range(4)]

    assert results == [True, True, False, False]
    assert recorder.dropped == 2
    assert recorder.pending() == 2


def test_background_worker_writes_and_stops(service, db):
    recorder = ThreatEventRecorder(SessionLocal, maxsize=10, max_retries=1, retry_sleep=0)
    recorder.start()
    event = service.record_blocked_access(_ctx("fp-bg"))
    recorder.record_event(event)
    recorder.stop()

    assert recorder.written == 1
    assert db.query(DbThreat_Event).filter(DbThreat_Event.ID == event.id).count() == 1
