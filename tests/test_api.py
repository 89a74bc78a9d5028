import json
from datetime import datetime, timezone
from ipaddress import ip_address

from limavm.api import Event, Info, IPPort


def test_ipport_str_v4():
    assert str(IPPort(ip_address("127.0.0.1"), 80)) == "127.0.0.1:80"


def test_ipport_str_v6():
    assert str(IPPort(ip_address("::1"), 22)) == "[::1]:22"


def test_ipport_round_trip():
    p = IPPort(ip_address("fe80::70a6:57ff:fe71:c75d"), 8080)
    d = p.to_dict()
    assert d["port"] == 8080
    assert IPPort.from_dict(d) == p


def test_info_round_trip_json():
    info = Info(local_ports=[IPPort(ip_address("0.0.0.0"), 22), IPPort(ip_address("127.0.0.1"), 5000)])
    text = json.dumps(info.to_dict())
    assert "localPorts" in json.loads(text)
    assert Info.from_dict(json.loads(text)) == info


def test_event_empty_ignores_time():
    assert Event(time=datetime.now(timezone.utc)).is_empty() is True
    assert Event(errors=["boom"]).is_empty() is False
    assert Event(local_ports_removed=[IPPort(ip_address("127.0.0.1"), 1)]).is_empty() is False


def test_event_omits_empty_fields():
    ev = Event(time=datetime(2023, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
    d = ev.to_dict()
    assert set(d) == {"time"}
    assert d["time"].endswith("Z")


def test_event_round_trip():
    ev = Event(
        time=datetime(2023, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc),
        local_ports_added=[IPPort(ip_address("127.0.0.1"), 8080)],
        errors=["e1"],
    )
    assert Event.from_dict(json.loads(json.dumps(ev.to_dict()))) == ev


def test_event_parses_nanoseconds():
    ev = Event.from_dict({"time": "2023-01-02T03:04:05.123456789Z"})
    assert ev.time.microsecond == 123456
    assert ev.time.tzinfo is not None
    assert ev.time.utcoffset().total_seconds() == 0