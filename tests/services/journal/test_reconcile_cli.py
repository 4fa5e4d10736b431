import json
from types import SimpleNamespace

import services.journal.reconcile as reconcile
from services.journal.storage import BackendLink


def _reports(out):
    # stdout may also carry log records; reports are the objects with "indexed"
    reports = []
    for line in out.splitlines():
        try:
            obj = json.loads(line)
        except ValueError:
            continue
        if isinstance(obj, dict) and "indexed" in obj:
            reports.append(obj)
    return reports


def _patch_link(monkeypatch, factory):
    monkeypatch.setattr(reconcile, "configure_logging", lambda *a, **k: None)
    monkeypatch.setattr(
        reconcile,
        "BackendLink",
        SimpleNamespace(from_settings=lambda settings: BackendLink(factory, base_delay=0)),
    )


def test_rebuilds_index_for_each_owner(monkeypatch, capsys, client_factory, raw):
    entry = {
        "id": "e1",
        "owner": "u1",
        "title": "Day 1",
        "content": "Hello",
        "mood": "neutral",
        "tags": [],
        "createdAt": "2024-01-01T12:00:00Z",
        "updatedAt": "2024-01-01T12:00:00Z",
    }
    raw.set("journal:u1:entry:e1", json.dumps(entry))
    raw.set("journal:u2:entries", json.dumps([{**entry, "id": "stale"}]))
    _patch_link(monkeypatch, client_factory)

    assert reconcile.main(["u1", "u2"]) == 0

    lines = _reports(capsys.readouterr().out)
    assert lines[0] == {"owner": "u1", "indexed": 1, "added": ["e1"], "removed": []}
    assert lines[1] == {"owner": "u2", "indexed": 0, "added": [], "removed": ["stale"]}
    assert [r["id"] for r in json.loads(raw.get("journal:u1:entries"))] == ["e1"]
    assert json.loads(raw.get("journal:u2:entries")) == []


def test_exits_non_zero_when_backend_unreachable(monkeypatch, capsys, down_redis):
    _patch_link(monkeypatch, lambda: down_redis)

    assert reconcile.main(["u1"]) == 1
    assert _reports(capsys.readouterr().out) == []
    down_redis.aclose.assert_awaited()
