# tests/core/traceability/test_manifest.py
"""
Testes do Manifest v1 (traceability).

Os testes asseguram que:
- o Manifest nasce com metadados da run e Event Log vazio
- eventos entram apenas por chamadas explícitas, na ordem de chamada
- helpers `target_*` atualizam o estado por nó e registram o evento
- o Manifest sobrevive a um round-trip JSON sem perda

Limites explícitos:
    - Integração com o Scheduler: ver tests/core/engine e tests/api
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

try:
    from branchflow.core.traceability import (
        RunManifest,
        add_event,
        create_manifest,
        load_manifest,
        save_manifest,
        target_failed,
        target_finished,
        target_skipped,
        target_started,
    )
except Exception as e:
    create_manifest = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


T0 = datetime(2026, 1, 16, 12, 0, 0, tzinfo=timezone.utc)


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(f"""Missing traceability layer. Implement:
- src/branchflow/core/traceability/manifest.py
Import error: {_IMPORT_ERR}
""")


def _manifest():
    return create_manifest(
        run_id="run-test-001",
        started_at=T0,
        branchflow_version="0.1.0",
        config_hash="c" * 64,
        plan_hash="p" * 64,
    )


def test_create_manifest_minimal_structure():
    _require_imports()
    m = _manifest()

    assert m.run == {"run_id": "run-test-001", "started_at": T0.isoformat(), "branchflow_version": "0.1.0"}
    assert m.inputs == {"config_hash": "c" * 64, "plan_hash": "p" * 64}
    assert m.targets == {}
    assert m.events == []


def test_naive_timestamps_are_treated_as_utc():
    _require_imports()
    m = create_manifest(
        run_id="r", started_at=datetime(2026, 1, 16), branchflow_version="0", config_hash="c", plan_hash="p"
    )
    assert m.run["started_at"].endswith("+00:00")


def test_event_log_preserves_call_order():
    _require_imports()
    m = _manifest()

    add_event(m, event_type="run_started", ts=T0)
    add_event(m, event_type="custom", ts=T0 - timedelta(seconds=5), target="raw", payload={"k": 1})

    assert [e["event_type"] for e in m.events] == ["run_started", "custom"]
    assert "target" not in m.events[0]
    assert m.events[1]["target"] == "raw"
    assert m.events[1]["payload"] == {"k": 1}


def test_target_lifecycle_updates_state():
    _require_imports()
    m = _manifest()

    target_started(m, target="raw", kind="static", ts=T0)
    assert m.targets["raw"]["status"] == "running"

    target_finished(
        m,
        target="raw",
        ts=T0 + timedelta(milliseconds=1500),
        result={"status": "built", "summary": "built in 1.500s", "fingerprint": "f"},
    )

    state = m.targets["raw"]
    assert state["status"] == "built"
    assert state["duration_ms"] == 1500
    assert state["fingerprint"] == "f"
    assert [e["event_type"] for e in m.events] == ["target_started", "target_finished"]
    assert m.events[-1]["payload"] == {"status": "built", "duration_ms": 1500}


def test_failed_and_skipped_targets():
    _require_imports()
    m = _manifest()

    target_failed(m, target="model[2]", ts=T0, error={"type": "COMPUTATION_ERROR", "message": "boom"})
    target_skipped(m, target="report", ts=T0, reason="skipped due to failed dependency")
    target_skipped(m, target="late", ts=T0, status="canceled", reason="canceled: run aborted")

    assert m.targets["model[2]"]["error"]["type"] == "COMPUTATION_ERROR"
    assert m.targets["report"]["status"] == "skipped"
    assert m.targets["late"]["status"] == "canceled"
    assert [e["event_type"] for e in m.events] == ["target_failed", "target_skipped", "target_skipped"]


def test_finish_without_start_has_zero_duration():
    _require_imports()
    m = _manifest()

    target_finished(m, target="raw", ts=T0, result={"status": "cached"})

    assert m.targets["raw"]["duration_ms"] == 0
    assert m.targets["raw"]["status"] == "cached"


def test_round_trip(tmp_path):
    _require_imports()
    m = _manifest()
    target_started(m, target="raw", kind="static", ts=T0)
    target_finished(m, target="raw", ts=T0, result={"status": "built", "fingerprint": "f"})

    path = tmp_path / "sub" / "manifest.json"
    save_manifest(m, path)

    loaded = load_manifest(path)
    assert isinstance(loaded, RunManifest)
    assert loaded.to_dict() == m.to_dict()
    assert json.loads(path.read_text(encoding="utf-8"))["run"]["run_id"] == "run-test-001"
    assert RunManifest.from_dict({}).to_dict() == {"run": {}, "inputs": {}, "targets": {}, "events": []}
