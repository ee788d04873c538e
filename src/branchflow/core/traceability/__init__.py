# src/branchflow/core/traceability/__init__.py
"""
Rastreabilidade do Branchflow — Manifest v1.

API pública:
    - RunManifest      → estrutura canônica do Manifest
    - create_manifest  → criação explícita do Manifest
    - add_event        → registro explícito no Event Log
    - target_started / target_finished / target_failed / target_skipped
    - save_manifest / load_manifest → persistência JSON
"""

from .manifest import (
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

__all__ = [
    "RunManifest",
    "add_event",
    "create_manifest",
    "load_manifest",
    "save_manifest",
    "target_failed",
    "target_finished",
    "target_skipped",
    "target_started",
]
