"""Serialização canônica de valores de targets por formato (v1).

Decisões (v1):
- `default`: joblib (qualquer objeto Python serializável)
- `table`: pandas.DataFrame em CSV (sem índice)
- `file`: JSON com os caminhos retornados pelo comando e o SHA-256 do
  conteúdo de cada arquivo; o valor lido de volta é o(s) caminho(s)

Limites explícitos:
- Não escolhe formato por conta própria (o target declara)
- Não lê conteúdo de arquivos de usuário além do hash
"""

from __future__ import annotations

import io
import json
import os
from pathlib import Path
from typing import Any, Dict, List

import joblib
import pandas as pd

from branchflow.core.fingerprint import hash_file
from branchflow.core.plan.types import TargetFormat


def _file_paths(value: Any) -> List[str]:
    if isinstance(value, (str, os.PathLike)):
        return [os.fspath(value)]
    if isinstance(value, (list, tuple)) and all(isinstance(v, (str, os.PathLike)) for v in value):
        return [os.fspath(v) for v in value]
    raise TypeError(
        f"format 'file' requires a path or a list of paths, received {type(value).__name__}"
    )


def serialize(value: Any, fmt: TargetFormat) -> bytes:
    fmt = TargetFormat(fmt)

    if fmt is TargetFormat.TABLE:
        if not isinstance(value, pd.DataFrame):
            raise TypeError(
                f"format 'table' requires a pandas.DataFrame, received {type(value).__name__}"
            )
        return value.to_csv(index=False).encode("utf-8")

    if fmt is TargetFormat.FILE:
        paths = _file_paths(value)
        missing = [p for p in paths if not Path(p).is_file()]
        if missing:
            raise FileNotFoundError(f"Output file(s) not found: {', '.join(missing)}")
        doc = {
            "single": isinstance(value, (str, os.PathLike)),
            "files": [{"path": p, "sha256": hash_file(p)} for p in paths],
        }
        return json.dumps(doc, sort_keys=True).encode("utf-8")

    buf = io.BytesIO()
    joblib.dump(value, buf)
    return buf.getvalue()


def deserialize(data: bytes, fmt: TargetFormat) -> Any:
    fmt = TargetFormat(fmt)

    if fmt is TargetFormat.TABLE:
        return pd.read_csv(io.BytesIO(data))

    if fmt is TargetFormat.FILE:
        doc = json.loads(data.decode("utf-8"))
        paths = [f["path"] for f in doc["files"]]
        return paths[0] if doc.get("single") else paths

    return joblib.load(io.BytesIO(data))


def tracked_files(data: bytes) -> List[Dict[str, str]]:
    """Arquivos registrados por um valor de formato `file`."""
    return list(json.loads(data.decode("utf-8"))["files"])


def files_unchanged(data: bytes) -> bool:
    """True quando todos os arquivos registrados existem com o mesmo conteúdo."""
    for f in tracked_files(data):
        p = Path(f["path"])
        if not p.is_file() or hash_file(p) != f["sha256"]:
            return False
    return True


__all__ = ["serialize", "deserialize", "tracked_files", "files_unchanged"]
