"""Store canônica endereçada por conteúdo (v1).

O ContentStore é a única fonte de verdade de fingerprints e valores:

- objetos: chave = fingerprint, valor = bytes serializados + tag de formato
- ponteiros "current": chave = nome do target (ou sub-target), valor =
  registro com o fingerprint atual e metadados

Decisões (v1):
- Toda entrada guarda o SHA-256 dos bytes; `get` verifica e levanta
  IntegrityError em caso de divergência (entrada corrompida)
- `put` de uma chave existente com receita diferente é colisão de
  fingerprint (IntegrityError)
- Escritas concorrentes usam chaves disjuntas (um nó por chave); a ordem
  happens-before entre escrita e leitura é garantida pelo scheduler

Implementações:
- `MemoryContentStore`: dicionários protegidos por lock
- `FileContentStore`: diretório `objects/` + `targets/`, com escrita
  atômica (arquivo temporário + rename), sem escritas parciais
"""

from __future__ import annotations

import hashlib
import json
import os
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from branchflow.core.exceptions import IntegrityError
from branchflow.core.fingerprint import canonical_json
from branchflow.core.plan.types import TargetFormat


@dataclass(frozen=True)
class StoreEntry:
    """Metadados de um objeto persistido."""

    key: str
    format: str
    sha256: str
    bytes: int
    recipe: Optional[List[Any]] = None
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoreEntry":
        return cls(
            key=data["key"],
            format=data["format"],
            sha256=data["sha256"],
            bytes=int(data.get("bytes", 0)),
            recipe=data.get("recipe"),
            created_at=data.get("created_at"),
        )


class ContentStore(ABC):
    """Contrato do store + lógica comum de integridade."""

    # ------------------------------------------------------------------
    # Primitivas de armazenamento
    # ------------------------------------------------------------------
    @abstractmethod
    def _write_object(self, key: str, data: bytes, entry: Dict[str, Any]) -> None: ...

    @abstractmethod
    def _read_object(self, key: str) -> bytes: ...

    @abstractmethod
    def _read_entry(self, key: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def _delete_object(self, key: str) -> None: ...

    @abstractmethod
    def keys(self) -> List[str]: ...

    @abstractmethod
    def _write_pointer(self, name: str, record: Dict[str, Any]) -> None: ...

    @abstractmethod
    def _read_pointer(self, name: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def _delete_pointer(self, name: str) -> None: ...

    @abstractmethod
    def current_names(self) -> List[str]: ...

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------
    def open(self) -> "ContentStore":
        return self

    def close(self) -> None:
        return None

    def __enter__(self) -> "ContentStore":
        return self.open()

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Objetos
    # ------------------------------------------------------------------
    def put(
        self,
        key: str,
        data: bytes,
        format_tag: str,
        recipe: Optional[Sequence[Any]] = None,
    ) -> StoreEntry:
        digest = hashlib.sha256(data).hexdigest()
        existing = self.entry(key)
        if existing is not None:
            if (
                recipe is not None
                and existing.recipe is not None
                and canonical_json(list(recipe)) != canonical_json(existing.recipe)
            ):
                raise IntegrityError(
                    message=f"Fingerprint collision on key {key}",
                    details={"key": key, "stored_recipe": existing.recipe, "new_recipe": list(recipe)},
                    hint="Apague o store afetado; colisões não são recuperadas automaticamente.",
                )
            # primeiro escritor vence, exceto para `file`: o payload registra
            # arquivos externos e a gravação mais recente é a que vale
            if existing.sha256 == digest or str(format_tag) != TargetFormat.FILE.value:
                return existing

        entry = StoreEntry(
            key=key,
            format=str(format_tag),
            sha256=digest,
            bytes=len(data),
            recipe=list(recipe) if recipe is not None else None,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self._write_object(key, data, entry.to_dict())
        return entry

    def entry(self, key: str) -> Optional[StoreEntry]:
        raw = self._read_entry(key)
        return StoreEntry.from_dict(raw) if raw is not None else None

    def exists(self, key: str) -> bool:
        return self._read_entry(key) is not None

    def get(self, key: str) -> bytes:
        entry = self.entry(key)
        if entry is None:
            raise KeyError(key)
        try:
            data = self._read_object(key)
        except (KeyError, FileNotFoundError):
            raise IntegrityError(
                message=f"Store entry {key} has metadata but no payload",
                details={"key": key},
            ) from None
        if hashlib.sha256(data).hexdigest() != entry.sha256:
            raise IntegrityError(
                message=f"Corrupted store entry {key}",
                details={"key": key, "expected_sha256": entry.sha256},
                hint="Invalide o target afetado ou apague o store.",
            )
        return data

    def delete(self, key: str) -> None:
        self._delete_object(key)

    # ------------------------------------------------------------------
    # Ponteiros "current"
    # ------------------------------------------------------------------
    def set_current(self, name: str, record: Dict[str, Any]) -> None:
        self._write_pointer(name, dict(record, name=name))

    def current(self, name: str) -> Optional[Dict[str, Any]]:
        return self._read_pointer(name)

    def drop_current(self, name: str) -> None:
        self._delete_pointer(name)

    def list_subtarget_keys(self, parent_name: str) -> List[str]:
        record = self.current(parent_name)
        if record is None:
            return []
        return list(record.get("children") or [])


class MemoryContentStore(ContentStore):
    """Store em memória; útil para testes e sessões interativas."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._objects: Dict[str, bytes] = {}
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._pointers: Dict[str, Dict[str, Any]] = {}

    def _write_object(self, key: str, data: bytes, entry: Dict[str, Any]) -> None:
        with self._lock:
            self._objects[key] = bytes(data)
            self._entries[key] = json.loads(json.dumps(entry))

    def _read_object(self, key: str) -> bytes:
        with self._lock:
            return self._objects[key]

    def _read_entry(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._entries.get(key)
            return dict(entry) if entry is not None else None

    def _delete_object(self, key: str) -> None:
        with self._lock:
            self._objects.pop(key, None)
            self._entries.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._entries)

    def _write_pointer(self, name: str, record: Dict[str, Any]) -> None:
        with self._lock:
            self._pointers[name] = json.loads(json.dumps(record))

    def _read_pointer(self, name: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._pointers.get(name)
            return json.loads(json.dumps(record)) if record is not None else None

    def _delete_pointer(self, name: str) -> None:
        with self._lock:
            self._pointers.pop(name, None)

    def current_names(self) -> List[str]:
        with self._lock:
            return sorted(self._pointers)


class FileContentStore(ContentStore):
    """Store em disco.

    Layout (relativo a `root`):
        objects/<kk>/<key>        bytes do valor
        objects/<kk>/<key>.json   StoreEntry
        targets/<name>.json       ponteiro "current"
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    @property
    def objects_dir(self) -> Path:
        return self.root / "objects"

    @property
    def targets_dir(self) -> Path:
        return self.root / "targets"

    @property
    def manifest_path(self) -> Path:
        return self.root / "manifest.json"

    def open(self) -> "FileContentStore":
        self.objects_dir.mkdir(parents=True, exist_ok=True)
        self.targets_dir.mkdir(parents=True, exist_ok=True)
        return self

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------
    def _object_path(self, key: str) -> Path:
        return self.objects_dir / key[:2] / key

    def _entry_path(self, key: str) -> Path:
        return self.objects_dir / key[:2] / f"{key}.json"

    def _pointer_path(self, name: str) -> Path:
        return self.targets_dir / f"{name}.json"

    @staticmethod
    def _atomic_write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            with tmp.open("wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        finally:
            if tmp.exists():
                tmp.unlink()

    # ------------------------------------------------------------------
    # Objetos
    # ------------------------------------------------------------------
    def _write_object(self, key: str, data: bytes, entry: Dict[str, Any]) -> None:
        # payload antes da entrada: entrada presente implica payload presente
        self._atomic_write(self._object_path(key), data)
        self._atomic_write(self._entry_path(key), json.dumps(entry, sort_keys=True).encode("utf-8"))

    def _read_object(self, key: str) -> bytes:
        return self._object_path(key).read_bytes()

    def _read_entry(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._entry_path(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            raise IntegrityError(
                message=f"Corrupted store metadata for {key}",
                details={"key": key, "path": str(path)},
            ) from None

    def _delete_object(self, key: str) -> None:
        for path in (self._entry_path(key), self._object_path(key)):
            if path.exists():
                path.unlink()

    def keys(self) -> List[str]:
        if not self.objects_dir.exists():
            return []
        return sorted(p.stem for p in self.objects_dir.glob("*/*.json"))

    # ------------------------------------------------------------------
    # Ponteiros
    # ------------------------------------------------------------------
    def _write_pointer(self, name: str, record: Dict[str, Any]) -> None:
        self._atomic_write(self._pointer_path(name), json.dumps(record, sort_keys=True).encode("utf-8"))

    def _read_pointer(self, name: str) -> Optional[Dict[str, Any]]:
        path = self._pointer_path(name)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            raise IntegrityError(
                message=f"Corrupted store pointer for {name}",
                details={"target": name, "path": str(path)},
            ) from None

    def _delete_pointer(self, name: str) -> None:
        path = self._pointer_path(name)
        if path.exists():
            path.unlink()

    def current_names(self) -> List[str]:
        if not self.targets_dir.exists():
            return []
        return sorted(p.stem for p in self.targets_dir.glob("*.json"))


__all__ = ["StoreEntry", "ContentStore", "MemoryContentStore", "FileContentStore"]
