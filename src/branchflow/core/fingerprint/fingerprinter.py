# src/branchflow/core/fingerprint/fingerprinter.py
"""
Fingerprinting canônico de targets e sub-targets.

O fingerprint decide se o valor em cache de um nó ainda é válido:
fingerprint idêntico ⇒ o valor armazenado é reutilizado sem recomputação.

Política (v1), em ordem fixa:
    1. hash do comando (fonte + bytecode + constantes + defaults + closure +
       globais referenciados, mais o padrão dinâmico e o formato)
    2. fingerprints das dependências diretas, ordenados pelo nome
       (arquivos rastreados entram como `file:<path>` com o hash do conteúdo)
    3. para sub-targets, o digest da fatia de entrada atribuída ao índice

O fingerprint é o SHA-256 do JSON canônico dessa receita. A receita é
guardada no store junto do valor, o que permite detectar colisões.

Invariantes:
    - Mesma entrada ⇒ mesmo fingerprint, entre processos e execuções
    - Qualquer mudança em uma parte da receita muda o fingerprint
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import json
import os
import pickle
import sys
import sysconfig
import textwrap
import types
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import joblib
import numpy as np
import pandas as pd

from branchflow.core.plan.types import Target


FINGERPRINT_VERSION = "branchflow/v1"


def _sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def canonical_json(obj: Any) -> str:
    """JSON canônico: chaves ordenadas, separadores compactos, UTF-8."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


# ---------------------------------------------------------------------------
# Valores
# ---------------------------------------------------------------------------

def hash_value(value: Any) -> str:
    """
    SHA-256 determinístico do conteúdo de um valor.

    - pandas DataFrame/Series: hash por linha (`hash_pandas_object`) +
      nomes de colunas e dtypes
    - numpy ndarray: dtype, shape e bytes
    - valores serializáveis em JSON: JSON canônico
    - demais objetos: `joblib.hash`

    Cada ramo usa um prefixo próprio, então codificações diferentes nunca
    colidem entre si.
    """
    if isinstance(value, pd.DataFrame):
        try:
            rows = pd.util.hash_pandas_object(value, index=True).to_numpy()
        except TypeError:
            pass
        else:
            header = canonical_json(
                [[str(c) for c in value.columns], [str(d) for d in value.dtypes]]
            )
            return _sha256(b"pandas.DataFrame\0" + header.encode("utf-8") + b"\0" + rows.tobytes())

    if isinstance(value, pd.Series):
        try:
            rows = pd.util.hash_pandas_object(value, index=True).to_numpy()
        except TypeError:
            pass
        else:
            header = canonical_json([str(value.name), str(value.dtype)])
            return _sha256(b"pandas.Series\0" + header.encode("utf-8") + b"\0" + rows.tobytes())

    if isinstance(value, np.ndarray) and not value.dtype.hasobject:
        header = f"{value.dtype.str}{value.shape}".encode("utf-8")
        return _sha256(b"numpy.ndarray\0" + header + b"\0" + np.ascontiguousarray(value).tobytes())

    try:
        text = canonical_json(value)
    except (TypeError, ValueError):
        pass
    else:
        return _sha256(b"json\0" + text.encode("utf-8"))

    return _sha256(b"joblib\0" + joblib.hash(value, hash_name="sha1").encode("ascii"))


def hash_file(path: Union[str, Path]) -> str:
    """SHA-256 do conteúdo do arquivo (leitura em blocos)."""
    h = hashlib.sha256()
    with Path(path).open("rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


# ---------------------------------------------------------------------------
# Comandos
# ---------------------------------------------------------------------------

def _const_part(const: Any, seen: set) -> Any:
    if isinstance(const, types.CodeType):
        return _code_parts(const, seen)
    if isinstance(const, (frozenset, set)):
        return ["set", sorted(repr(c) for c in const)]
    return repr(const)


def _code_parts(code: types.CodeType, seen: set) -> List[Any]:
    return [
        code.co_code.hex(),
        [_const_part(c, seen) for c in code.co_consts],
        list(code.co_names),
        list(code.co_varnames),
    ]


def _library_roots() -> Tuple[str, ...]:
    paths = sysconfig.get_paths()
    roots = {str(Path(paths[k]).resolve()) for k in ("stdlib", "platstdlib", "purelib", "platlib") if k in paths}
    return tuple(sorted(roots))


_LIBRARY_ROOTS = _library_roots()


def _is_library(obj: Any) -> bool:
    """Objeto definido na stdlib ou em pacote instalado (entra no hash só pelo nome)."""
    name = getattr(obj, "__module__", None)
    module = sys.modules.get(name) if name else None
    if module is None or name == "__main__":
        return False
    filename = getattr(module, "__file__", None)
    if filename is None:
        return True
    resolved = str(Path(filename).resolve())
    return any(resolved.startswith(root + os.sep) for root in _LIBRARY_ROOTS)


def _data_part(value: Any) -> Any:
    try:
        return hash_value(value)
    except (TypeError, AttributeError, pickle.PicklingError):
        # locks, conexões e afins: só o tipo entra
        return ["opaque", f"{type(value).__module__}.{type(value).__qualname__}"]


def _class_part(cls: type) -> List[Any]:
    if _is_library(cls):
        return ["class", cls.__module__, cls.__qualname__]
    try:
        source: Optional[str] = textwrap.dedent(inspect.getsource(cls))
    except (OSError, TypeError):
        source = None
    return ["class", cls.__module__, cls.__qualname__, source]


def _object_part(value: Any, seen: set) -> Any:
    if isinstance(value, types.ModuleType):
        return ["module", value.__name__]
    if isinstance(value, type):
        return _class_part(value)
    if isinstance(value, types.FunctionType) and _is_library(value):
        return ["library", value.__module__, value.__qualname__]
    if callable(value) and (hasattr(value, "__code__") or isinstance(value, functools.partial)):
        return _callable_parts(value, seen)
    if isinstance(value, (types.BuiltinFunctionType, np.ufunc)):
        return ["builtin", getattr(value, "__module__", None), getattr(value, "__qualname__", value.__name__)]
    return _data_part(value)


def _callable_parts(fn: Any, seen: set) -> List[Any]:
    if id(fn) in seen:
        return ["recursive", getattr(fn, "__qualname__", type(fn).__name__)]
    seen = seen | {id(fn)}

    if isinstance(fn, functools.partial):
        return [
            "partial",
            _callable_parts(fn.func, seen),
            [_object_part(a, seen) for a in fn.args],
            {k: _object_part(v, seen) for k, v in (fn.keywords or {}).items()},
        ]

    code = getattr(fn, "__code__", None)
    if code is None:
        call = getattr(type(fn), "__call__", None)
        qualname = f"{type(fn).__module__}.{type(fn).__qualname__}"
        if call is not None and hasattr(call, "__code__"):
            state = getattr(fn, "__dict__", None)
            return ["object", qualname, _code_parts(call.__code__, seen), _data_part(state)]
        return ["builtin", getattr(fn, "__module__", None), getattr(fn, "__qualname__", qualname)]

    try:
        source: Optional[str] = textwrap.dedent(inspect.getsource(fn))
    except (OSError, TypeError):
        source = None

    closure: List[Any] = []
    for cell in getattr(fn, "__closure__", None) or ():
        try:
            contents = cell.cell_contents
        except ValueError:
            closure.append(None)
        else:
            closure.append(_object_part(contents, seen))

    return [
        "function",
        source,
        _code_parts(code, seen),
        [_object_part(d, seen) for d in (getattr(fn, "__defaults__", None) or ())],
        {k: _object_part(v, seen) for k, v in (getattr(fn, "__kwdefaults__", None) or {}).items()},
        closure,
        _global_parts(fn, code, seen),
    ]


def _global_names(code: types.CodeType) -> List[str]:
    names = list(code.co_names)
    for const in code.co_consts:
        if isinstance(const, types.CodeType):
            names.extend(_global_names(const))
    return names


def _global_parts(fn: Any, code: types.CodeType, seen: set) -> Dict[str, Any]:
    """
    Globais do módulo referenciados pelo comando.

    Nomes não declarados como targets são dependências de ambiente: dados
    entram pelo conteúdo, funções e classes de usuário pelo código, e
    módulos, bibliotecas e builtins apenas pelo nome.
    """
    namespace = getattr(fn, "__globals__", None) or {}
    parts: Dict[str, Any] = {}
    for name in sorted(set(_global_names(code))):
        if name in namespace:
            parts[name] = _object_part(namespace[name], seen)
    return parts


def hash_command(target: Target) -> str:
    parts = [
        FINGERPRINT_VERSION,
        "command",
        _callable_parts(target.command, set()),
        target.pattern.describe() if target.pattern is not None else None,
        target.format.value,
    ]
    return _sha256(canonical_json(parts).encode("utf-8"))


# ---------------------------------------------------------------------------
# Fingerprinter
# ---------------------------------------------------------------------------

class Fingerprinter:
    """
    Calcula receitas e fingerprints de targets, sub-targets e targets dinâmicos.

    O hash de comando é memorizado por nome de target durante a vida da
    instância (uma run).
    """

    def __init__(self) -> None:
        self._commands: Dict[str, str] = {}

    def command_hash(self, target: Target) -> str:
        h = self._commands.get(target.name)
        if h is None:
            h = hash_command(target)
            self._commands[target.name] = h
        return h

    def file_dependencies(self, target: Target) -> Dict[str, str]:
        return {f"file:{p}": hash_file(p) for p in target.file_inputs}

    def recipe(
        self,
        target: Target,
        dependencies: Mapping[str, str],
        slice_digest: Optional[str] = None,
    ) -> List[Any]:
        deps = dict(dependencies)
        deps.update(self.file_dependencies(target))
        return [
            FINGERPRINT_VERSION,
            self.command_hash(target),
            [[name, deps[name]] for name in sorted(deps)],
            slice_digest,
        ]

    @staticmethod
    def of(recipe: Sequence[Any]) -> str:
        return _sha256(canonical_json(list(recipe)).encode("utf-8"))

    def fingerprint(
        self,
        target: Target,
        dependencies: Mapping[str, str],
        slice_digest: Optional[str] = None,
    ) -> Tuple[str, List[Any]]:
        """Retorna `(fingerprint, receita)` de um target ou sub-target."""
        recipe = self.recipe(target, dependencies, slice_digest)
        return self.of(recipe), recipe

    @staticmethod
    def dynamic(branch_fingerprints: Sequence[str]) -> str:
        """Fingerprint de um target dinâmico visto por seus consumidores."""
        return _sha256(canonical_json([FINGERPRINT_VERSION, "dynamic", list(branch_fingerprints)]).encode("utf-8"))

    @staticmethod
    def slice_digest(parts: Any) -> str:
        return _sha256(canonical_json([FINGERPRINT_VERSION, "slice", parts]).encode("utf-8"))
