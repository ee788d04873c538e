# src/branchflow/core/config/loader.py
"""
Resolução da configuração efetiva do Branchflow.

Camadas, da menor para a maior prioridade:
    1. `DEFAULT_CONFIG` embutido
    2. arquivo de defaults do projeto (`defaults_path`, obrigatório se informado)
    3. arquivo local (`local_path`, ignorado se não existir no disco)
    4. overrides em memória (ex.: `make(config=...)`)

Cada camada é aplicada com `deep_merge`; o resultado é um dict novo e a
mesma entrada sempre produz a mesma configuração.

Limites explícitos:
    - Não valida semântica das opções (ver `EngineSettings`)
    - Não interage com o Scheduler
"""

import json
from copy import deepcopy
from pathlib import Path
from typing import Any, Callable, Dict, IO, Optional, Union

import yaml  # PyYAML

from .errors import (
    DefaultsNotFoundError,
    InvalidConfigRootTypeError,
    UnsupportedConfigFormatError,
)
from .merge import deep_merge


DEFAULT_CONFIG: Dict[str, Any] = {
    "engine": {
        # None -> os.cpu_count()
        "workers": None,
        "fail_fast": False,
        "log_level": "INFO",
    },
    "store": {
        "path": "_branchflow",
    },
}

_PARSERS: Dict[str, Callable[[IO[str]], Any]] = {
    ".yaml": yaml.safe_load,
    ".yml": yaml.safe_load,
    ".json": json.load,
}


def _as_layer(data: Any, origin: str) -> Dict[str, Any]:
    # arquivo vazio (YAML) equivale a nenhuma opção
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidConfigRootTypeError(
            f"{origin}: a raiz da configuração deve ser dict, recebido {type(data).__name__}"
        )
    return data


def read_config_file(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Lê uma camada de configuração em YAML (.yaml/.yml) ou JSON (.json).

    Raises:
        DefaultsNotFoundError: arquivo inexistente.
        UnsupportedConfigFormatError: extensão desconhecida.
        InvalidConfigRootTypeError: raiz do documento não é um mapeamento.
    """
    path = Path(path)
    if not path.is_file():
        raise DefaultsNotFoundError(f"Arquivo de configuração não encontrado: {path}")

    parser = _PARSERS.get(path.suffix.lower())
    if parser is None:
        raise UnsupportedConfigFormatError(
            f"Formato não suportado: {path.suffix or '(sem extensão)'}; use {', '.join(sorted(_PARSERS))}"
        )

    with path.open("r", encoding="utf-8") as f:
        return _as_layer(parser(f), str(path))


def load_config(
    *,
    defaults_path: Optional[Union[str, Path]] = None,
    local_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Resolve a configuração efetiva a partir das camadas descritas no módulo.

    Raises:
        DefaultsNotFoundError: `defaults_path` informado e inexistente.
        UnsupportedConfigFormatError: extensão de arquivo desconhecida.
        InvalidConfigRootTypeError: camada que não é um dicionário.
        ConfigTypeConflictError: conflito de tipos entre camadas.
    """
    layers = []
    if defaults_path is not None:
        layers.append(read_config_file(defaults_path))
    if local_path is not None and Path(local_path).exists():
        layers.append(read_config_file(local_path))
    if overrides:
        layers.append(_as_layer(overrides, "overrides"))

    effective = deepcopy(DEFAULT_CONFIG)
    for layer in layers:
        effective = deep_merge(effective, layer)
    return effective
