# src/branchflow/core/config/__init__.py
"""
Camada de configuração do Branchflow.

Responsabilidades do pacote:
    - Carregamento de arquivos de configuração (defaults + overrides locais)
    - Resolução de configuração final via deep-merge determinístico
    - Geração de hash canônico para rastreabilidade (Manifest)
    - Validação das opções do scheduler (`EngineSettings`)

Invariantes:
    - A configuração final é um dicionário puro (dict)
    - A mesma entrada sempre produz a mesma configuração final
    - Conflitos estruturais são tratados como erro
"""

from .errors import (
    ConfigError,
    ConfigTypeConflictError,
    DefaultsNotFoundError,
    InvalidConfigRootTypeError,
    UnsupportedConfigFormatError,
)
from .hashing import compute_config_hash
from .loader import DEFAULT_CONFIG, load_config, read_config_file
from .merge import deep_merge
from .settings import EngineSettings

__all__ = [
    "ConfigError",
    "ConfigTypeConflictError",
    "DefaultsNotFoundError",
    "InvalidConfigRootTypeError",
    "UnsupportedConfigFormatError",
    "compute_config_hash",
    "DEFAULT_CONFIG",
    "load_config",
    "read_config_file",
    "deep_merge",
    "EngineSettings",
]
