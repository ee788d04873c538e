# src/branchflow/core/config/errors.py
"""
Erros estruturais de configuração (load e merge).

Não são falhas de targets: acontecem antes de qualquer run e nunca viram
ErrorPayload. Todos herdam de `ConfigError`.
"""


class ConfigError(Exception):
    """Base dos erros de carregamento e resolução de configuração."""


class DefaultsNotFoundError(ConfigError):
    """Um arquivo de configuração informado explicitamente não existe."""


class UnsupportedConfigFormatError(ConfigError):
    """Extensão fora de .yaml, .yml e .json."""


class InvalidConfigRootTypeError(ConfigError):
    """Uma camada de configuração não é um mapeamento (`dict`)."""


class ConfigTypeConflictError(ConfigError):
    """
    Uma camada troca o tipo de uma chave existente.

    Ex.: `{"engine": {"workers": 4}}` seguido de `{"engine": "fast"}`.
    Nenhum resultado parcial é produzido.
    """
