# tests/conftest.py
"""
Fixtures compartilhados para testes do Branchflow.

Este módulo define fixtures reutilizáveis que fornecem:
- configurações mínimas e determinísticas (YAML e dict resolvido)
- contexto de execução controlado (RunContext)
- stores isolados (memória e disco em tmp_path)

Decisões arquiteturais:
    - Imports do core são realizados de forma lazy para
      melhorar a clareza de erros durante falhas
    - Stores em disco vivem sempre em `tmp_path`
    - `workers: 1` por padrão, para ordem de execução determinística

Invariantes:
    - Nenhuma fixture executa um plano
    - Nenhuma fixture compartilha estado entre testes

Limites explícitos:
    - Não substituir testes de integração (ver tests/e2e)
"""

import pytest
from datetime import datetime, timezone

from tests import _tracking as tracking


# =====================================================
# Estado dos comandos
# =====================================================

@pytest.fixture(autouse=True)
def _reset_tracking():
    """Zera contadores e flags de `tests/_tracking.py` antes de cada teste."""
    tracking.reset()
    yield
    tracking.reset()


# =====================================================
# Config fixtures
# =====================================================

@pytest.fixture
def project_like_config_defaults_yaml() -> str:
    """
    YAML de defaults semelhante a um `branchflow.defaults.yaml` real.

    Usado por:
        - Testes do loader de config
        - Testes de deep-merge (defaults + local)
    """
    return """\
engine:
  workers: 4
  fail_fast: false
  log_level: INFO
store:
  path: _branchflow
"""


@pytest.fixture
def project_like_config_local_yaml() -> str:
    """YAML de override local: muda apenas o que precisa mudar."""
    return """\
engine:
  workers: 1
  log_level: DEBUG
"""


@pytest.fixture
def dummy_config() -> dict:
    """
    Configuração mínima e já resolvida para testes do scheduler.

    Invariantes:
        - `workers == 1` (execução inline, ordem determinística)
        - `fail_fast` desabilitado (política padrão)
    """
    return {
        "engine": {"workers": 1, "fail_fast": False, "log_level": "DEBUG"},
        "store": {"path": "_branchflow"},
    }


@pytest.fixture
def dummy_ctx(dummy_config):
    """
    RunContext determinístico (run_id e created_at fixos).

    O import é lazy para que a falha aponte o módulo ausente.
    """
    from branchflow.core.run_context import RunContext

    return RunContext(
        run_id="run-test-001",
        created_at=datetime(2026, 1, 16, 0, 0, 0, tzinfo=timezone.utc),
        config=dummy_config,
        meta={"source": "pytest"},
    )


# =====================================================
# Store fixtures
# =====================================================

@pytest.fixture
def memory_store():
    from branchflow.persistence import MemoryContentStore

    return MemoryContentStore()


@pytest.fixture
def file_store(tmp_path):
    from branchflow.persistence import FileContentStore

    return FileContentStore(tmp_path / "_branchflow").open()


@pytest.fixture(params=["memory", "file"])
def any_store(request, tmp_path):
    """Parametriza um teste pelas duas implementações de ContentStore."""
    from branchflow.persistence import FileContentStore, MemoryContentStore

    if request.param == "memory":
        return MemoryContentStore()
    return FileContentStore(tmp_path / "_branchflow").open()
