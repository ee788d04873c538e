# src/branchflow/core/__init__.py
"""
Core do Branchflow.

Componentes principais:
    - config       → resolução de configuração (merge, hashing, EngineSettings)
    - plan         → declaração de targets e PlanGraph
    - fingerprint  → hashing canônico de valores, comandos e arquivos
    - dynamic      → expansão map/cross/combine e agregação
    - engine       → Scheduler e resultados de run
    - traceability → Manifest e Event Log

Princípios fundamentais:
    - Nenhuma decisão silenciosa: todo comportamento é explícito e testado
    - O store é passado explicitamente; não há estado global de sessão
"""
