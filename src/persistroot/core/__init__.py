# src/persistroot/core/__init__.py
"""
Core do persistroot.

Componentes principais:
    - config       → resolução de configuração (merge, validação estrutural, hashing)
    - table        → tipos e validação da tabela de persistência
    - boot         → contexto de execução e resultados por unidade
    - engine       → planner, Mounter, Reconciler e Engine de boot
    - fs           → acesso ao host (mount, umount, mountinfo, zfs)
    - traceability → Manifest e Event Log para auditoria e análise forense

Princípios fundamentais:
    - Nenhuma decisão silenciosa: todo conflito resolvido vira warning
    - Erros estruturais são detectados antes de tocar o filesystem
    - Estado e efeitos colaterais são sempre rastreáveis

Limites explícitos:
    - Não depende da CLI
"""
