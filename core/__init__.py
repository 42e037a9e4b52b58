"""
Core: infraestrutura compartilhada (configuração, conexão, stores, repository base).
"""
