"""
Finance: domínio de transações de cartão (modelos e repositories).
"""
