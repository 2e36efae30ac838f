"""Workers package: background reconciliation of debts left without a linked transaction."""
