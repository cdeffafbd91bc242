"""Unit Solidarité ledger: loans, treasury fund and fines."""
