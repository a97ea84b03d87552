"""Vault export/import."""

from .vault_export import VaultExporter

__all__ = ["VaultExporter"]
