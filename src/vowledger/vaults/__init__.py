from vowledger.vaults.http import HttpVault

__all__ = ["HttpVault"]
