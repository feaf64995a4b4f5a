"""
Install engine: runs a Schema against a connection inside one transaction.
"""

from pymigrate.engine.installer import InstallResult, install
from pymigrate.engine.transaction import Transaction

__all__ = ["InstallResult", "Transaction", "install"]
