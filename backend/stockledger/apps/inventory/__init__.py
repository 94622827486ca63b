"""
Inventory module.

Holds current item state and the ledger services that mutate it, each
mutation paired with its audit transaction.
"""

from .router import router  # noqa: F401
from . import models  # noqa: F401
