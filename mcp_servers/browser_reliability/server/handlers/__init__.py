"""
Tool handlers organized by domain.

All handlers follow the signature: (context, arguments, response) -> None
"""

from .diagnose import DIAGNOSE_HANDLERS
from .dom import DOM_HANDLERS

ALL_HANDLERS = {
    **DOM_HANDLERS,
    **DIAGNOSE_HANDLERS,
}

__all__ = ["ALL_HANDLERS", "DIAGNOSE_HANDLERS", "DOM_HANDLERS"]
