from .credits_api import router, ledger_exception_handler

__all__ = ["router", "ledger_exception_handler"]
