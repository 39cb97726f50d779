from .credit_repository import CreditRepository

__all__ = ["CreditRepository"]
