"""Unit of Work port"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.payment.repository import PaymentRepository


class AbstractUnitOfWork(ABC):
    """Transaction boundary used by application services"""

    payment_repository: PaymentRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.payment_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        elif not self._readonly and not self._committed:
            await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...
