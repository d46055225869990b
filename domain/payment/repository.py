"""
Payment repository port - what the domain needs from persistence, not how
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import PaymentIntent, PaymentStatus


class PaymentRepository(ABC):

    @abstractmethod
    async def create(self, intent: PaymentIntent) -> PaymentIntent:
        """Persist a new intent together with its installments"""
        pass

    @abstractmethod
    async def get_by_reference_id(self, reference_id: str) -> Optional[PaymentIntent]:
        pass

    @abstractmethod
    async def list_by_user(
        self,
        user_id: int,
        status: Optional[PaymentStatus] = None,
        limit: int = 100,
    ) -> List[PaymentIntent]:
        pass

    @abstractmethod
    async def update(self, intent: PaymentIntent) -> PaymentIntent:
        """Persist status, gateway references and installment payment flags"""
        pass
