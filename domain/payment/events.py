"""
Payment domain events.

Dataclass events record payment lifecycle facts for downstream handling
(enrollment creation, notifications). Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PaymentEvent:
    reference_id: str
    course_id: int
    user_id: Optional[int] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentCompleted(PaymentEvent):
    transaction_id: Optional[str] = None


@dataclass
class PaymentFailed(PaymentEvent):
    reason: Optional[str] = None
