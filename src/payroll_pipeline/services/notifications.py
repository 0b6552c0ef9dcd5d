"""Payslip-ready notifications."""

from __future__ import annotations

import calendar
import logging
import re
from typing import Protocol

from payroll_pipeline.calculators.money import format_inr
from payroll_pipeline.events import AsyncEventEmitter, DomainEvent, PayslipReady

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def is_valid_contact_address(email: str | None) -> bool:
    if not email:
        return False
    return _EMAIL_PATTERN.match(email.strip()) is not None


def payslip_subject(month: int, year: int) -> str:
    return f"Your Payslip for {calendar.month_name[month]} {year} is Ready"


class PayslipNotifier(Protocol):
    """Delivers one payslip-ready message; may raise on delivery failure."""

    async def notify(self, event: PayslipReady) -> None: ...


class LoggingPayslipNotifier:
    """Writes the message to the log instead of sending it."""

    async def notify(self, event: PayslipReady) -> None:
        logger.info(
            "%s -> %s <%s>: net pay %s",
            payslip_subject(event.month, event.year),
            event.employee_name,
            event.email,
            format_inr(event.net_payable_paise),
        )


def register_notifier(emitter: AsyncEventEmitter, notifier: PayslipNotifier) -> None:
    """Deliver every ``PayslipReady`` event through ``notifier``."""

    async def _deliver(event: DomainEvent) -> None:
        if isinstance(event, PayslipReady):
            await notifier.notify(event)

    emitter.on(PayslipReady, _deliver)
