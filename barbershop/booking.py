"""Appointment workflows: the status machine applied through the repository."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from . import lifecycle
from .entities import Appointment, AppointmentStatus, Channel, TimerState, utc_now
from .repository import BarbershopRepository
from .timer import ServiceTimer

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 30


class BookingService:
    def __init__(
        self,
        repository: BarbershopRepository,
        timer: ServiceTimer,
        clock: Callable[[], datetime] = utc_now,
        default_duration_minutes: int = DEFAULT_DURATION_MINUTES,
    ) -> None:
        self.repository = repository
        self.timer = timer
        self.clock = clock
        self.default_duration_minutes = default_duration_minutes

    def book(
        self,
        client_id: int | None,
        scheduled_date: object,
        service_type: str,
        price: object = None,
        channel: object = Channel.MANUAL,
        notes: str | None = None,
    ) -> Appointment:
        """Create a scheduled appointment.

        Without an explicit price the catalog price of ``service_type`` is
        copied; later catalog edits do not affect the booking.
        """
        if price is None or price == "":
            service = self.repository.find_service(service_type.strip()) if isinstance(service_type, str) else None
            price = service.price if service is not None else price
        appointment = lifecycle.create(
            client_id, scheduled_date, service_type, price, channel, notes, now=self.clock()
        )
        saved = self.repository.add_appointment(appointment)
        logger.info(
            "Booked appointment %s for %s (%s)",
            saved.id, saved.client_id or "walk-in", saved.channel.value,
        )
        return saved

    def start(self, appointment_id: int) -> Appointment:
        appointment = self.repository.get_appointment(appointment_id)
        return self.repository.save_appointment(lifecycle.start(appointment, now=self.clock()))

    def cancel(self, appointment_id: int) -> Appointment:
        appointment = self.repository.get_appointment(appointment_id)
        cancelled = self.repository.save_appointment(lifecycle.cancel(appointment))
        self.timer.clear(appointment_id)
        logger.info("Cancelled appointment %s", appointment_id)
        return cancelled

    def complete(
        self,
        appointment_id: int,
        payment_method: object,
        final_price: object = None,
        notes: str | None = None,
    ) -> Appointment:
        appointment = self.repository.get_appointment(appointment_id)
        completed = lifecycle.complete(
            appointment, payment_method, final_price, notes, now=self.clock()
        )
        saved = self.repository.save_completion(completed)
        self.timer.clear(appointment_id)
        logger.info(
            "Completed appointment %s: %s via %s",
            appointment_id, saved.price, saved.payment_method.value,
        )
        return saved

    def edit(self, appointment_id: int, **changes: object) -> Appointment:
        appointment = self.repository.get_appointment(appointment_id)
        return self.repository.save_appointment(lifecycle.reschedule(appointment, **changes))

    def delete(self, appointment_id: int) -> None:
        self.repository.delete_appointment(appointment_id)
        self.timer.clear(appointment_id)

    def target_seconds(self, appointment: Appointment) -> int:
        service = self.repository.find_service(appointment.service_type)
        minutes = service.duration_minutes if service is not None else self.default_duration_minutes
        return minutes * 60

    def start_timer(self, appointment_id: int) -> tuple[Appointment, TimerState]:
        """Start or resume the service timer, starting the appointment if needed."""
        appointment = self.repository.get_appointment(appointment_id)
        if appointment.status is AppointmentStatus.SCHEDULED:
            appointment = self.repository.save_appointment(
                lifecycle.start(appointment, now=self.clock())
            )
        elif appointment.status is not AppointmentStatus.IN_PROGRESS:
            # Terminal appointments never get a timer.
            lifecycle.start(appointment)
        state = self.timer.start(appointment_id, self.target_seconds(appointment))
        return appointment, state

    def pause_timer(self, appointment_id: int) -> TimerState:
        self.repository.get_appointment(appointment_id)
        return self.timer.pause(appointment_id)

    def stop_timer(self, appointment_id: int) -> TimerState:
        self.repository.get_appointment(appointment_id)
        return self.timer.stop(appointment_id)

    def timer_state(self, appointment_id: int) -> TimerState:
        appointment = self.repository.get_appointment(appointment_id)
        return self.timer.state(appointment_id, self.target_seconds(appointment))
