"""HTTP routes for the barbershop backend."""
from __future__ import annotations

from flask import Blueprint, Flask, current_app, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from . import metrics
from .entities import AppointmentStatus
from .errors import BarbershopError, PersistenceFailure, ValidationError
from .extensions import db
from .responses import (booking, changed, display_tz, error_response,
                        json_payload, local_today, now, optional_int,
                        parse_day, repository, snapshot, state)
from .routes_loyalty import bp_loyalty
from .routes_plans import bp_plans
from .search import search as search_index
from .timer import describe

bp = Blueprint("api", __name__)


def register_routes(app: Flask) -> None:
    app.register_blueprint(bp)
    app.register_blueprint(bp_plans)
    app.register_blueprint(bp_loyalty)


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database.
    ---
    tags:
      - Health
    responses:
      200:
        description: Database connection is ok.
      500:
        description: Database connection failed.
    """
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


# ============================================================================
# Clients
# ============================================================================

@bp.get("/clients")
def list_clients() -> tuple[dict[str, object], int]:
    """List clients, newest first.
    ---
    tags:
      - Clients
    parameters:
      - name: search
        in: query
        type: string
        description: Partial match on name or phone
    responses:
      200:
        description: List of clients
    """
    try:
        clients = repository().list_clients(request.args.get("search", "").strip() or None)
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify({"clients": [c.to_dict() for c in clients], "total": len(clients)}), 200


@bp.post("/clients")
def create_client() -> tuple[dict[str, object], int]:
    """Register a client.
    ---
    tags:
      - Clients
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            name:
              type: string
            phone:
              type: string
            email:
              type: string
            notes:
              type: string
          required:
            - name
            - phone
    responses:
      201:
        description: Client created
      400:
        description: Invalid payload
      409:
        description: Phone number already registered
    """
    try:
        payload = json_payload()
        client = repository().create_client(
            name=payload.get("name"),
            phone=payload.get("phone"),
            email=payload.get("email"),
            notes=payload.get("notes"),
        )
    except BarbershopError as exc:
        return error_response(exc)

    changed("clients")
    current_app.logger.info("Registered client %s", client.id)
    return jsonify({"message": "Client created successfully", "client": client.to_dict()}), 201


@bp.get("/clients/<int:client_id>")
def get_client(client_id: int) -> tuple[dict[str, object], int]:
    try:
        client = repository().get_client(client_id)
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify({"client": client.to_dict()}), 200


@bp.put("/clients/<int:client_id>")
def update_client(client_id: int) -> tuple[dict[str, object], int]:
    """Update client contact details.
    ---
    tags:
      - Clients
    responses:
      200:
        description: Client updated
      404:
        description: Client not found
      409:
        description: Phone number already registered
    """
    try:
        payload = json_payload()
        fields = {k: payload[k] for k in ("name", "phone", "email", "notes") if k in payload}
        client = repository().update_client(client_id, **fields)
    except BarbershopError as exc:
        return error_response(exc)

    changed("clients")
    return jsonify({"message": "Client updated successfully", "client": client.to_dict()}), 200


@bp.get("/clients/<int:client_id>/stats")
def get_client_stats(client_id: int) -> tuple[dict[str, object], int]:
    """Visit history summary for one client.
    ---
    tags:
      - Clients
    responses:
      200:
        description: totalAppointments, completedAppointments, totalSpent, lastVisit, favoriteService
      404:
        description: Client not found
    """
    try:
        repository().get_client(client_id)
        stats = metrics.client_stats(snapshot().appointments, client_id)
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify({"client_id": client_id, "stats": stats.to_dict()}), 200


# ============================================================================
# Services
# ============================================================================

@bp.get("/services")
def list_services() -> tuple[dict[str, object], int]:
    """List the service catalog.
    ---
    tags:
      - Services
    parameters:
      - name: include_inactive
        in: query
        type: boolean
        default: false
    responses:
      200:
        description: List of services
    """
    include_inactive = request.args.get("include_inactive", "").lower() in {"1", "true", "yes"}
    try:
        services = repository().list_services(include_inactive=include_inactive)
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify({"services": [s.to_dict() for s in services]}), 200


@bp.post("/services")
def create_service() -> tuple[dict[str, object], int]:
    """Add a service to the catalog.
    ---
    tags:
      - Services
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            name:
              type: string
            price:
              type: number
            duration_minutes:
              type: integer
            description:
              type: string
          required:
            - name
            - price
            - duration_minutes
    responses:
      201:
        description: Service created
      400:
        description: Invalid payload
      409:
        description: A service with this name already exists
    """
    try:
        payload = json_payload()
        service = repository().create_service(
            name=payload.get("name"),
            price=payload.get("price"),
            duration_minutes=payload.get("duration_minutes"),
            description=payload.get("description"),
            active=payload.get("active", True),
        )
    except BarbershopError as exc:
        return error_response(exc)

    changed("services")
    return jsonify({"message": "Service created successfully", "service": service.to_dict()}), 201


@bp.put("/services/<int:service_id>")
def update_service(service_id: int) -> tuple[dict[str, object], int]:
    try:
        payload = json_payload()
        fields = {
            k: payload[k]
            for k in ("name", "price", "duration_minutes", "description", "active")
            if k in payload
        }
        service = repository().update_service(service_id, **fields)
    except BarbershopError as exc:
        return error_response(exc)

    changed("services")
    return jsonify({"message": "Service updated successfully", "service": service.to_dict()}), 200


@bp.delete("/services/<int:service_id>")
def delete_service(service_id: int) -> tuple[dict[str, object], int]:
    """Hide a service from booking; past appointments keep their copy."""
    try:
        service = repository().deactivate_service(service_id)
    except BarbershopError as exc:
        return error_response(exc)

    changed("services")
    return jsonify({"message": "Service deactivated", "service": service.to_dict()}), 200


# ============================================================================
# Appointments
# ============================================================================

@bp.get("/appointments")
def list_appointments() -> tuple[dict[str, object], int]:
    """List appointments, earliest first.
    ---
    tags:
      - Appointments
    parameters:
      - name: date
        in: query
        type: string
        format: date
        description: Local calendar day (YYYY-MM-DD)
      - name: status
        in: query
        type: string
        enum: [scheduled, in_progress, completed, cancelled]
    responses:
      200:
        description: List of appointments
      400:
        description: Invalid filter
    """
    try:
        day = request.args.get("date", "").strip()
        status = request.args.get("status", "").strip()
        appointments = repository().list_appointments(
            day=parse_day(day) if day else None,
            status=AppointmentStatus.parse(status) if status else None,
            tz=display_tz(),
        )
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify({"appointments": [a.to_dict() for a in appointments]}), 200


@bp.post("/appointments")
def create_appointment() -> tuple[dict[str, object], int]:
    """Book an appointment.
    ---
    tags:
      - Appointments
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            client_id:
              type: integer
              description: Omit for a walk-in
            scheduled_date:
              type: string
              format: date-time
            service_type:
              type: string
            price:
              type: number
              description: Defaults to the catalog price of service_type
            created_via:
              type: string
              enum: [manual, external-inbound]
            notes:
              type: string
          required:
            - scheduled_date
            - service_type
    responses:
      201:
        description: Appointment created successfully
      400:
        description: Invalid payload
      404:
        description: Client not found
    """
    try:
        payload = json_payload()
        appointment = booking().book(
            client_id=optional_int(payload.get("client_id"), "client_id"),
            scheduled_date=payload.get("scheduled_date"),
            service_type=payload.get("service_type"),
            price=payload.get("price"),
            channel=payload.get("created_via", payload.get("channel")),
            notes=payload.get("notes"),
        )
    except BarbershopError as exc:
        return error_response(exc)

    changed("appointments")
    return jsonify({"message": "Appointment created successfully", "appointment": appointment.to_dict()}), 201


@bp.get("/appointments/today")
def list_today_appointments() -> tuple[dict[str, object], int]:
    """Today's agenda in the display timezone, with per-status counts."""
    try:
        current = snapshot()
        tz = display_tz()
        today = metrics.appointments_on_date(current.appointments, local_today(), tz)
        summary = metrics.today_summary(current.appointments, now(), tz)
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify({
        "date": local_today().isoformat(),
        "appointments": [a.to_dict() for a in today],
        "summary": summary,
    }), 200


@bp.get("/appointments/<int:appointment_id>")
def get_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    try:
        appointment = repository().get_appointment(appointment_id)
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify({"appointment": appointment.to_dict()}), 200


@bp.put("/appointments/<int:appointment_id>")
def update_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Edit date, service, price or notes of an appointment still open.
    ---
    tags:
      - Appointments
    responses:
      200:
        description: Appointment updated
      400:
        description: Invalid payload, or the appointment is completed/cancelled
      404:
        description: Appointment not found
    """
    try:
        payload = json_payload()
        fields = {
            k: payload[k]
            for k in ("scheduled_date", "service_type", "price", "notes")
            if payload.get(k) is not None
        }
        if not fields:
            raise ValidationError("nothing to update")
        appointment = booking().edit(appointment_id, **fields)
    except BarbershopError as exc:
        return error_response(exc)

    changed("appointments")
    return jsonify({"appointment": appointment.to_dict()}), 200


@bp.delete("/appointments/<int:appointment_id>")
def delete_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    try:
        booking().delete(appointment_id)
    except PersistenceFailure as exc:
        changed("appointments")
        return error_response(exc)
    except BarbershopError as exc:
        return error_response(exc)

    changed("appointments")
    return jsonify({"message": "Appointment deleted"}), 200


@bp.post("/appointments/<int:appointment_id>/start")
def start_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Move a scheduled appointment to in_progress."""
    try:
        appointment = booking().start(appointment_id)
    except BarbershopError as exc:
        return error_response(exc)

    changed("appointments")
    return jsonify({"appointment": appointment.to_dict()}), 200


@bp.post("/appointments/<int:appointment_id>/cancel")
def cancel_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    try:
        appointment = booking().cancel(appointment_id)
    except PersistenceFailure as exc:
        changed("appointments")
        return error_response(exc)
    except BarbershopError as exc:
        return error_response(exc)

    changed("appointments")
    return jsonify({"appointment": appointment.to_dict()}), 200


@bp.post("/appointments/<int:appointment_id>/complete")
def complete_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Finish an in-progress appointment and record the payment.
    ---
    tags:
      - Appointments
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            payment_method:
              type: string
              enum: [cash, card, instant-transfer, bank-transfer]
            final_price:
              type: number
              description: Blank keeps the booked price
            notes:
              type: string
          required:
            - payment_method
    responses:
      200:
        description: Appointment completed
      400:
        description: Invalid price, payment method or status
      404:
        description: Appointment not found
    """
    try:
        payload = json_payload()
        appointment = booking().complete(
            appointment_id,
            payment_method=payload.get("payment_method"),
            final_price=payload.get("final_price"),
            notes=payload.get("notes"),
        )
    except PersistenceFailure as exc:
        # The timer side-store commits after the appointment does.
        changed("appointments")
        return error_response(exc)
    except BarbershopError as exc:
        return error_response(exc)

    changed("appointments")
    return jsonify({"message": "Appointment completed", "appointment": appointment.to_dict()}), 200


# ============================================================================
# Service timer
# ============================================================================

@bp.get("/appointments/<int:appointment_id>/timer")
def get_timer(appointment_id: int) -> tuple[dict[str, object], int]:
    try:
        timer = booking().timer_state(appointment_id)
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify({"appointment_id": appointment_id, "timer": describe(timer)}), 200


@bp.post("/appointments/<int:appointment_id>/timer/start")
def start_timer(appointment_id: int) -> tuple[dict[str, object], int]:
    """Start or resume the service timer.
    ---
    tags:
      - Timer
    responses:
      200:
        description: Running timer; a scheduled appointment is moved to in_progress
      400:
        description: Appointment is completed or cancelled
      404:
        description: Appointment not found
    """
    try:
        appointment, timer = booking().start_timer(appointment_id)
    except BarbershopError as exc:
        return error_response(exc)

    changed("appointments")
    return jsonify({"appointment": appointment.to_dict(), "timer": describe(timer)}), 200


@bp.post("/appointments/<int:appointment_id>/timer/pause")
def pause_timer(appointment_id: int) -> tuple[dict[str, object], int]:
    try:
        timer = booking().pause_timer(appointment_id)
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify({"appointment_id": appointment_id, "timer": describe(timer)}), 200


@bp.post("/appointments/<int:appointment_id>/timer/stop")
def stop_timer(appointment_id: int) -> tuple[dict[str, object], int]:
    """Discard the timer. The appointment keeps its status."""
    try:
        timer = booking().stop_timer(appointment_id)
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify({"appointment_id": appointment_id, "timer": describe(timer)}), 200


# ============================================================================
# Dashboard, revenue and search
# ============================================================================

@bp.get("/dashboard/metrics")
def dashboard_metrics() -> tuple[dict[str, object], int]:
    """Revenue and appointment counts for the dashboard cards.
    ---
    tags:
      - Dashboard
    responses:
      200:
        description: todayRevenue, todayAppointments, weeklyRevenue, monthlyRevenue, completedToday, scheduledToday
    """
    try:
        result = metrics.dashboard_metrics(snapshot().appointments, now(), display_tz())
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify(result.to_dict()), 200


@bp.get("/revenue/summary")
def revenue_summary() -> tuple[dict[str, object], int]:
    """Revenue report for a period.
    ---
    tags:
      - Dashboard
    parameters:
      - name: period
        in: query
        type: string
        enum: [today, week, month, year]
        default: month
    responses:
      200:
        description: Summary plus breakdowns by service, payment method and day
      400:
        description: Unknown period
    """
    period = request.args.get("period", "month").strip().lower()
    try:
        breakdown = metrics.revenue_breakdown(snapshot().appointments, period, now(), display_tz())
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify(breakdown.to_dict()), 200


@bp.get("/search")
def search() -> tuple[dict[str, object], int]:
    """Accent-insensitive search over clients and appointments."""
    query = request.args.get("q", "")
    try:
        current = snapshot()
        results = search_index(
            query,
            current.clients,
            current.appointments,
            limit=current_app.config["SEARCH_RESULT_LIMIT"],
        )
    except BarbershopError as exc:
        return error_response(exc)
    return jsonify({"query": query, "results": [r.to_dict() for r in results]}), 200


@bp.post("/sync/changes")
def sync_changes() -> tuple[dict[str, object], int]:
    """Change notification from the database; marks cached data stale.
    ---
    tags:
      - Sync
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            table:
              type: string
            eventType:
              type: string
    responses:
      200:
        description: Whether the notification invalidated the snapshot
      400:
        description: Invalid payload
    """
    try:
        payload = json_payload()
    except BarbershopError as exc:
        return error_response(exc)
    invalidated = state()["realtime"].handle(payload)
    return jsonify({"invalidated": invalidated}), 200
