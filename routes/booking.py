from flask import Blueprint, current_app, g, jsonify, request

from utils.auth_context import login_required, notify_target

booking_bp = Blueprint("booking", __name__, url_prefix="/bookings")


def _service():
    return current_app.extensions["booking_service"]


def _iso(value):
    return value.isoformat() if value else None


def _booking_json(b):
    return {
        "id": b.id,
        "user_id": b.user_id,
        "service_type": b.service_type,
        "scheduled_at": _iso(b.scheduled_at),
        "formatted_date": _service().format_date(b),
        "status": b.status,
        "cancelled_at": _iso(b.cancelled_at),
        "created_at": _iso(b.created_at),
        "updated_at": _iso(b.updated_at),
    }


def _notice_json(notice):
    if notice is None:
        return None
    return {"delivered": notice.delivered, "error": notice.error}


# ---------- reads ----------
@booking_bp.get("")
@login_required
def list_bookings():
    rows = _service().list_bookings(g.user.user_id)
    return jsonify(success=True, message="Bookings retrieved", bookings=[_booking_json(b) for b in rows]), 200


@booking_bp.get("/upcoming")
@login_required
def upcoming_bookings():
    rows = _service().list_upcoming(g.user.user_id)
    return jsonify(success=True, message="Upcoming bookings retrieved", bookings=[_booking_json(b) for b in rows]), 200


@booking_bp.get("/cancelled")
@login_required
def cancelled_bookings():
    rows = _service().list_cancelled(g.user.user_id)
    return jsonify(success=True, message="Cancelled bookings retrieved", bookings=[_booking_json(b) for b in rows]), 200


@booking_bp.get("/<booking_id>")
@login_required
def get_booking(booking_id: str):
    booking = _service().get_booking(booking_id, g.user.user_id)
    if not booking:
        return jsonify(success=False, error="Booking not found", booking=None), 404
    return jsonify(success=True, booking=_booking_json(booking)), 200


# ---------- mutations ----------
@booking_bp.post("")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}

    outcome = _service().create_booking(
        g.user.user_id,
        data.get("scheduled_at"),
        data.get("service_type"),
        notify_target=notify_target,
    )
    return jsonify(
        success=True,
        message="Booking created",
        booking=_booking_json(outcome.booking),
        notification=_notice_json(outcome.notice),
    ), 201


@booking_bp.post("/<booking_id>/cancel")
@login_required
def cancel_booking(booking_id: str):
    outcome = _service().cancel_booking(booking_id, g.user.user_id, notify_target=notify_target)
    return jsonify(
        success=True,
        message="Booking cancelled",
        booking=_booking_json(outcome.booking),
        notification=_notice_json(outcome.notice),
    ), 200


@booking_bp.delete("/<booking_id>")
@login_required
def delete_booking(booking_id: str):
    booking = _service().delete_booking(booking_id, g.user.user_id)
    return jsonify(success=True, message="Booking deleted", booking=_booking_json(booking)), 200
