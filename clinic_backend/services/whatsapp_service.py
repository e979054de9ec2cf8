"""
WhatsApp notifications through the DoubleTick template API.

Sending never raises: failures are logged and reported as ``False`` so a
notification problem cannot undo a booking.
"""

import logging
from typing import Optional

import httpx

from clinic_backend.core import config
from clinic_backend.scheduling.appointment_status import generate_meeting_link

logger = logging.getLogger(__name__)

BOOKING_CONFIRMATION_TEMPLATE = "appointment_booking_confirmation"
VIDEO_REMINDER_TEMPLATE = "video_consultation_15min_reminder"

TIME_LABEL_FORMAT = "%I:%M %p"
DATE_LABEL_FORMAT = "%A, %B %d, %Y"


def send_whatsapp_template(
    to_phone: str,
    template_name: str,
    variables: list[str],
    client: Optional[httpx.Client] = None,
) -> bool:
    """
    Send a pre-approved WhatsApp template message.

    Args:
        to_phone: Recipient phone number
        template_name: DoubleTick template name
        variables: Positional template values ({{1}}, {{2}}, ...)
        client: Optional HTTP client, mainly for tests

    Returns:
        True when the provider accepted the message
    """
    if not config.DOUBLETICK_API_KEY:
        logger.warning("DOUBLETICK_API_KEY is not configured; skipping %s", template_name)
        return False

    if not to_phone:
        logger.debug("No phone number provided for %s", template_name)
        return False

    payload = {
        "to": to_phone,
        "template_name": template_name,
        "body_values": variables,
    }
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {config.DOUBLETICK_API_KEY}",
    }

    try:
        if client is not None:
            response = client.post(config.DOUBLETICK_API_URL, json=payload, headers=headers)
        else:
            response = httpx.post(
                config.DOUBLETICK_API_URL,
                json=payload,
                headers=headers,
                timeout=config.DOUBLETICK_TIMEOUT_SECONDS,
            )
    except httpx.HTTPError as exc:
        logger.warning("WhatsApp send failed for %s: %s", template_name, exc)
        return False

    if response.is_error:
        logger.warning(
            "WhatsApp provider rejected %s with status %s: %s",
            template_name,
            response.status_code,
            response.text,
        )
        return False

    return True


def send_booking_confirmation(appointment, patient, doctor) -> bool:
    variables = [
        patient.full_name,
        doctor.full_name,
        appointment.start_time.strftime(DATE_LABEL_FORMAT),
        appointment.start_time.strftime(TIME_LABEL_FORMAT),
    ]
    if appointment.mode == "video":
        variables.append(generate_meeting_link(appointment.id))

    return send_whatsapp_template(patient.phone, BOOKING_CONFIRMATION_TEMPLATE, variables)


def send_video_reminder(appointment, patient, doctor) -> bool:
    variables = [
        patient.full_name,
        doctor.full_name,
        appointment.start_time.strftime(TIME_LABEL_FORMAT),
        generate_meeting_link(appointment.id),
    ]
    return send_whatsapp_template(patient.phone, VIDEO_REMINDER_TEMPLATE, variables)
