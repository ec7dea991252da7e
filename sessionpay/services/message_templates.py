"""
WhatsApp message copy (Spanish)
Session times are rendered in the practice time zone.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from ..config import PRACTICE_TIMEZONE

DAY_NAMES = ["lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo"]
MONTH_NAMES = [
    "enero",
    "febrero",
    "marzo",
    "abril",
    "mayo",
    "junio",
    "julio",
    "agosto",
    "septiembre",
    "octubre",
    "noviembre",
    "diciembre",
]

PAYMENT_REMINDER = "payment_reminder"
LATE_PAYMENT_REMINDER = "late_payment_reminder"
COURTESY_REMINDER = "courtesy_reminder"
MEET_LINK = "meet_link"
PAYMENT_CONFIRMATION = "payment_confirmation"


def to_local(value: datetime, tz_name: str = PRACTICE_TIMEZONE) -> datetime:
    """Convert a naive UTC datetime to the practice time zone"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(ZoneInfo(tz_name))


def format_session_date(value: datetime, tz_name: str = PRACTICE_TIMEZONE) -> str:
    """e.g. "martes 14 de mayo a las 18:00" """
    local = to_local(value, tz_name)
    return (
        f"{DAY_NAMES[local.weekday()]} {local.day} de {MONTH_NAMES[local.month - 1]} "
        f"a las {local.strftime('%H:%M')}"
    )


def format_session_time(value: datetime, tz_name: str = PRACTICE_TIMEZONE) -> str:
    return to_local(value, tz_name).strftime("%H:%M")


def payment_reminder(patient_name: str, session_date: datetime, payment_link: str) -> str:
    return (
        f"Hola {patient_name}!\n\n"
        f"Tienes sesión programada para el {format_session_date(session_date)}.\n\n"
        "Para confirmar tu asistencia, completa el pago en el siguiente enlace:\n"
        f"{payment_link}\n\n"
        "Una vez confirmado el pago, recibirás el link de videollamada 15 minutos antes. ¡Gracias!"
    )


def late_payment_reminder(patient_name: str, session_date: datetime, payment_link: str) -> str:
    return (
        f"Hola {patient_name},\n\n"
        f"Tu sesión está programada para {format_session_time(session_date)}.\n\n"
        "Para acceder a la videollamada, necesitas completar el pago:\n"
        f"{payment_link}\n\n"
        "El link de videollamada se enviará automáticamente al confirmar el pago."
    )


def courtesy_reminder(patient_name: str, session_date: datetime) -> str:
    return (
        f"Hola {patient_name}!\n\n"
        f"Tu sesión comienza en 2 horas ({format_session_time(session_date)}).\n\n"
        "Recibirás el link de videollamada 15 minutos antes. ¡Nos vemos pronto!"
    )


def meet_link_message(patient_name: str, meet_link: str) -> str:
    return (
        f"Hola {patient_name}!\n\n"
        "Tu sesión comienza en 15 minutos.\n\n"
        "Ingresa aquí:\n"
        f"{meet_link}\n\n"
        "¡Te esperamos!"
    )


def payment_confirmation(patient_name: str, session_date: datetime) -> str:
    return (
        "¡Pago confirmado!\n\n"
        f"Gracias {patient_name}. Tu sesión del {format_session_date(session_date)} está confirmada.\n\n"
        "Recibirás el link de videollamada 15 minutos antes de comenzar."
    )


def render(template: str, **context) -> str:
    """Render a template by name"""
    if template == PAYMENT_REMINDER:
        return payment_reminder(context["patient_name"], context["session_date"], context["payment_link"])
    if template == LATE_PAYMENT_REMINDER:
        return late_payment_reminder(context["patient_name"], context["session_date"], context["payment_link"])
    if template == COURTESY_REMINDER:
        return courtesy_reminder(context["patient_name"], context["session_date"])
    if template == MEET_LINK:
        return meet_link_message(context["patient_name"], context["meet_link"])
    if template == PAYMENT_CONFIRMATION:
        return payment_confirmation(context["patient_name"], context["session_date"])
    raise ValueError(f"Unknown message template: {template}")
