"""
Incident Message Templates
==========================

Spanish chat messages sent by the lifecycle coordinator.

Every message that refers to a ticket carries "ID: n" so that a later reply
quoting it can be resolved back to the ticket.
"""

from datetime import datetime
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo

from incident_desk.config import TEAM_LABELS, TEAM_TAGS
from incident_desk.incidents.domain import FeedbackKind, Ticket

DEFAULT_TIMEZONE = "America/Hermosillo"


# ========== Formatting helpers ==========

def team_tag(team: str) -> str:
    return TEAM_TAGS.get(team, team.upper())


def team_tags(teams: Iterable[str]) -> str:
    return ", ".join(team_tag(t) for t in teams) or "Ninguno"


def format_date(value: Optional[datetime], tz_name: str = DEFAULT_TIMEZONE) -> str:
    """DD/MM/YYYY HH:mm:ss in the display timezone."""
    if value is None:
        return "-"
    return value.astimezone(ZoneInfo(tz_name)).strftime("%d/%m/%Y %H:%M:%S")


def _split_duration(start: datetime, end: datetime) -> tuple[int, int, int]:
    seconds = max(0, int((end - start).total_seconds()))
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    return days, hours, rest // 60


def format_duration(start: datetime, end: datetime) -> str:
    """
    Example:
        >>> format_duration(t0, t0 + timedelta(days=1, hours=2, minutes=5))
        '1 día(s), 2 hora(s), 5 minuto(s)'
    """
    days, hours, minutes = _split_duration(start, end)
    return f"{days} día(s), {hours} hora(s), {minutes} minuto(s)"


def format_duration_short(start: datetime, end: datetime) -> str:
    days, hours, minutes = _split_duration(start, end)
    return f"{days}d {hours}h {minutes}m"


# ========== New reports ==========

def clarification_prompt(known_teams: Iterable[str]) -> str:
    options = "\n".join(f"▫️ {TEAM_LABELS.get(t, t.upper())}" for t in known_teams)
    return (
        "*🤖 No detecté ninguna incidencia en tu mensaje.*\n\n"
        "*Por favor indica a qué área va dirigida:*\n\n"
        f"{options}"
    )


def new_task(ticket: Ticket) -> str:
    return f"*Nueva tarea recibida (ID: {ticket.id}):*\n\n✅ {ticket.description}"


def report_acknowledged(ticket: Ticket) -> str:
    return (
        "*🤖 El mensaje se ha enviado al equipo:*\n\n"
        f"✅ {team_tags(ticket.categories)}\n\n"
        f"*ID: {ticket.id}*"
    )


def direct_report_notice(ticket: Ticket, reporter_name: str) -> str:
    return (
        f"*Nueva incidencia reportada por {reporter_name} (ID: {ticket.id}):*\n\n"
        f"{ticket.description}\n\n"
        f"*Equipos:* {team_tags(ticket.categories)}"
    )


# ========== Confirmation ==========

def completed_ack(ticket: Ticket, completed_by: str, tz_name: str) -> str:
    return (
        f"🤖✅ *Incidencia (ID: {ticket.id}) completada por {completed_by} "
        f"el {format_date(ticket.completed_at, tz_name)}*"
    )


def partial_ack(ticket: Ticket, confirmer: str, at: datetime, tz_name: str) -> str:
    return (
        f"🤖✅ *Incidencia (ID: {ticket.id}) confirmada fase {ticket.phase} "
        f"por {confirmer} el {format_date(at, tz_name)}*"
    )


def already_confirmed(ticket: Ticket, team: str) -> str:
    return (
        f"🤖 La incidencia (ID: {ticket.id}) ya fue confirmada por "
        f"{team_tag(team)}. No se registró una nueva confirmación."
    )


def _team_comments(ticket: Ticket) -> str:
    lines: List[str] = []
    for team in ticket.categories:
        record = ticket.latest_record_for(team)
        if record is None:
            comment = "Sin comentarios"
        elif record.comment.strip():
            comment = record.comment.strip()
        else:
            comment = "Listo" if record.kind == FeedbackKind.CONFIRMATION else "Sin comentarios"
        lines.append(f"{team_tag(team)}: {comment}")
    return "\n".join(lines)


def partial_status(ticket: Ticket, confirmer_names: List[str], now: datetime) -> str:
    return (
        "❗❗❗❗❗❗❗❗❗❗❗❗\n"
        f"🤖🟡 *ATENCIÓN TAREA EN FASE {ticket.phase}*\n\n"
        f"*Tarea de {team_tags(ticket.categories)}*:\n\n"
        f"{ticket.description}\n\n"
        f"*🟢 Confirmado:* {team_tags(ticket.confirmed_teams)}\n"
        f"*👤 Completado por:* {', '.join(confirmer_names) or 'Ninguno'}\n\n"
        f"*🔴 Falta:* {team_tags(ticket.outstanding_teams)}\n\n"
        f"*💬 Comentarios:*\n{_team_comments(ticket)}\n\n"
        f"*⏱️ Tiempo transcurrido:* {format_duration(ticket.created_at, now)}\n\n"
        f"*ID:* {ticket.id}"
    )


def final_summary(ticket: Ticket, tz_name: str) -> str:
    completed_at = ticket.completed_at or ticket.created_at
    per_team = "\n".join(
        f"*⌛Tiempo {team_tag(team)}:* "
        f"{format_duration_short(ticket.created_at, ticket.confirmations[team])}"
        for team in ticket.confirmed_teams
    )
    return (
        "❗❗❗❗❗❗❗❗❗❗❗❗\n"
        f"*🤖✅ ATENCIÓN FASE {ticket.phase} ✅🤖*\n\n"
        f"*Tarea de {team_tags(ticket.categories)}*:\n\n"
        f"{ticket.description}\n\n"
        "*ha sido COMPLETADA*\n\n"
        f"*📅Creación:* {format_date(ticket.created_at, tz_name)}\n"
        f"*📅Conclusión:* {format_date(completed_at, tz_name)}\n\n"
        f"*👤 Completado por:* {ticket.completed_by_display_name}\n\n"
        f"*⏱️ Total:* {format_duration_short(ticket.created_at, completed_at)}\n"
        f"{per_team}\n\n"
        f"*ID:* {ticket.id}\n\n"
        "*MUCHAS GRACIAS POR SU PACIENCIA* 😊"
    )


# ========== Cancellation ==========

def cancelled_ack(ticket: Ticket, who: str) -> str:
    return f"🤖✅ La incidencia ID: {ticket.id} ha sido cancelada por {who}"


def cancelled_notice(ticket: Ticket, who: str) -> str:
    return (
        f"🤖 *La incidencia (ID: {ticket.id}):* {ticket.description}\n\n"
        f"*Ha sido cancelada por {who}.*"
    )


# ========== Feedback ==========

def feedback_request(ticket: Ticket, team: str) -> str:
    return (
        "📝 *SOLICITUD DE RETROALIMENTACIÓN*\n\n"
        f"*ID:* {ticket.id}\n"
        f"*Categoría:* {team.upper()}\n\n"
        f"{ticket.description}\n\n"
        "Por favor responda citando este mensaje con el avance."
    )


def feedback_request_ack(ticket: Ticket, teams: List[str]) -> str:
    if not teams:
        return (
            f"🤖 Todos los equipos ya confirmaron la incidencia (ID: {ticket.id}); "
            "no se envió solicitud de retroalimentación."
        )
    return (
        f"✅ Solicitud de retroalimentación enviada para la incidencia (ID: {ticket.id}) "
        f"a {team_tags(teams)}."
    )


def feedback_response(ticket: Ticket, team: str, comment: str) -> str:
    return (
        "RESPUESTA DE RETROALIMENTACIÓN\n"
        f"{ticket.description}\n\n"
        f"{team_tag(team).upper()} RESPONDE:\n{comment}\n\n"
        f"ID: {ticket.id}"
    )


def feedback_response_ack(ticket: Ticket) -> str:
    return f"✅ Retroalimentación registrada para la incidencia (ID: {ticket.id})."


def origin_comment_ack(ticket: Ticket) -> str:
    return f"✅ Tu comentario ha sido registrado para la incidencia (ID: {ticket.id})."


# ========== Edits and reminders ==========

def recategorized(ticket: Ticket, previous: List[str]) -> str:
    return (
        f"*Incidencia (ID: {ticket.id}) recategorizada:* "
        f"{','.join(previous)} → {','.join(ticket.categories)}"
    )


def reminder(ticket: Ticket, team: str, now: datetime, tz_name: str) -> str:
    return (
        "*Recordatorio: tarea incompleta*\n\n"
        f"{ticket.description}\n\n"
        f"*Equipo:* {team_tag(team)}\n"
        f"*Creada:* {format_date(ticket.created_at, tz_name)}\n"
        f"*Tiempo transcurrido:* {format_duration(ticket.created_at, now)}\n\n"
        f"*(ID: {ticket.id})*"
    )


# ========== Errors ==========

UNIDENTIFIED_TICKET = "❌ No pude identificar el ID de la tarea."
GENERIC_ERROR = "❌ Ocurrió un error al procesar la solicitud. Intenta de nuevo."


def ticket_not_found(ticket_id) -> str:
    return f"❌ Incidencia (ID: {ticket_id}) no encontrada."


PERMISSION_DENIED = "❌ No tienes permisos para ejecutar esta acción sobre la incidencia."


def not_pending(ticket_id, state: str) -> str:
    labels = {"completed": "completada", "cancelled": "cancelada"}
    return (
        f"❌ La incidencia (ID: {ticket_id}) está {labels.get(state, state)} "
        "y no admite esta acción."
    )
