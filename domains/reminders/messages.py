"""User-facing reminder strings per language."""

from dataclasses import dataclass

from . import config


@dataclass(frozen=True)
class Texts:
    notify: str
    no_reminders: str
    list_header: str
    date_connector: str
    relative_day: str
    relative_days: str
    relative_hour: str
    relative_hours: str
    relative_minute: str
    relative_minutes: str
    relative_now: str
    added: str
    error_empty_message: str
    error_invalid_date: str
    error_too_soon: str
    error_store: str
    not_found: str
    deleted_single: str
    deleted_all: str
    delete_none_owned: str
    delete_no_match: str
    deleted_one: str
    deleted_many: str
    delete_failed: str
    delete_internal_error: str
    stats: str


MESSAGES: dict[str, Texts] = {
    "pt-br": Texts(
        notify="🔔 **Lembrete:** {text}",
        no_reminders="Você não possui lembretes pendentes.",
        list_header="📋 **Seus lembretes:**",
        date_connector="às",
        relative_day="em {n} dia",
        relative_days="em {n} dias",
        relative_hour="em {n} hora",
        relative_hours="em {n} horas",
        relative_minute="em {n} minuto",
        relative_minutes="em {n} minutos",
        relative_now="agora",
        added="✅ Lembrete criado para **{date}**\n└ 📝 {text}",
        error_empty_message="O lembrete precisa de uma mensagem.",
        error_invalid_date="Não consegui entender a data do lembrete.",
        error_too_soon="A data do lembrete precisa estar no futuro.",
        error_store="Não foi possível salvar o lembrete. Tente novamente mais tarde.",
        not_found="Lembrete não encontrado.",
        deleted_single="🗑️ Lembrete {id} deletado.",
        deleted_all="🗑️ {n} lembrete(s) deletado(s).",
        delete_none_owned="Você não possui lembretes para deletar",
        delete_no_match="Nenhum lembrete encontrado com os critérios fornecidos",
        deleted_one="1 lembrete deletado com sucesso",
        deleted_many="{n} lembretes deletados com sucesso",
        delete_failed="Erro ao deletar os lembretes",
        delete_internal_error="Erro interno ao processar a solicitação",
        stats="📊 Lembretes: {total} no total, {pending} pendentes, {sent} enviados",
    ),
    "en": Texts(
        notify="🔔 **Reminder:** {text}",
        no_reminders="You have no pending reminders.",
        list_header="📋 **Your reminders:**",
        date_connector="at",
        relative_day="in {n} day",
        relative_days="in {n} days",
        relative_hour="in {n} hour",
        relative_hours="in {n} hours",
        relative_minute="in {n} minute",
        relative_minutes="in {n} minutes",
        relative_now="now",
        added="✅ Reminder set for **{date}**\n└ 📝 {text}",
        error_empty_message="The reminder needs a message.",
        error_invalid_date="I couldn't understand the reminder date.",
        error_too_soon="The reminder date must be in the future.",
        error_store="Couldn't save the reminder. Please try again later.",
        not_found="Reminder not found.",
        deleted_single="🗑️ Reminder {id} deleted.",
        deleted_all="🗑️ {n} reminder(s) deleted.",
        delete_none_owned="You have no reminders to delete",
        delete_no_match="No reminders matched the given criteria",
        deleted_one="1 reminder deleted successfully",
        deleted_many="{n} reminders deleted successfully",
        delete_failed="Failed to delete the reminders",
        delete_internal_error="Internal error while processing the request",
        stats="📊 Reminders: {total} total, {pending} pending, {sent} sent",
    ),
}


def get_texts(language: str | None = None) -> Texts:
    """Texts for a language, falling back to the configured default then pt-br."""
    language = (language or config.REMINDER_LANGUAGE).lower()
    return MESSAGES.get(language) or MESSAGES["pt-br"]
