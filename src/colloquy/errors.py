import re


class ChatError(Exception):
    """Base class for failures surfaced by the chat core."""

    def __init__(self, message: str = "", status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RequestCancelled(ChatError):
    pass


class Unauthorized(ChatError):
    pass


class NotFound(ChatError):
    pass


class ServiceError(ChatError):
    pass


class InvalidInput(ChatError):
    pass


class PendingMessageError(ChatError):
    pass


DEFAULT_ERROR_MESSAGE = "Възникна грешка. Опитайте отново."

_CYRILLIC = re.compile(r"[Ѐ-ӿ]")

_USER_MESSAGES: list[tuple[re.Pattern[str], str]] = [
    (
        re.compile(r"invalid credentials|wrong password|incorrect password|invalid email"),
        "Невалиден имейл или парола.",
    ),
    (
        re.compile(r"unauthorized|not authorized|no token|jwt|token"),
        "Нямате права или сесията е изтекла.",
    ),
    (re.compile(r"forbidden"), "Достъпът е забранен."),
    (re.compile(r"not found|does not exist"), "Ресурсът не е намерен."),
    (
        re.compile(r"bad request|validation|invalid request|unprocessable"),
        "Невалидна или непълна заявка.",
    ),
    (re.compile(r"timeout|timed out"), "Времето за изчакване изтече. Опитайте отново."),
    (
        re.compile(r"failed to fetch|network|fetch error|connect"),
        "Мрежова грешка. Проверете връзката или опитайте по-късно.",
    ),
    (
        re.compile(r"internal server error|server error|status 5\d\d"),
        "Вътрешна грешка на сървъра. Опитайте по-късно.",
    ),
]


def user_message(error: BaseException | str | None, fallback: str | None = None) -> str:
    """Bulgarian text for an error, suitable for a notification."""
    raw = str(error) if error is not None else ""
    if _CYRILLIC.search(raw):
        return raw

    lower = raw.lower()
    for pattern, text in _USER_MESSAGES:
        if pattern.search(lower):
            return text
    return fallback or DEFAULT_ERROR_MESSAGE
