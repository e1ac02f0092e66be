"""
Question template rendering.

Supported placeholders:
    {date}       "7 января"
    {day}        "7"
    {month}      "января" (genitive month name)
    {year}       "2026"
    {dayOfWeek}  "среда"
"""

from datetime import date, datetime
from zoneinfo import ZoneInfo

from core.groups import GroupConfig

MONTH_NAMES = [
    "января",
    "февраля",
    "марта",
    "апреля",
    "мая",
    "июня",
    "июля",
    "августа",
    "сентября",
    "октября",
    "ноября",
    "декабря",
]

DAY_OF_WEEK_NAMES = {
    1: "понедельник",
    2: "вторник",
    3: "среда",
    4: "четверг",
    5: "пятница",
    6: "суббота",
    7: "воскресенье",
}


def month_name(month: int) -> str:
    if not 1 <= month <= 12:
        raise ValueError("Month value must be between 1 and 12")
    return MONTH_NAMES[month - 1]


def format_date(day: date) -> str:
    return f"{day.day} {month_name(day.month)}"


def format_question(template: str, day: date) -> str:
    """Replace date placeholders in a question template."""
    return (
        template.replace("{date}", format_date(day))
        .replace("{day}", str(day.day))
        .replace("{month}", month_name(day.month))
        .replace("{year}", str(day.year))
        .replace("{dayOfWeek}", DAY_OF_WEEK_NAMES[day.isoweekday()])
    )


def question_for_group(group: GroupConfig, now: datetime) -> str:
    """Render the group's question for the local date of `now` in the schedule timezone."""
    local_date = now.astimezone(ZoneInfo(group.schedule.timezone)).date()
    return format_question(group.challenge.question_template, local_date)
