"""Jinja2 environment and the formatting filters templates rely on."""

from __future__ import annotations

from datetime import date, datetime, tzinfo
from typing import Any

from fastapi.templating import Jinja2Templates
from starlette.requests import Request

from ..services.aggregation import duration_ms
from ..services.timecalc import format_duration, parse_iso, resolve_tz
from .config import settings
from .notices import pop_notice


def _to_dt(value: Any, tz: tzinfo | None) -> datetime | None:
    """Coerce stored text or a datetime into an aware datetime in ``tz``."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value:
        try:
            dt = parse_iso(value)
        except ValueError:
            return None
    else:
        return None
    if dt is None:
        return None
    zone = tz or resolve_tz(settings.TZ)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=zone)
    return dt.astimezone(zone)


def _fmt_dt(value: Any, tz: tzinfo | None = None, fmt: str = "%Y-%m-%d %I:%M %p") -> str:
    dt = _to_dt(value, tz)
    return dt.strftime(fmt) if dt else ""


def _fmt_date(value: Any, tz: tzinfo | None = None, fmt: str = "%Y-%m-%d") -> str:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value.strftime(fmt)
    dt = _to_dt(value, tz)
    return dt.strftime(fmt) if dt else ""


def _fmt_time(value: Any, tz: tzinfo | None = None, fmt: str = "%I:%M %p") -> str:
    dt = _to_dt(value, tz)
    return dt.strftime(fmt) if dt else ""


def _fmt_duration(value: Any) -> str:
    try:
        return format_duration(int(value))
    except (TypeError, ValueError):
        return ""


def _fmt_month(value: Any) -> str:
    """``date(2024, 1, 1)`` or a ``MonthTotal`` -> ``January 2024``."""
    if isinstance(value, date):
        return value.strftime("%B %Y")
    year, month = getattr(value, "year", None), getattr(value, "month", None)
    if year and month:
        return date(year, month, 1).strftime("%B %Y")
    return ""


def get_templates() -> Jinja2Templates:
    """Create a ``Jinja2Templates`` instance with our standard filters registered."""
    templates = Jinja2Templates(directory=str(settings.TEMPLATES_DIR))
    env = templates.env
    env.filters["fmt_dt"] = _fmt_dt
    env.filters["fmt_date"] = _fmt_date
    env.filters["fmt_time"] = _fmt_time
    env.filters["fmt_duration"] = _fmt_duration
    env.filters["fmt_month"] = _fmt_month
    env.filters["entry_ms"] = duration_ms
    env.globals["app_name"] = settings.APP_NAME
    return templates


templates = get_templates()


def render(request: Request, name: str, context: dict[str, Any] | None = None, *, status_code: int = 200):
    """Render ``name`` with the pending notice and signed-in identity attached."""
    ctx = dict(context or {})
    ctx.setdefault("notice", pop_notice(request))
    ctx.setdefault("identity", getattr(request.state, "identity", None))
    return templates.TemplateResponse(request, name, ctx, status_code=status_code)
