"""
Resolución de la ventana temporal de búsqueda.

Prioridad de fuentes:
1. Override explícito del caller
2. Checkpoint `last_run_at` del criterio
3. Ventana configurada en el criterio (`date_from` / `date_to`)
4. Lookback por defecto

En modo full rescan se ignoran checkpoint y ventana configurada; sin
override no hay cota inferior ni lookback (única forma de traer todo).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from faro.models import SearchCriteria

DEFAULT_LOOKBACK_DAYS = 7


@dataclass(frozen=True)
class TimeRange:
    """Rango pedido explícitamente por el caller."""

    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return self.date_from is None and self.date_to is None


@dataclass(frozen=True)
class TimeWindow:
    """Cotas resueltas en segundos Unix."""

    date_from: Optional[int]
    date_to: Optional[int]
    source: str

    @property
    def is_unbounded(self) -> bool:
        return self.date_from is None and self.date_to is None


def to_unix(value: datetime) -> int:
    """Convierte a segundos Unix. Los datetimes naive se asumen UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def _maybe_unix(value: Optional[datetime]) -> Optional[int]:
    return to_unix(value) if value is not None else None


def resolve_time_window(
    criteria: SearchCriteria,
    full_rescan: bool = False,
    custom_range: Optional[TimeRange] = None,
    now: Optional[datetime] = None,
    default_lookback_days: int = DEFAULT_LOOKBACK_DAYS,
) -> TimeWindow:
    """
    Calcula la ventana temporal para un criterio.

    Args:
        criteria: Criterio a buscar
        full_rescan: Ignora checkpoint y ventana configurada
        custom_range: Override explícito (gana siempre)
        now: Reloj inyectable para tests
        default_lookback_days: Días hacia atrás cuando no hay otra fuente

    Returns:
        TimeWindow con las cotas y la fuente elegida
    """
    if custom_range is not None and not custom_range.is_empty:
        return TimeWindow(
            date_from=_maybe_unix(custom_range.date_from),
            date_to=_maybe_unix(custom_range.date_to),
            source="custom",
        )

    if full_rescan:
        return TimeWindow(date_from=None, date_to=None, source="full_rescan")

    if criteria.last_run_at is not None:
        return TimeWindow(
            date_from=to_unix(criteria.last_run_at),
            date_to=None,
            source="checkpoint",
        )

    if criteria.date_from is not None or criteria.date_to is not None:
        return TimeWindow(
            date_from=_maybe_unix(criteria.date_from),
            date_to=_maybe_unix(criteria.date_to),
            source="criteria",
        )

    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=default_lookback_days)
    return TimeWindow(date_from=to_unix(since), date_to=None, source="default_lookback")
