"""
FreshCast - Holiday Calendar
=============================

Static domain calendar: holidays and festivals with pre-assigned demand
multipliers, near-holiday spill-over, the payday window and month-level
seasonality.

The event table is external data (``data/holidays.json``) loaded through
the configuration and indexed by date.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from .config import Config, DEFAULT_CONFIG
from .data_cleaner import is_payday
from .models import DateLike, to_date
from .utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class CalendarEvent:
    """A holiday or festival that shifts demand on its date"""
    name: str
    event_date: date
    event_type: str = "holiday"  # holiday, festival, special
    demand_factor: float = 1.0
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'date': self.event_date.isoformat(),
            'type': self.event_type,
            'demand_factor': self.demand_factor,
            'description': self.description,
        }


@dataclass
class CalendarFactors:
    """
    Calendar multipliers for one date.

    Attributes:
        event: Exact holiday/festival on the date, if any
        near_holiday: Closest event within the near-holiday window
        is_payday: Date falls in the payday window
        total_factor: Product of all applied factors
        factors: Applied factors as {'name', 'factor'} entries
    """
    event: Optional[CalendarEvent] = None
    near_holiday: Optional[CalendarEvent] = None
    is_payday: bool = False
    total_factor: float = 1.0
    factors: List[Dict[str, Any]] = field(default_factory=list)


class HolidayCalendar:
    """
    Calendar lookups for demand adjustment.

    Usage:
        calendar = HolidayCalendar(config)
        info = calendar.get_calendar_factors('2026-04-13')
        month = calendar.month_seasonality('2026-12-20')
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or DEFAULT_CONFIG
        self.seasonality_config = self.config.seasonality
        self._events: Dict[date, CalendarEvent] = {}
        self._load_events()

    def _load_events(self):
        for raw in self.config.holidays:
            event = CalendarEvent(
                name=raw['name'],
                event_date=raw['date'],
                event_type=raw['type'],
                demand_factor=raw['demand_factor'],
            )
            self._events.setdefault(event.event_date, event)
        logger.debug(f"Loaded {len(self._events)} calendar events")

    @property
    def events(self) -> List[CalendarEvent]:
        return [self._events[d] for d in sorted(self._events)]

    def holiday_dates(self) -> List[date]:
        return sorted(self._events)

    def add_event(self, event: CalendarEvent):
        """Register an extra event (overrides any event on the same date)."""
        self._events[event.event_date] = event

    def get_event(self, day: DateLike) -> Optional[CalendarEvent]:
        return self._events.get(to_date(day))

    def near_holiday(self, day: DateLike, days_range: Optional[int] = None) -> Optional[CalendarEvent]:
        """
        First event within ``days_range`` days before or after ``day``,
        excluding an event on the day itself.
        """
        target = to_date(day)
        days_range = days_range if days_range is not None else self.seasonality_config.near_holiday_days

        candidates = []
        for offset in range(1, days_range + 1):
            for other in (target - timedelta(days=offset), target + timedelta(days=offset)):
                if other in self._events:
                    candidates.append(self._events[other])
        if not candidates:
            return None

        holiday = min(candidates, key=lambda e: e.event_date)
        diff = (target - holiday.event_date).days
        relation = 'after' if diff > 0 else 'before'
        return CalendarEvent(
            name=holiday.name,
            event_date=holiday.event_date,
            event_type=holiday.event_type,
            demand_factor=holiday.demand_factor,
            description=f"{abs(diff)} day(s) {relation} {holiday.name}",
        )

    def is_payday(self, day: DateLike) -> bool:
        cfg = self.config.cleaning
        return is_payday(day, cfg.payday_start_day, cfg.payday_end_day)

    def get_calendar_factors(
        self,
        day: DateLike,
        payday_factor: Optional[float] = None,
        include_payday: bool = True
    ) -> CalendarFactors:
        """
        Holiday, near-holiday and payday multipliers for a date.

        An exact event applies its full factor. Otherwise a nearby event
        applies a damped factor 1 + (f - 1) * strength. The payday factor
        applies only when no exact event falls on the date.

        Args:
            day: Target date
            payday_factor: Payday multiplier (defaults to the static 1.20)
            include_payday: Set False when payday is handled elsewhere
        """
        cfg = self.seasonality_config
        target = to_date(day)
        event = self.get_event(target)
        near = self.near_holiday(target) if event is None else None
        payday = self.is_payday(target)

        result = CalendarFactors(event=event, near_holiday=near, is_payday=payday)

        if event is not None:
            result.factors.append({'name': event.name, 'factor': event.demand_factor})
            result.total_factor *= event.demand_factor

        if near is not None:
            near_factor = 1 + (near.demand_factor - 1) * cfg.near_holiday_strength
            result.factors.append({'name': near.description, 'factor': near_factor})
            result.total_factor *= near_factor

        if event is None and payday and include_payday:
            factor = payday_factor if payday_factor is not None else cfg.static_payday_factor
            result.factors.append({'name': 'Payday period', 'factor': factor})
            result.total_factor *= factor

        return result

    def month_seasonality(self, day: DateLike) -> Dict[str, Any]:
        """Month-level factor and its description for a date."""
        month = to_date(day).month
        return {
            'factor': self.config.get_month_factor(month),
            'description': self.seasonality_config.month_descriptions.get(month, 'Normal'),
        }

    def upcoming_events(self, from_date: DateLike, days: int = 30) -> List[CalendarEvent]:
        """Events between ``from_date`` and ``from_date + days`` inclusive."""
        start = to_date(from_date)
        end = start + timedelta(days=days)
        return [self._events[d] for d in sorted(self._events) if start <= d <= end]
