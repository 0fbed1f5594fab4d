"""Repository objects for managing event persistence."""
from __future__ import annotations

from typing import Iterable, Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.exc import NoResultFound
from sqlalchemy.orm import Session, selectinload

from icms.errors import NotFoundError
from icms.models import Event, EventSpeaker


class EventRepository:
    """Persistence operations for events and their speaker assignments."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def list_events(
        self,
        *,
        event_type: Optional[str] = None,
        city: Optional[str] = None,
        search: Optional[str] = None,
        published: Optional[bool] = None,
    ) -> Sequence[Event]:
        query = (
            select(Event)
            .options(selectinload(Event.speakers))
            .order_by(Event.start_date.asc(), Event.created_at.asc())
        )

        if event_type:
            query = query.where(Event.event_type == event_type.upper())
        if city:
            query = query.where(func.lower(Event.city) == city.casefold())
        if search:
            pattern = f"%{search.casefold()}%"
            query = query.where(
                or_(
                    func.lower(Event.title).like(pattern),
                    func.lower(Event.description).like(pattern),
                    func.lower(Event.location).like(pattern),
                )
            )
        if published is not None:
            query = query.where(Event.is_published.is_(published))

        return self.session.scalars(query).all()

    def get_event(self, event_id: str) -> Event:
        query = (
            select(Event)
            .options(selectinload(Event.speakers))
            .where(Event.id == event_id)
        )
        try:
            return self.session.execute(query).scalar_one()
        except NoResultFound as exc:
            raise NotFoundError("Event", event_id) from exc

    def lock_event(self, event_id: str) -> Event:
        """Load the event row with ``SELECT ... FOR UPDATE``.

        Dialects without row locks (SQLite) emit a plain select; the
        conditional update in the registration repository still holds.
        """

        query = (
            select(Event)
            .where(Event.id == event_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        try:
            return self.session.execute(query).scalar_one()
        except NoResultFound as exc:
            raise NotFoundError("Event", event_id) from exc

    def create_event(self, **fields) -> Event:
        speakers = fields.pop("speakers", None) or []
        event = Event(**fields)
        for position, speaker in enumerate(speakers):
            event.speakers.append(self._build_speaker(speaker, position))
        self.session.add(event)
        self.session.flush()
        self.session.refresh(event)
        return event

    def update_event(self, event: Event, updates: dict) -> Event:
        for key, value in updates.items():
            setattr(event, key, value)
        self.session.flush()
        self.session.refresh(event)
        return event

    def add_speaker(self, event: Event, speaker: dict) -> EventSpeaker:
        position = speaker.get("session_order")
        if position is None:
            position = len(event.speakers)
        assignment = self._build_speaker(speaker, position)
        event.speakers.append(assignment)
        self.session.flush()
        self.session.refresh(assignment)
        return assignment

    def replace_speakers(self, event: Event, speakers: Iterable[dict]) -> Event:
        event.speakers = [
            self._build_speaker(speaker, position)
            for position, speaker in enumerate(speakers)
        ]
        self.session.flush()
        self.session.refresh(event)
        return event

    def remove_speaker(self, event: Event, speaker_id: str) -> None:
        speaker = next((s for s in event.speakers if s.id == speaker_id), None)
        if speaker is None:
            raise NotFoundError("Speaker", speaker_id)
        event.speakers.remove(speaker)
        self.session.flush()

    def remove_event(self, event: Event) -> None:
        self.session.delete(event)
        self.session.flush()

    @staticmethod
    def _build_speaker(speaker: dict, position: int) -> EventSpeaker:
        order = speaker.get("session_order")
        return EventSpeaker(
            name=speaker["name"],
            designation=speaker.get("designation"),
            institution=speaker.get("institution"),
            session_title=speaker.get("session_title"),
            session_order=position if order is None else order,
        )
