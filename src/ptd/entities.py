"""Pydantic models for PTD entity payloads.

These models describe the ``spec`` carried inside an
:class:`~ptd.envelope.Envelope`. Unknown fields are preserved so payloads
produced by newer writers still round-trip (and verify) unchanged.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "Tournament",
    "Event",
    "Match",
    "Entry",
    "Player",
    "Score",
    "SetScore",
    "Venue",
    "Organizer",
    "AgeGroup",
    "Rules",
    "Contact",
    "Money",
    "Rating",
    "Team",
    "Registration",
    "EntryRef",
    "Official",
    "Duration",
]


class _Model(BaseModel):
    model_config = ConfigDict(extra="allow")


class Contact(_Model):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    role: str | None = None


class Venue(_Model):
    name: str
    address: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    post_code: str | None = None
    courts: list[str] | None = None
    capacity: int | None = None


class Organizer(_Model):
    name: str
    type: str = Field(default="", description="federation, club or company")
    contact: Contact | None = None
    website: str | None = None
    logo: str | None = None


class AgeGroup(_Model):
    name: str
    code: str = Field(default="", description="e.g. 'U19'")
    min_age: int | None = None
    max_age: int | None = None
    cutoff_date: datetime | None = None


class Rules(_Model):
    scoring_system: str = Field(default="", description="e.g. 'best_of_5'")
    game_points: int | None = None
    tiebreak_at: int | None = None
    service_change: int | None = None
    time_limit: str | None = None
    custom_rules: str | None = None


class Money(_Model):
    amount: float
    currency: str = Field(..., description="ISO 4217 code")


class Rating(_Model):
    value: int
    system: str = Field(..., description="e.g. 'ITTF', 'USATT', 'ELO'")
    updated_at: datetime | None = None


class Team(_Model):
    name: str
    code: str | None = None
    country: str | None = None
    club: str | None = None
    players: list[str] = Field(default_factory=list)


class Registration(_Model):
    registered_at: datetime
    confirmed_at: datetime | None = None
    paid_at: datetime | None = None
    checked_in_at: datetime | None = None
    withdrawn_at: datetime | None = None
    notes: str | None = None


class EntryRef(_Model):
    entry_id: str
    display_name: str = ""
    seed: int | None = None


class Official(_Model):
    name: str
    role: str = Field(default="", description="referee, umpire, line_judge")


class Duration(_Model):
    minutes: int
    seconds: int | None = None


class SetScore(_Model):
    set_number: int
    home_score: int
    away_score: int
    tiebreak: bool | None = None
    duration: str | None = None


class Score(_Model):
    sets: list[SetScore] = Field(default_factory=list)
    final: str = Field(default="", description="e.g. '3-1'")
    duration: Duration | None = None
    retirement: bool | None = None
    walkover: bool | None = None
    disqualify: bool | None = None


class Player(_Model):
    first_name: str = ""
    last_name: str = ""
    display_name: str | None = None
    country: str | None = None
    club: str | None = None
    rating: Rating | None = None
    birth_date: datetime | None = None
    gender: str | None = None
    email: str | None = None
    phone: str | None = None
    player_id: str | None = Field(default=None, description="External ID, e.g. ITTF ID")


class Tournament(_Model):
    name: str = ""
    description: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    time_zone: str | None = None
    status: str = Field(default="", description="draft, published, in_progress, completed")
    venue: Venue | None = None
    organizer: Organizer | None = None
    format: str | None = None
    rules: Rules | None = None
    website: str | None = None
    contact_info: Contact | None = None


class Event(_Model):
    tournament_id: str = ""
    name: str = ""
    event_code: str = Field(default="", description="e.g. 'MS', 'WD', 'XD'")
    event_type: str = Field(default="", description="singles, doubles, team")
    gender: str | None = None
    age_group: AgeGroup | None = None
    format: str | None = None
    max_entries: int | None = None
    entry_fee: Money | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    status: str = ""


class Match(_Model):
    event_id: str = ""
    round_id: str | None = None
    bracket_id: str | None = None
    match_number: str = ""
    scheduled_at: datetime | None = None
    court: str | None = None
    status: str = Field(default="", description="scheduled, in_progress, completed, cancelled")
    home_entry: EntryRef | None = None
    away_entry: EntryRef | None = None
    winner: str | None = Field(default=None, description="entry id of the winner")
    score: Score | None = None
    officials: list[Official] | None = None
    streaming_url: str | None = None
    notes: str | None = None


class Entry(_Model):
    event_id: str = ""
    entry_type: str = Field(default="", description="individual, doubles, team")
    status: str = Field(default="", description="registered, confirmed, withdrawn")
    seed: int | None = None
    players: list[Player] = Field(default_factory=list)
    team: Team | None = None
    registration: Registration | None = None
