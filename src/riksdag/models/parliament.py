"""Normalized Riksdag records: members, assignments, speeches, documents, votes.

Every table carries a surrogate id plus a unique constraint on the natural key
taken from the open-data API, which is what upserts match on.
"""
from datetime import date, datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class Member(SQLModel, table=True):
    """One row per member of parliament (personlista/person)."""

    id: Optional[int] = Field(default=None, primary_key=True)
    member_id: str = Field(unique=True, index=True)  # intressent_id
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    sort_name: Optional[str] = None
    party: Optional[str] = Field(default=None, index=True)
    constituency: Optional[str] = Field(default=None, index=True)
    gender: Optional[str] = None
    birth_year: Optional[int] = None
    status: Optional[str] = None
    image_url: Optional[str] = None
    synced_at: datetime = Field(default_factory=datetime.utcnow)


class Assignment(SQLModel, table=True):
    """A member's seat or role in an organ (chamber, committee, party group)."""

    __table_args__ = (
        UniqueConstraint("member_id", "organ_code", "role_code", "start_date"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    member_id: str = Field(index=True)
    organ_code: str
    role_code: str = ""
    start_date: date
    end_date: Optional[date] = None
    status: Optional[str] = None
    assignment_type: Optional[str] = None
    ordinal: Optional[int] = None


class Speech(SQLModel, table=True):
    """One speech in a chamber debate (anforandelista/anforande)."""

    __table_args__ = (UniqueConstraint("document_id", "sequence"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    document_id: str = Field(index=True)  # dok_id of the protocol
    sequence: int  # anforande_nummer
    speech_id: Optional[str] = None
    member_id: Optional[str] = Field(default=None, index=True)
    speaker: Optional[str] = None
    party: Optional[str] = Field(default=None, index=True)
    speech_date: Optional[date] = Field(default=None, index=True)
    session: Optional[str] = None  # riksmöte, e.g. "2024/25"
    document_title: Optional[str] = None
    heading: Optional[str] = None  # avsnittsrubrik
    subject: Optional[str] = None  # rubrik
    speech_type: Optional[str] = None  # anforandetyp
    is_reply: bool = False
    text: Optional[str] = None  # anforandetext, only on the full-text views
    text_url: Optional[str] = None
    protocol_url: Optional[str] = None
    related_document_url: Optional[str] = None
    synced_at: datetime = Field(default_factory=datetime.utcnow)


class Document(SQLModel, table=True):
    """A parliamentary document (dokumentlista/dokument)."""

    id: Optional[int] = Field(default=None, primary_key=True)
    document_id: str = Field(unique=True, index=True)  # dok_id
    title: Optional[str] = None
    subtitle: Optional[str] = None
    doc_type: Optional[str] = Field(default=None, index=True)
    subtype: Optional[str] = None
    status: Optional[str] = None
    document_date: Optional[date] = Field(default=None, index=True)
    published_at: Optional[datetime] = None
    organ: Optional[str] = None
    session: Optional[str] = None
    designation: Optional[str] = None  # beteckning
    hangar_id: Optional[str] = Field(default=None, index=True)
    related_id: Optional[str] = None  # relaterat_id
    html_url: Optional[str] = None
    text_url: Optional[str] = None
    pdf_url: Optional[str] = None
    synced_at: datetime = Field(default_factory=datetime.utcnow)


class VoteRecord(SQLModel, table=True):
    """One member's vote in one roll-call (voteringlista/votering)."""

    __table_args__ = (UniqueConstraint("vote_id", "member_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    vote_id: str = Field(index=True)  # votering_id
    member_id: str = Field(index=True)  # intressent_id
    name: Optional[str] = None
    party: Optional[str] = Field(default=None, index=True)
    constituency: Optional[str] = None
    vote: Optional[str] = None  # "Ja", "Nej", "Avstår", "Frånvarande"
    regarding: Optional[str] = None  # avser: "sakfrågan", "motivering"
    session: Optional[str] = None
    designation: Optional[str] = None
    item: Optional[int] = None  # punkt
    document_id: Optional[str] = None
    voted_at: Optional[datetime] = Field(default=None, index=True)
    synced_at: datetime = Field(default_factory=datetime.utcnow)
