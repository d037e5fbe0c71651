"""
Riksdag open-data response normalizer.

Converts raw JSON from data.riksdagen.se into clean field dicts that map
directly onto the SQLModel columns in riksdag.models.parliament. No DB access
here; the sync service handles persistence.

Every list endpoint wraps its items two levels deep, under keys that differ
per resource type:

  personlista     → {"personlista":    {"person":     [...]}}
  dokumentlista   → {"dokumentlista":  {"dokument":   [...]}}
  anforandelista  → {"anforandelista": {"anforande":  [...]}}
  voteringlista   → {"voteringlista":  {"votering":   [...]}}
                    (older per-document form: {"votering": {"dokvotering": [...]}})

When a page holds exactly one item the API returns that item as a bare object
instead of a one-element list, and an empty page comes back with the leaf set
to null or missing. extract_items() absorbs all of that in one place.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from riksdag.config import ResourceType, SyncConfig

logger = logging.getLogger(__name__)


@dataclass
class MappingResult:
    """Normalized records for one page plus the count of dropped items."""

    records: List[Dict[str, Any]] = field(default_factory=list)
    skipped: int = 0


# ─── Coercion helpers ─────────────────────────────────────────────────────────

def _as_list(value: Any) -> List[Any]:
    """Coerce a leaf collection (None, single object, or list) to a list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _to_int(value: Any) -> Optional[int]:
    """Parse an integer field the API sends as a string. Blank or junk → None."""
    s = _text(value)
    if s is None:
        return None
    try:
        return int(s)
    except ValueError:
        return None


def _parse_date(value: Any) -> Optional[date]:
    """Parse "YYYY-MM-DD", optionally followed by a time part."""
    s = _text(value)
    if s is None:
        return None
    try:
        return datetime.strptime(s[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def _parse_datetime(value: Any) -> Optional[datetime]:
    """Parse "YYYY-MM-DD HH:MM:SS" (the API's timestamp format)."""
    s = _text(value)
    if s is None:
        return None
    try:
        return datetime.strptime(s[:19].replace("T", " "), "%Y-%m-%d %H:%M:%S")
    except ValueError:
        return None


def _absolute_url(value: Any) -> Optional[str]:
    """The API emits protocol-relative links ("//data.riksdagen.se/...")."""
    s = _text(value)
    if s is not None and s.startswith("//"):
        return "https:" + s
    return s


# ─── Shape handling ───────────────────────────────────────────────────────────

def extract_items(resource_type, payload: Any, config: SyncConfig) -> List[Dict[str, Any]]:
    """
    Pull the item list out of a raw list-endpoint response.

    Tries each (wrapper, item) shape configured for the resource type and
    returns the first non-empty match.

    Args:
        resource_type: ResourceType or its string value.
        payload: Decoded JSON body (may be None or {}).
        config: SyncConfig with the response shapes.

    Returns:
        List of raw item dicts, possibly empty.
    """
    resource = config.resource(resource_type)
    if not isinstance(payload, dict):
        return []
    for wrapper_key, item_key in resource.response_shapes:
        wrapper = payload.get(wrapper_key)
        if not isinstance(wrapper, dict):
            continue
        items = [i for i in _as_list(wrapper.get(item_key)) if isinstance(i, dict)]
        if items:
            return items
    return []


# ─── Per-resource normalizers ─────────────────────────────────────────────────

def normalize_assignment(raw: Dict[str, Any], member_id: str) -> Optional[Dict[str, Any]]:
    """Normalize one personuppdrag/uppdrag entry. None if organ or start is missing."""
    organ = _text(raw.get("organ_kod"))
    start = _parse_date(raw.get("from"))
    if organ is None or start is None:
        return None
    return {
        "member_id": member_id,
        "organ_code": organ,
        "role_code": _text(raw.get("roll_kod")) or "",
        "start_date": start,
        "end_date": _parse_date(raw.get("tom")),
        "status": _text(raw.get("status")),
        "assignment_type": _text(raw.get("typ")),
        "ordinal": _to_int(raw.get("ordningsnummer")),
    }


def normalize_member(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Normalize a personlista/person item into Member field dict.

    The nested personuppdrag.uppdrag collection (single object or list) is
    returned under the "assignments" key as a list of Assignment field dicts.

    Returns:
        Field dict, or None when intressent_id is missing.
    """
    member_id = _text(raw.get("intressent_id"))
    if member_id is None:
        return None

    uppdrag = (raw.get("personuppdrag") or {}).get("uppdrag")
    assignments = []
    for item in _as_list(uppdrag):
        if isinstance(item, dict):
            normalized = normalize_assignment(item, member_id)
            if normalized is not None:
                assignments.append(normalized)

    return {
        "member_id": member_id,
        "first_name": _text(raw.get("tilltalsnamn")),
        "last_name": _text(raw.get("efternamn")),
        "sort_name": _text(raw.get("sorteringsnamn")),
        "party": _text(raw.get("parti")),
        "constituency": _text(raw.get("valkrets")),
        "gender": _text(raw.get("kon")),
        "birth_year": _to_int(raw.get("fodd_ar")),
        "status": _text(raw.get("status")),
        "image_url": _absolute_url(raw.get("bild_url_192") or raw.get("bild_url_80")),
        "assignments": assignments,
    }


def normalize_speech(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Normalize an anforandelista/anforande item into Speech field dict.

    Natural key is (dok_id, anforande_nummer); a speech missing either, or
    with a non-numeric anforande_nummer, is dropped.
    """
    document_id = _text(raw.get("dok_id"))
    sequence = _to_int(raw.get("anforande_nummer"))
    if document_id is None or sequence is None:
        return None
    body = raw.get("anforandetext") or raw.get("anforande")
    return {
        "document_id": document_id,
        "sequence": sequence,
        "speech_id": _text(raw.get("anforande_id")),
        "member_id": _text(raw.get("intressent_id")),
        "speaker": _text(raw.get("talare")),
        "party": _text(raw.get("parti")),
        "speech_date": _parse_date(raw.get("dok_datum")),
        "session": _text(raw.get("dok_rm")),
        "document_title": _text(raw.get("dok_titel")),
        "heading": _text(raw.get("avsnittsrubrik")),
        "subject": _text(raw.get("rubrik")),
        "speech_type": _text(raw.get("anforandetyp")),
        "is_reply": _text(raw.get("replik")) == "Y",
        "text": _text(body) if isinstance(body, str) else None,
        "text_url": _absolute_url(raw.get("anforande_url_xml") or raw.get("anforande_url_html")),
        "protocol_url": _absolute_url(raw.get("protokoll_url_xml")),
        "related_document_url": _absolute_url(raw.get("relaterat_dokument_url")),
    }


def normalize_document(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Normalize a dokumentlista/dokument item into Document field dict."""
    document_id = _text(raw.get("dok_id") or raw.get("id"))
    if document_id is None:
        return None
    return {
        "document_id": document_id,
        "title": _text(raw.get("titel")),
        "subtitle": _text(raw.get("undertitel")),
        "doc_type": _text(raw.get("doktyp") or raw.get("typ")),
        "subtype": _text(raw.get("subtyp")),
        "status": _text(raw.get("status")),
        "document_date": _parse_date(raw.get("datum")),
        "published_at": _parse_datetime(raw.get("publicerad")),
        "organ": _text(raw.get("organ")),
        "session": _text(raw.get("rm")),
        "designation": _text(raw.get("beteckning")),
        "hangar_id": _text(raw.get("hangar_id")),
        "related_id": _text(raw.get("relaterat_id")),
        "html_url": _absolute_url(raw.get("dokument_url_html")),
        "text_url": _absolute_url(raw.get("dokument_url_text")),
        "pdf_url": _absolute_url(raw.get("dokument_url_pdf")),
    }


def normalize_vote(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Normalize a voteringlista/votering item into VoteRecord field dict."""
    vote_id = _text(raw.get("votering_id"))
    member_id = _text(raw.get("intressent_id"))
    if vote_id is None or member_id is None:
        return None
    return {
        "vote_id": vote_id,
        "member_id": member_id,
        "name": _text(raw.get("namn")),
        "party": _text(raw.get("parti")),
        "constituency": _text(raw.get("valkrets")),
        "vote": _text(raw.get("rost")),
        "regarding": _text(raw.get("avser")),
        "session": _text(raw.get("rm")),
        "designation": _text(raw.get("beteckning")),
        "item": _to_int(raw.get("punkt")),
        "document_id": _text(raw.get("dok_id")),
        "voted_at": _parse_datetime(raw.get("systemdatum") or raw.get("votering_datum")),
    }


NORMALIZERS: Dict[ResourceType, Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]] = {
    ResourceType.MEMBERS: normalize_member,
    ResourceType.SPEECHES: normalize_speech,
    ResourceType.DOCUMENTS: normalize_document,
    ResourceType.VOTES: normalize_vote,
}


def map_payload(resource_type, payload: Any, config: SyncConfig) -> MappingResult:
    """
    Extract and normalize every item in a response.

    Items without a natural key, or that blow up during normalization, are
    logged and counted in MappingResult.skipped; they never fail the batch.
    """
    resource = config.resource(resource_type)
    normalize = NORMALIZERS[resource.resource_type]
    result = MappingResult()

    for raw in extract_items(resource.resource_type, payload, config):
        try:
            record = normalize(raw)
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning(
                "Skipping malformed %s item: %s", resource.resource_type.value, exc
            )
            result.skipped += 1
            continue
        if record is None:
            logger.debug(
                "Skipping %s item without natural key", resource.resource_type.value
            )
            result.skipped += 1
            continue
        result.records.append(record)

    return result
