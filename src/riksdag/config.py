"""
Runtime settings and the immutable sync configuration.

Settings come from the environment (or .env) via pydantic-settings. The
per-resource tables (endpoint templates, response keys, priorities, batch
sizes) are a frozen SyncConfig value that callers build once and pass into
the sync service, so tests can substitute their own without touching globals.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./riksdag.db"
    api_base_url: str = "https://data.riksdagen.se"
    http_timeout_seconds: float = 30.0
    requests_per_second: int = 5
    inter_phase_delay_seconds: float = 2.0

    # Circuit breaker
    breaker_failure_threshold: int = 5
    breaker_recovery_timeout_seconds: float = 60.0
    breaker_success_threshold: int = 2

    # Retry budgets
    max_http_retries: int = 3
    max_network_retries: int = 2
    max_total_attempts: int = 6
    retry_base_delay_seconds: float = 1.0
    retry_network_base_delay_seconds: float = 2.0
    retry_max_delay_seconds: float = 30.0

    health_check_interval_seconds: float = 60.0
    stale_attempt_minutes: int = 15
    sync_hour: int = 3
    # JSON list in the environment, e.g. DISABLED_RESOURCE_TYPES='["votes"]'
    disabled_resource_types: List[str] = []

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


class UnknownResourceTypeError(ValueError):
    """Raised for a resource type that has no configuration entry."""


class ResourceType(str, Enum):
    """The fixed set of external data categories that get synced."""

    MEMBERS = "members"
    SPEECHES = "speeches"
    DOCUMENTS = "documents"
    VOTES = "votes"


@dataclass(frozen=True)
class ResourceConfig:
    """Everything the engine needs to know about one resource type.

    Attributes:
        resource_type: Which resource this entry describes.
        url_template: Base request URL including fixed query parameters and
            empty placeholders for date-range filters.
        batch_param: Query parameter the endpoint uses for page size. The
            Riksdag API is not consistent about this.
        response_shapes: (wrapper_key, item_key) pairs the list may be nested
            under, tried in order.
        date_filter_keys: Filter keys that overwrite a placeholder already in
            the template instead of being appended.
        priority: Order in the strategic plan (lower runs first).
        default_batch_size / min_batch_size / max_batch_size: Adaptive
            batch sizing baseline and clamp range.
        estimated_total: Rough upstream record count, for progress display.
        enabled: Disabled types are left out of every strategic plan.
        sync_interval_hours: How long a fully synced type stays fresh before
            a scheduled plan rewinds it for a refresh pass.
    """

    resource_type: ResourceType
    url_template: str
    batch_param: str
    response_shapes: Tuple[Tuple[str, str], ...]
    priority: int
    default_batch_size: int
    max_batch_size: int
    min_batch_size: int = 1
    date_filter_keys: FrozenSet[str] = frozenset()
    estimated_total: int = 0
    enabled: bool = True
    sync_interval_hours: float = 24.0


@dataclass(frozen=True)
class SyncConfig:
    resources: Dict[ResourceType, ResourceConfig]
    inter_phase_delay_seconds: float = 2.0
    fast_response_seconds: float = 1.0
    slow_response_seconds: float = 5.0
    error_floor_threshold: int = 3
    health_probe_path: str = "/dokumentlista/?utformat=json&sz=1"
    # Subtracted from sync_interval_hours when deciding a refresh is due.
    schedule_grace_minutes: float = 30.0

    def resource(self, resource_type) -> ResourceConfig:
        try:
            return self.resources[ResourceType(resource_type)]
        except (KeyError, ValueError):
            raise UnknownResourceTypeError(
                f"Unknown resource type: {resource_type!r}"
            ) from None

    def by_priority(self) -> Tuple[ResourceConfig, ...]:
        return tuple(sorted(self.resources.values(), key=lambda r: r.priority))


def default_sync_config(
    base_url: str = "https://data.riksdagen.se",
    inter_phase_delay_seconds: float = 2.0,
    disabled: Iterable[str] = (),
) -> SyncConfig:
    """Build the production resource table for the Riksdag open-data API.

    Raises:
        UnknownResourceTypeError: a name in `disabled` is not a resource type.
    """
    base = base_url.rstrip("/")
    off = set()
    for name in disabled:
        try:
            off.add(ResourceType(name))
        except ValueError:
            raise UnknownResourceTypeError(f"Unknown resource type: {name!r}") from None
    resources = {
        ResourceType.MEMBERS: ResourceConfig(
            resource_type=ResourceType.MEMBERS,
            url_template=f"{base}/personlista/?utformat=json",
            batch_param="sz",
            response_shapes=(("personlista", "person"),),
            priority=1,
            default_batch_size=100,
            max_batch_size=200,
            estimated_total=500,
            enabled=ResourceType.MEMBERS not in off,
            sync_interval_hours=168.0,
        ),
        ResourceType.DOCUMENTS: ResourceConfig(
            resource_type=ResourceType.DOCUMENTS,
            url_template=f"{base}/dokumentlista/?from=&tom=&utformat=json&sort=datum&sortorder=desc",
            batch_param="sz",
            response_shapes=(("dokumentlista", "dokument"),),
            priority=2,
            default_batch_size=50,
            max_batch_size=100,
            date_filter_keys=frozenset({"from", "tom"}),
            estimated_total=2000,
            enabled=ResourceType.DOCUMENTS not in off,
        ),
        ResourceType.SPEECHES: ResourceConfig(
            resource_type=ResourceType.SPEECHES,
            url_template=f"{base}/anforandelista/?anf_datum_from=&anf_datum_tom=&utformat=json",
            batch_param="anftal",
            response_shapes=(("anforandelista", "anforande"),),
            priority=3,
            default_batch_size=40,
            max_batch_size=75,
            date_filter_keys=frozenset({"anf_datum_from", "anf_datum_tom"}),
            estimated_total=1500,
            enabled=ResourceType.SPEECHES not in off,
        ),
        ResourceType.VOTES: ResourceConfig(
            resource_type=ResourceType.VOTES,
            url_template=f"{base}/voteringlista/?from=&tom=&utformat=json",
            batch_param="sz",
            response_shapes=(("voteringlista", "votering"), ("votering", "dokvotering")),
            priority=4,
            default_batch_size=75,
            max_batch_size=150,
            date_filter_keys=frozenset({"from", "tom"}),
            estimated_total=3000,
            enabled=ResourceType.VOTES not in off,
        ),
    }
    return SyncConfig(
        resources=resources,
        inter_phase_delay_seconds=inter_phase_delay_seconds,
    )
