from __future__ import annotations

from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictStr, field_validator
from pydantic.alias_generators import to_camel

from fg_config.settings import MIN_SEASON_YEAR


class _CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class VerifiedIdentity(_CamelModel):
    subject_id: str
    issuer: str
    expires_at: Optional[int] = None


class StoredLeague(_CamelModel):
    platform: str = "espn"
    league_id: str
    sport: str
    season_year: Optional[int] = None
    team_id: Optional[str] = None
    league_name: Optional[str] = None
    team_name: Optional[str] = None
    is_default: Optional[bool] = None

    @field_validator("league_id", "team_id", mode="before")
    @classmethod
    def _ids_as_str(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(int(v))
        if isinstance(v, str):
            return v.strip() or None
        return v

    @field_validator("sport", mode="before")
    @classmethod
    def _sport_lower(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("season_year")
    @classmethod
    def _four_digit_year(cls, v: Optional[int]) -> Optional[int]:
        if v is None:
            return v
        if not (MIN_SEASON_YEAR <= v <= 9999):
            raise ValueError(f"season year must be a 4-digit year >= {MIN_SEASON_YEAR}")
        return v

    @property
    def has_team(self) -> bool:
        return bool(self.team_id)


class UpstreamCredentials(BaseModel):
    """Upstream session cookies. Never logged."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    primary_secret: str = Field(alias="swid", repr=False, min_length=1)
    secondary_secret: str = Field(alias="s2", repr=False, min_length=1)
    owner_email: Optional[str] = Field(default=None, alias="email", repr=False)

    def cookie_header(self) -> str:
        return f"SWID={self.primary_secret}; espn_s2={self.secondary_secret}"


class ToolCallRequest(_CamelModel):
    """A tool invocation; JSON-RPC sends `name`, the REST adapter `tool`."""

    tool_name: StrictStr = Field(min_length=1, validation_alias=AliasChoices("name", "tool", "toolName"))
    arguments: dict[str, Any] = Field(default_factory=dict)

    @field_validator("arguments", mode="before")
    @classmethod
    def _no_arguments(cls, v: Any) -> Any:
        return {} if v is None else v


class ToolCallResult(BaseModel):
    content: Any = None
    is_error: bool = False
    auth_error: bool = False
    error_code: Optional[str] = None

    @classmethod
    def ok(cls, content: Any) -> "ToolCallResult":
        return cls(content=content)

    @classmethod
    def failure(cls, code: str, message: str) -> "ToolCallResult":
        return cls(content=f"{code}: {message}", is_error=True, error_code=code)

    @classmethod
    def auth_failure(cls, message: str = "Authentication failed") -> "ToolCallResult":
        return cls(content=message, is_error=True, auth_error=True)


class DiscoveredSeason(_CamelModel):
    season_year: int
    league_name: str
    team_count: int
    team_id: Optional[str] = None
    team_name: Optional[str] = None


class DiscoveryResult(_CamelModel):
    league_id: str
    sport: str
    start_year: int
    discovered: List[DiscoveredSeason] = Field(default_factory=list)
    skipped: int = 0
    rate_limited: bool = False
    limit_exceeded: bool = False
    min_year_reached: bool = False
    cancelled: bool = False
    error: Optional[dict] = None

    @property
    def discovered_years(self) -> list[int]:
        return [s.season_year for s in self.discovered]


# --- upstream payload shapes -----------------------------------------------


class EspnTeamRecord(_CamelModel):
    wins: int = 0
    losses: int = 0
    ties: int = 0
    percentage: float = 0.0
    points_for: float = 0.0
    points_against: float = 0.0


class EspnTeamRecords(_CamelModel):
    overall: Optional[EspnTeamRecord] = None


class EspnOwnership(_CamelModel):
    percent_owned: Optional[float] = None
    percent_started: Optional[float] = None


class EspnPlayer(_CamelModel):
    id: Optional[int] = None
    full_name: Optional[str] = None
    default_position_id: Optional[int] = None
    eligible_slots: List[int] = Field(default_factory=list)
    pro_team_id: Optional[int] = None
    injury_status: Optional[str] = None
    ownership: Optional[EspnOwnership] = None


class EspnPlayerPoolEntry(_CamelModel):
    player: Optional[EspnPlayer] = None


class EspnRosterEntry(_CamelModel):
    player_id: Optional[int] = None
    lineup_slot_id: Optional[int] = None
    player_pool_entry: Optional[EspnPlayerPoolEntry] = None

    @property
    def player(self) -> EspnPlayer:
        return (self.player_pool_entry.player if self.player_pool_entry else None) or EspnPlayer()


class EspnRoster(_CamelModel):
    entries: List[EspnRosterEntry] = Field(default_factory=list)


class EspnTeam(_CamelModel):
    id: int
    location: Optional[str] = None
    nickname: Optional[str] = None
    name: Optional[str] = None
    abbrev: Optional[str] = None
    owners: List[str] = Field(default_factory=list)
    playoff_seed: Optional[int] = None
    record: Optional[EspnTeamRecords] = None
    roster: Optional[EspnRoster] = None

    @property
    def display_name(self) -> str:
        parts = [p for p in (self.location, self.nickname) if p]
        if parts:
            return " ".join(parts).strip()
        return self.name or f"Team {self.id}"

    @property
    def overall_record(self) -> EspnTeamRecord:
        return (self.record.overall if self.record else None) or EspnTeamRecord()


class EspnSettings(_CamelModel):
    name: Optional[str] = None
    size: Optional[int] = None


class EspnStatus(_CamelModel):
    current_matchup_period: Optional[int] = None
    is_active: Optional[bool] = None


class EspnMatchupSide(_CamelModel):
    team_id: Optional[int] = None
    total_points: Optional[float] = None


class EspnScheduleEntry(_CamelModel):
    matchup_period_id: Optional[int] = None
    home: Optional[EspnMatchupSide] = None
    away: Optional[EspnMatchupSide] = None
    winner: Optional[str] = None


class EspnFreeAgent(_CamelModel):
    """One `kona_player_info` entry: a player not on any roster."""

    id: Optional[int] = None
    status: Optional[str] = None
    waiver_process_date: Optional[int] = None
    player: Optional[EspnPlayer] = None


class EspnLeague(_CamelModel):
    id: Optional[int] = None
    season_id: Optional[int] = None
    scoring_period_id: Optional[int] = None
    settings: Optional[EspnSettings] = None
    status: Optional[EspnStatus] = None
    teams: List[EspnTeam] = Field(default_factory=list)
    schedule: List[EspnScheduleEntry] = Field(default_factory=list)
    players: List[EspnFreeAgent] = Field(default_factory=list)

    @property
    def league_name(self) -> str:
        return (self.settings.name if self.settings else None) or f"League {self.id}"

    def team(self, team_id: str | int | None) -> Optional[EspnTeam]:
        if team_id is None:
            return None
        for t in self.teams:
            if str(t.id) == str(team_id):
                return t
        return None
