"""League resolution and tool execution for one sport family.

The executor loads the caller's stored leagues, fills in missing or foreign
league/team/season arguments from the default league and dispatches to the
upstream fetch. Expected failures come back as `ToolCallResult` values.
"""

from __future__ import annotations

import datetime as _dt
import json
import logging
from typing import Any, Callable, Sequence

from fg_common.errors import ErrorCode

from . import formatting
from .espn_client import (
    FREE_AGENT_VIEWS,
    LEAGUE_INFO_VIEWS,
    MATCHUP_VIEWS,
    ROSTER_VIEWS,
    STANDINGS_VIEWS,
    EspnClient,
    UpstreamOutcome,
    clamp_limit,
    free_agent_filter,
    positions,
)
from .models import StoredLeague, ToolCallResult, UpstreamCredentials, VerifiedIdentity
from .seasons import SEASON_TIMEZONE, current_season_year, now_in_season_tz, same_sport
from .store_client import LeagueFetch, LeagueStoreClient, StoreError
from .tools import ToolKind, parse_tool_name

logger = logging.getLogger(__name__)


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _as_id(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    s = str(value).strip()
    return s or None


def _unique(values: Sequence[Any]) -> list[Any]:
    seen: list[Any] = []
    for v in values:
        if v is not None and v not in seen:
            seen.append(v)
    return seen


def resolve_default_league(leagues: Sequence[StoredLeague], current_season: int) -> StoredLeague | None:
    """Current season with a team, else any league with a team, else the first one."""
    for lg in leagues:
        if lg.has_team and lg.season_year == current_season:
            return lg
    for lg in leagues:
        if lg.has_team:
            return lg
    return leagues[0] if leagues else None


def normalize_arguments(
    args: dict[str, Any],
    leagues: Sequence[StoredLeague],
    current_season: int,
) -> dict[str, Any]:
    """Fill leagueId/teamId/seasonId from the caller's leagues.

    A leagueId the caller does not own is replaced by the default league's.
    """
    out = dict(args)
    default = resolve_default_league(leagues, current_season)
    provided = _as_id(args.get("leagueId"))
    owned = [lg for lg in leagues if lg.league_id == provided] if provided else []

    if not owned:
        if default is not None:
            if provided:
                logger.info("leagueId %s not owned by caller; using default %s", provided, default.league_id)
            out["leagueId"] = default.league_id
            if default.team_id and not _as_id(out.get("teamId")):
                out["teamId"] = default.team_id
            if default.season_year and _as_int(out.get("seasonId")) is None:
                out["seasonId"] = default.season_year
    else:
        out["leagueId"] = provided

    if owned and _as_int(out.get("seasonId")) is None:
        with_season = next((lg for lg in owned if lg.season_year), None)
        if with_season is not None:
            out["seasonId"] = with_season.season_year

    if _as_int(out.get("seasonId")) is None:
        out["seasonId"] = current_season
    else:
        out["seasonId"] = _as_int(out.get("seasonId"))

    if not _as_id(out.get("teamId")) and out.get("leagueId"):
        # same league and season as the resolved one
        match = next(
            (
                lg
                for lg in leagues
                if lg.league_id == out["leagueId"] and lg.season_year == out["seasonId"] and lg.has_team
            ),
            None,
        )
        if match is not None:
            out["teamId"] = match.team_id
    return out


class ToolExecutor:
    def __init__(
        self,
        sport: str,
        store: LeagueStoreClient,
        espn: EspnClient,
        *,
        now: Callable[[], _dt.datetime] = now_in_season_tz,
    ) -> None:
        self.sport = sport
        self.store = store
        self.espn = espn
        self.now = now

    def execute(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        identity: VerifiedIdentity,
        authorization: str | None = None,
    ) -> ToolCallResult:
        kind = parse_tool_name(self.sport, tool_name)
        if kind is None:
            return ToolCallResult.failure(ErrorCode.UNKNOWN_TOOL, f"Unknown tool: {tool_name}")

        fetch = self.store.fetch_leagues(identity, authorization)
        if fetch.auth_failed:
            logger.info("store rejected session (status=%s)", fetch.status)
            return ToolCallResult.auth_failure("Authentication failed. Please re-authorize.")

        matching = [lg for lg in fetch.leagues if same_sport(lg.sport, self.sport)]
        now = self.now()
        current_season = current_season_year(self.sport, now)

        if kind is ToolKind.SESSION:
            return ToolCallResult.ok(self.session_payload(fetch, matching, now, current_season))

        if not matching:
            return self._no_leagues(fetch)

        args = normalize_arguments(arguments, matching, current_season)
        logger.debug("executing %s with leagueId=%s seasonId=%s", tool_name, args.get("leagueId"), args.get("seasonId"))

        try:
            credentials = self.store.fetch_credentials(identity, authorization)
        except StoreError as e:
            if e.is_auth_failure:
                return ToolCallResult.auth_failure("Authentication failed. Please re-authorize.")
            raise
        if credentials is None:
            return ToolCallResult.failure(
                ErrorCode.ESPN_CREDENTIALS_NOT_FOUND,
                "No ESPN credentials stored. Add your SWID and espn_s2 cookies in settings.",
            )

        return self._fetch(kind, args, credentials)

    # --- session ------------------------------------------------------------

    def _instructions(self, fetch: LeagueFetch, matching: list[StoredLeague]) -> str:
        sport = self.sport
        if not matching:
            if fetch.leagues:
                others = ", ".join(_unique([lg.sport for lg in fetch.leagues]))
                return f"No {sport} leagues found, but found leagues for: {others}. Please add a {sport} league in settings."
            return "No leagues configured. Please add your ESPN credentials and a league in settings."

        if len(matching) > 1:
            seasons = sorted(_unique([lg.season_year for lg in matching]), reverse=True)
            if len(seasons) > 1:
                listing = "; ".join(
                    f"{lg.league_name or 'Unnamed league'} (leagueId={lg.league_id}, seasonYear={lg.season_year})"
                    for lg in matching
                )
                return (
                    f"User has {len(matching)} {sport} league entries across seasons "
                    f"{', '.join(str(s) for s in seasons)}. ASK which league AND season they want. "
                    f"List by leagueName, leagueId, AND seasonYear: {listing}. "
                    "Use matching teamId and seasonYear together."
                )
            listing = "; ".join(f"{lg.league_name or 'Unnamed league'} (leagueId={lg.league_id})" for lg in matching)
            return (
                f"User has {len(matching)} {sport} leagues configured. ASK which league they want. "
                f"List by leagueName and leagueId: {listing}."
            )

        league = matching[0]
        if league.season_year:
            return (
                f"Use leagueId={league.league_id}, teamId={league.team_id or 'none'}, "
                f"seasonId={league.season_year} for all tool calls."
            )
        return (
            "Use defaultLeague.leagueId and defaultLeague.teamId for all subsequent tool calls. "
            "Use currentSeason for seasonId parameter."
        )

    def session_payload(
        self,
        fetch: LeagueFetch,
        matching: list[StoredLeague],
        now: _dt.datetime,
        current_season: int,
    ) -> dict[str, Any]:
        default = resolve_default_league(matching, current_season)
        return {
            "success": True,
            "currentDate": now.isoformat(),
            "currentSeason": str(current_season),
            "timezone": SEASON_TIMEZONE,
            "sport": self.sport,
            "totalLeaguesFound": len(fetch.leagues),
            "sportLeaguesFound": len(matching),
            "defaultLeague": (
                default.model_dump(
                    by_alias=True,
                    exclude_none=True,
                    include={"league_id", "team_id", "season_year", "league_name", "team_name"},
                )
                if default
                else None
            ),
            "allLeagues": [lg.to_wire() for lg in fetch.leagues],
            "instructions": self._instructions(fetch, matching),
            "leagueFetchError": fetch.error,
        }

    def _no_leagues(self, fetch: LeagueFetch) -> ToolCallResult:
        if fetch.error:
            logger.error("league fetch failed (status=%s): %s", fetch.status, fetch.error)
            return ToolCallResult.failure(ErrorCode.LEAGUES_UNAVAILABLE, f"Unable to fetch your leagues: {fetch.error}")
        if fetch.leagues:
            others = ", ".join(_unique([lg.sport for lg in fetch.leagues]))
            return ToolCallResult.failure(
                ErrorCode.NO_LEAGUES,
                f"No {self.sport} leagues found, but found leagues for: {others}. "
                f"Please add a {self.sport} league in settings.",
            )
        return ToolCallResult.failure(
            ErrorCode.NO_LEAGUES,
            f"No {self.sport} leagues configured. Please add your ESPN credentials and select a league in settings.",
        )

    # --- upstream -----------------------------------------------------------

    def _fetch(self, kind: ToolKind, args: dict[str, Any], credentials: UpstreamCredentials) -> ToolCallResult:
        league_id = str(args["leagueId"])
        season = int(args["seasonId"])

        views = {
            ToolKind.LEAGUE_INFO: LEAGUE_INFO_VIEWS,
            ToolKind.STANDINGS: STANDINGS_VIEWS,
            ToolKind.MATCHUPS: MATCHUP_VIEWS,
            ToolKind.ROSTER: ROSTER_VIEWS,
            ToolKind.FREE_AGENTS: FREE_AGENT_VIEWS,
        }[kind]
        extra: list[tuple[str, Any]] = []
        headers: dict[str, str] = {}
        week = _as_int(args.get("week"))
        if kind is ToolKind.MATCHUPS and week is not None:
            extra.append(("scoringPeriodId", week))

        team_id = _as_id(args.get("teamId"))
        if kind is ToolKind.ROSTER and team_id is None:
            return ToolCallResult.failure(ErrorCode.INVALID_ARGUMENTS, "teamId is required for a roster lookup")

        position = str(args.get("position") or "ALL").strip().upper()
        if position not in positions(self.sport):
            position = "ALL"
        limit = clamp_limit(_as_int(args.get("limit")))
        if kind is ToolKind.FREE_AGENTS:
            headers["X-Fantasy-Filter"] = free_agent_filter(self.sport, position, limit)

        outcome = self.espn.fetch_league(
            sport=self.sport,
            league_id=league_id,
            season_year=season,
            credentials=credentials,
            views=views,
            extra_params=extra,
            extra_headers=headers,
        )
        if not outcome.ok:
            return self._upstream_failure(outcome)

        league = outcome.league
        assert league is not None
        if kind is ToolKind.LEAGUE_INFO:
            body = formatting.league_info(league, season)
        elif kind is ToolKind.STANDINGS:
            body = formatting.standings(league, season)
        elif kind is ToolKind.MATCHUPS:
            body = formatting.matchups(league, season, week)
        elif kind is ToolKind.FREE_AGENTS:
            body = formatting.free_agents(league, season, position, limit)
        else:
            body = formatting.roster(league, season, team_id or "")
            if body is None:
                return ToolCallResult.failure(ErrorCode.ESPN_NOT_FOUND, f"Team {team_id} not found in league {league_id}")

        return ToolCallResult.ok({"success": True, "leagueId": league_id, "seasonId": season, "data": body})

    @staticmethod
    def _upstream_failure(outcome: UpstreamOutcome) -> ToolCallResult:
        code = outcome.error_code or ErrorCode.ESPN_API_ERROR
        return ToolCallResult.failure(code, outcome.message or "ESPN request failed")


def render_content(content: Any) -> str:
    """Tool content as the text block sent to the client."""
    if isinstance(content, str):
        return content
    return json.dumps(content, indent=2, ensure_ascii=False, default=str)
