"""Static tool catalog served by `tools/list`, one family per sport."""

from __future__ import annotations

import enum

from mcp import types

from .espn_client import FREE_AGENT_DEFAULT_LIMIT, FREE_AGENT_MAX_LIMIT, positions

SESSION_TOOL = "get_user_session"

SECURITY_SCHEMES = [{"type": "oauth2", "scopes": ["mcp:read"]}]


class ToolKind(str, enum.Enum):
    SESSION = "session"
    LEAGUE_INFO = "league_info"
    STANDINGS = "standings"
    MATCHUPS = "matchups"
    ROSTER = "team_roster"
    FREE_AGENTS = "free_agents"


_LEAGUE_ID = {"type": "string", "description": "League id. Defaults to the user's default league."}
_SEASON_ID = {"type": "number", "description": "Season year, e.g. 2025. Defaults to the league's stored season."}
_TEAM_ID = {"type": "string", "description": "Team id. Defaults to the user's team in the league."}
_WEEK = {"type": "number", "description": "Matchup period (week). Defaults to the current one."}


def tool_name(sport: str, kind: ToolKind) -> str:
    if kind is ToolKind.SESSION:
        return SESSION_TOOL
    return f"get_espn_{sport}_{kind.value}"


def parse_tool_name(sport: str, name: str) -> ToolKind | None:
    for kind in ToolKind:
        if tool_name(sport, kind) == name:
            return kind
    return None


def _schema(**props: dict) -> dict:
    return {"type": "object", "properties": props, "additionalProperties": False}


def catalog(sport: str) -> list[types.Tool]:
    label = sport.capitalize()
    return [
        types.Tool(
            name=SESSION_TOOL,
            description=(
                f"Call this first. Returns the user's {sport} leagues, the default league, the current "
                "season and instructions for which leagueId/teamId/seasonId to use."
            ),
            inputSchema=_schema(),
        ),
        types.Tool(
            name=tool_name(sport, ToolKind.LEAGUE_INFO),
            description=f"ESPN Fantasy {label} league settings, teams and status.",
            inputSchema=_schema(leagueId=_LEAGUE_ID, seasonId=_SEASON_ID),
        ),
        types.Tool(
            name=tool_name(sport, ToolKind.STANDINGS),
            description=f"ESPN Fantasy {label} league standings ordered by win percentage.",
            inputSchema=_schema(leagueId=_LEAGUE_ID, seasonId=_SEASON_ID),
        ),
        types.Tool(
            name=tool_name(sport, ToolKind.MATCHUPS),
            description=f"ESPN Fantasy {label} matchups and scores, optionally for one week.",
            inputSchema=_schema(leagueId=_LEAGUE_ID, seasonId=_SEASON_ID, week=_WEEK),
        ),
        types.Tool(
            name=tool_name(sport, ToolKind.ROSTER),
            description=f"ESPN Fantasy {label} roster for a team.",
            inputSchema=_schema(leagueId=_LEAGUE_ID, teamId=_TEAM_ID, seasonId=_SEASON_ID),
        ),
        types.Tool(
            name=tool_name(sport, ToolKind.FREE_AGENTS),
            description=(
                f"ESPN Fantasy {label} free agents and waiver-wire players, most owned first. "
                "Optionally filtered by position."
            ),
            inputSchema=_schema(
                leagueId=_LEAGUE_ID,
                seasonId=_SEASON_ID,
                position={"type": "string", "enum": positions(sport), "description": "Position filter (default: ALL)."},
                limit={
                    "type": "number",
                    "description": f"Players to return (default {FREE_AGENT_DEFAULT_LIMIT}, max {FREE_AGENT_MAX_LIMIT}).",
                },
            ),
        ),
    ]


def list_tools_payload(sport: str) -> list[dict]:
    out = []
    for tool in catalog(sport):
        entry = tool.model_dump(by_alias=True, exclude_none=True)
        entry["securitySchemes"] = SECURITY_SCHEMES
        out.append(entry)
    return out
