"""Shape validated upstream payloads into compact tool content."""

from __future__ import annotations

from typing import Any

from .models import EspnLeague, EspnMatchupSide, EspnPlayer, EspnTeam


def _team_summary(team: EspnTeam) -> dict[str, Any]:
    rec = team.overall_record
    return {
        "teamId": str(team.id),
        "name": team.display_name,
        "abbrev": team.abbrev,
        "wins": rec.wins,
        "losses": rec.losses,
        "ties": rec.ties,
        "winPct": round(rec.percentage, 3),
        "pointsFor": rec.points_for,
        "pointsAgainst": rec.points_against,
        "playoffSeed": team.playoff_seed,
    }


def sorted_standings(league: EspnLeague) -> list[dict[str, Any]]:
    rows = [_team_summary(t) for t in league.teams]
    rows.sort(key=lambda r: (r["winPct"], r["wins"]), reverse=True)
    for rank, row in enumerate(rows, start=1):
        row["rank"] = rank
    return rows


def league_info(league: EspnLeague, season_year: int) -> dict[str, Any]:
    status = league.status
    return {
        "leagueId": str(league.id) if league.id is not None else None,
        "leagueName": league.league_name,
        "seasonId": league.season_id or season_year,
        "size": (league.settings.size if league.settings else None) or len(league.teams),
        "currentMatchupPeriod": status.current_matchup_period if status else None,
        "isActive": status.is_active if status else None,
        "teams": [{"teamId": str(t.id), "name": t.display_name, "abbrev": t.abbrev} for t in league.teams],
    }


def standings(league: EspnLeague, season_year: int) -> dict[str, Any]:
    return {
        "leagueName": league.league_name,
        "seasonId": league.season_id or season_year,
        "standings": sorted_standings(league),
    }


def _side(league: EspnLeague, side: EspnMatchupSide | None) -> dict[str, Any] | None:
    if side is None or side.team_id is None:
        return None
    team = league.team(side.team_id)
    return {
        "teamId": str(side.team_id),
        "name": team.display_name if team else None,
        "totalPoints": side.total_points,
    }


def matchups(league: EspnLeague, season_year: int, week: int | None = None) -> dict[str, Any]:
    period = week
    if period is None and league.status is not None:
        period = league.status.current_matchup_period
    games = []
    for m in league.schedule:
        if period is not None and m.matchup_period_id != period:
            continue
        games.append(
            {
                "matchupPeriodId": m.matchup_period_id,
                "home": _side(league, m.home),
                "away": _side(league, m.away),
                "winner": m.winner,
            }
        )
    return {"leagueName": league.league_name, "seasonId": league.season_id or season_year, "week": period, "matchups": games}


def _player(player: EspnPlayer) -> dict[str, Any]:
    return {
        "playerId": player.id,
        "name": player.full_name,
        "defaultPositionId": player.default_position_id,
        "injuryStatus": player.injury_status,
        "proTeamId": player.pro_team_id,
    }


def roster(league: EspnLeague, season_year: int, team_id: str) -> dict[str, Any] | None:
    team = league.team(team_id)
    if team is None:
        return None
    players = []
    for entry in (team.roster.entries if team.roster else []):
        row = _player(entry.player)
        row["playerId"] = entry.player_id if entry.player_id is not None else row["playerId"]
        row["lineupSlotId"] = entry.lineup_slot_id
        players.append(row)
    return {
        "teamId": str(team.id),
        "teamName": team.display_name,
        "seasonId": league.season_id or season_year,
        "players": players,
    }


def free_agents(league: EspnLeague, season_year: int, position: str, limit: int) -> dict[str, Any]:
    """Unrostered players, most owned first as ESPN sorts them."""
    rows = []
    for entry in league.players[:limit]:
        player = entry.player or EspnPlayer(id=entry.id)
        row = _player(player)
        ownership = player.ownership
        row.update(
            {
                "eligibleSlots": player.eligible_slots,
                "percentOwned": ownership.percent_owned if ownership else None,
                "percentStarted": ownership.percent_started if ownership else None,
                "status": entry.status,
                "waiverProcessDate": entry.waiver_process_date,
            }
        )
        rows.append(row)
    return {
        "seasonId": league.season_id or season_year,
        "position": position,
        "count": len(rows),
        "freeAgents": rows,
    }
