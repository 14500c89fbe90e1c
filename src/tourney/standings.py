"""
Pool completion detection, standings and aggregate statistics.

All functions work on match rows (dicts) as they are stored, keyed by team id,
together with a team lookup of {team_id: team_row}.
"""
from typing import Dict, List, Optional

from .models import COMPLETED, POOL_PLAY, PLAYOFFS

UNKNOWN_TEAM = 'Unknown Team'
DEFAULT_POOL_NAME = 'Pool'


def team_name(team_lookup: Dict, team_id: Optional[str]) -> str:
    team = team_lookup.get(team_id) if team_id else None
    if not team:
        return UNKNOWN_TEAM
    return team.get('name', UNKNOWN_TEAM)


def match_points(match: Dict) -> tuple:
    """Total points scored by (team1, team2) across banked sets."""
    team1_points = 0
    team2_points = 0
    for scores in (match.get('set_scores') or {}).values():
        team1_points += scores.get('team1') or 0
        team2_points += scores.get('team2') or 0
    return team1_points, team2_points


def is_pool_match(match: Dict) -> bool:
    return match.get('tournament_phase', POOL_PLAY) == POOL_PLAY


def group_matches_by_pool(matches: List[Dict]) -> Dict[str, List[Dict]]:
    pools = {}
    for match in matches:
        if not is_pool_match(match):
            continue
        pools.setdefault(match.get('pool_name') or DEFAULT_POOL_NAME, []).append(match)
    return dict(sorted(pools.items()))


def _standing_sort_key(standing: Dict) -> tuple:
    return (-standing['win_percentage'], -standing['set_diff'], -standing['sets_won'],
            -standing['point_diff'], standing['team'])


def calculate_pool_standings(matches: List[Dict], team_lookup: Dict, pool_name: Optional[str] = None) -> List[Dict]:
    """
    Calculate standings for one pool from its match rows.

    Every team that appears in a match gets a row; only completed matches count.
    Ranking: win percentage -> set differential -> sets won -> point differential -> name
    """
    team_stats = {}
    for match in matches:
        for team_id in (match.get('team1_id'), match.get('team2_id')):
            if team_id and team_id not in team_stats:
                team_stats[team_id] = {
                    'team_id': team_id,
                    'team': team_name(team_lookup, team_id),
                    'pool': pool_name or match.get('pool_name'),
                    'wins': 0,
                    'losses': 0,
                    'sets_won': 0,
                    'sets_lost': 0,
                    'points_for': 0,
                    'points_against': 0,
                    'matches_played': 0
                }

    for match in matches:
        if match.get('status') != COMPLETED:
            continue
        team1_id = match.get('team1_id')
        team2_id = match.get('team2_id')
        if not team1_id or not team2_id:
            continue

        team1 = team_stats[team1_id]
        team2 = team_stats[team2_id]
        sets1 = match.get('sets_won_team1') or 0
        sets2 = match.get('sets_won_team2') or 0
        points1, points2 = match_points(match)

        team1['sets_won'] += sets1
        team1['sets_lost'] += sets2
        team2['sets_won'] += sets2
        team2['sets_lost'] += sets1
        team1['points_for'] += points1
        team1['points_against'] += points2
        team2['points_for'] += points2
        team2['points_against'] += points1
        team1['matches_played'] += 1
        team2['matches_played'] += 1

        if sets1 > sets2:
            team1['wins'] += 1
            team2['losses'] += 1
        elif sets2 > sets1:
            team2['wins'] += 1
            team1['losses'] += 1

    for stats in team_stats.values():
        decided = stats['wins'] + stats['losses']
        stats['win_percentage'] = stats['wins'] / decided if decided > 0 else 0
        stats['set_diff'] = stats['sets_won'] - stats['sets_lost']
        stats['point_diff'] = stats['points_for'] - stats['points_against']

    standings = sorted(team_stats.values(), key=_standing_sort_key)
    for position, standing in enumerate(standings, start=1):
        standing['position'] = position
    return standings


def calculate_all_pool_standings(matches: List[Dict], team_lookup: Dict) -> Dict[str, List[Dict]]:
    """Standings for every pool, complete or not. Used to seed the playoffs."""
    return {
        pool_name: calculate_pool_standings(pool_matches, team_lookup, pool_name)
        for pool_name, pool_matches in group_matches_by_pool(matches).items()
    }


def check_pool_completion(matches: List[Dict], teams: List[Dict]) -> Dict:
    """
    Report how far pool play has progressed.

    Returns dict with:
    - all_pools_complete, total_pools, completed_pools
    - pool_stats: [{'pool_name', 'total_matches', 'completed_matches', 'is_complete', 'standings'}]
      (standings are only filled in for complete pools)
    - ready_for_brackets: every pool is complete and there is at least one
    """
    team_lookup = {team['id']: team for team in teams}
    pools = group_matches_by_pool(matches)

    if not pools:
        return {
            'all_pools_complete': False,
            'total_pools': 0,
            'completed_pools': 0,
            'pool_stats': [],
            'ready_for_brackets': False
        }

    pool_stats = []
    for pool_name, pool_matches in pools.items():
        completed = [m for m in pool_matches if m.get('status') == COMPLETED]
        is_complete = len(completed) == len(pool_matches)
        pool_stats.append({
            'pool_name': pool_name,
            'total_matches': len(pool_matches),
            'completed_matches': len(completed),
            'is_complete': is_complete,
            'standings': calculate_pool_standings(pool_matches, team_lookup, pool_name) if is_complete else []
        })

    completed_pools = sum(1 for p in pool_stats if p['is_complete'])
    all_complete = completed_pools == len(pool_stats)
    return {
        'all_pools_complete': all_complete,
        'total_pools': len(pool_stats),
        'completed_pools': completed_pools,
        'pool_stats': pool_stats,
        'ready_for_brackets': all_complete and len(pool_stats) > 0
    }


def get_advancement_recommendation(total_teams: int) -> Dict:
    """Suggest how many teams per pool should reach the playoffs."""
    if total_teams <= 8:
        return {
            'teams_per_pool': 1,
            'reasoning': 'With 8 or fewer teams, advance top team from each pool for clean bracket',
            'bracket_size': min(total_teams, 8)
        }
    if total_teams <= 16:
        return {
            'teams_per_pool': 2,
            'reasoning': 'Advance top 2 from each pool for optimal 8-16 team bracket',
            'bracket_size': min(total_teams, 16)
        }
    if total_teams <= 24:
        return {
            'teams_per_pool': 2,
            'reasoning': 'Advance top 2 from each pool for competitive 16+ team bracket',
            'bracket_size': min(total_teams, 24)
        }
    return {
        'teams_per_pool': 3,
        'reasoning': 'Large tournament - advance top 3 from each pool',
        'bracket_size': min(total_teams, 32)
    }


def calculate_team_stats(matches: List[Dict], teams: List[Dict]) -> List[Dict]:
    """Per-team totals over every completed match, pool play and playoffs."""
    stats = {}
    for team in teams:
        stats[team['id']] = {
            'team_id': team['id'],
            'team': team.get('name', UNKNOWN_TEAM),
            'matches_played': 0,
            'matches_won': 0,
            'matches_lost': 0,
            'points_for': 0,
            'points_against': 0,
        }

    for match in matches:
        if match.get('status') != COMPLETED or match.get('is_bye'):
            continue
        team1_id = match.get('team1_id')
        team2_id = match.get('team2_id')
        if team1_id not in stats or team2_id not in stats:
            continue
        points1, points2 = match_points(match)
        for team_id, scored, conceded in ((team1_id, points1, points2), (team2_id, points2, points1)):
            row = stats[team_id]
            row['matches_played'] += 1
            row['points_for'] += scored
            row['points_against'] += conceded
            if match.get('winner_id') == team_id:
                row['matches_won'] += 1
            elif match.get('winner_id'):
                row['matches_lost'] += 1

    for row in stats.values():
        played = row['matches_played']
        row['win_percentage'] = round(row['matches_won'] / played, 3) if played else 0
    return sorted(stats.values(), key=lambda r: (-r['win_percentage'], -r['matches_won'], r['team']))


def calculate_match_stats(matches: List[Dict], team_lookup: Dict) -> Optional[Dict]:
    """
    Aggregate statistics across all completed matches.

    Returns dict with total_points, matches_completed, average_margin,
    closest_match and biggest_blowout, or None if nothing has been played.
    """
    all_matches = []
    for match in matches:
        if match.get('status') != COMPLETED or match.get('is_bye'):
            continue
        set_scores = match.get('set_scores') or {}
        if not set_scores:
            continue
        points1, points2 = match_points(match)
        winner_id = match.get('winner_id')
        loser_id = match.get('team2_id') if winner_id == match.get('team1_id') else match.get('team1_id')
        score_line = ' / '.join(
            f"{scores.get('team1', 0)}-{scores.get('team2', 0)}"
            for _, scores in sorted(set_scores.items(), key=lambda item: int(item[0][3:]))
        )
        all_matches.append({
            'winner': team_name(team_lookup, winner_id),
            'loser': team_name(team_lookup, loser_id),
            'margin': abs(points1 - points2),
            'total_points': points1 + points2,
            'score_line': score_line,
        })

    if not all_matches:
        return None

    closest = min(all_matches, key=lambda m: m['margin'])
    biggest = max(all_matches, key=lambda m: m['margin'])
    total_points = sum(m['total_points'] for m in all_matches)
    average_margin = sum(m['margin'] for m in all_matches) / len(all_matches)

    return {
        'total_points': total_points,
        'matches_completed': len(all_matches),
        'average_margin': round(average_margin, 1),
        'closest_match': {
            'winner': closest['winner'],
            'loser': closest['loser'],
            'score': closest['score_line'],
            'margin': closest['margin'],
        },
        'biggest_blowout': {
            'winner': biggest['winner'],
            'loser': biggest['loser'],
            'score': biggest['score_line'],
            'margin': biggest['margin'],
        },
    }


def determine_tournament_phase(matches: List[Dict]) -> str:
    """One of: 'setup', 'pool_play', 'bracket', 'complete'."""
    if not matches:
        return 'setup'

    playoff_matches = [m for m in matches if m.get('tournament_phase') == PLAYOFFS]
    if playoff_matches:
        finals = [m for m in playoff_matches if not m.get('advances_to')]
        if finals and all(m.get('status') == COMPLETED for m in finals):
            return 'complete'
        return 'bracket'

    return 'pool_play'
