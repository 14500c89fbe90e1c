"""
Pool play generation: pool sizing, round-robin pairings and referee duty.
"""
import logging
from typing import Dict, List, Optional

from .models import Match, Pool, Team, DEFAULT_SKILL_LEVEL, POOL_PLAY
from .allocation import CourtScheduler

logger = logging.getLogger(__name__)

PREFERRED_POOL_SIZE = 4


def pool_match_count(team_count: int) -> int:
    """Number of round-robin matches in a pool of the given size."""
    return (team_count * (team_count - 1)) // 2


def calculate_optimal_pool_configuration(team_count: int) -> Dict:
    """
    Split teams into pools, favouring pools of 4 (6 matches each) over
    larger pools so that pool play finishes sooner.

    Returns dict with:
    - num_pools: number of pools
    - teams_per_pool: list with the size of each pool
    - total_matches: round-robin matches across all pools
    """
    if team_count <= 0:
        return {'num_pools': 0, 'teams_per_pool': [], 'total_matches': 0}

    if team_count <= PREFERRED_POOL_SIZE:
        return {
            'num_pools': 1,
            'teams_per_pool': [team_count],
            'total_matches': pool_match_count(team_count)
        }

    num_full_pools = team_count // PREFERRED_POOL_SIZE
    remainder = team_count % PREFERRED_POOL_SIZE

    if remainder == 0:
        teams_per_pool = [PREFERRED_POOL_SIZE] * num_full_pools
    elif remainder == 1:
        # One pool grows to 5 instead of leaving a team alone
        teams_per_pool = [PREFERRED_POOL_SIZE] * (num_full_pools - 1) + [PREFERRED_POOL_SIZE + 1]
    else:
        # 2 or 3 leftover teams form their own pool
        teams_per_pool = [PREFERRED_POOL_SIZE] * num_full_pools + [remainder]

    return {
        'num_pools': len(teams_per_pool),
        'teams_per_pool': teams_per_pool,
        'total_matches': sum(pool_match_count(size) for size in teams_per_pool)
    }


def get_pool_name(index: int, skill_level: Optional[str] = None) -> str:
    base_name = chr(ord('A') + index)
    return f"{skill_level}-{base_name}" if skill_level else base_name


def generate_pools(teams: List[Team], skill_level: Optional[str] = None) -> List[Pool]:
    """Distribute teams, in the given order, into optimally sized pools."""
    config = calculate_optimal_pool_configuration(len(teams))
    pools = []
    team_index = 0
    for pool_index, pool_size in enumerate(config['teams_per_pool']):
        pool = Pool(name=get_pool_name(pool_index, skill_level))
        pool.teams = list(teams[team_index:team_index + pool_size])
        team_index += pool_size
        pools.append(pool)
    return pools


def _round_robin_rounds(teams: List[Team]) -> List[List[tuple]]:
    """
    Circle method: the first team stays fixed while the others rotate.
    Each team appears at most once per round; odd pools get one bye per round.
    """
    rotation = list(teams)
    if len(rotation) % 2 == 1:
        rotation.append(None)

    size = len(rotation)
    rounds = []
    for _ in range(size - 1):
        pairings = []
        for i in range(size // 2):
            team1, team2 = rotation[i], rotation[size - 1 - i]
            if team1 is not None and team2 is not None:
                pairings.append((team1, team2))
        rounds.append(pairings)
        rotation = [rotation[0], rotation[-1]] + rotation[1:-1]
    return rounds


def generate_round_robin_matches(pool: Pool) -> List[Match]:
    """Every pair of teams in the pool meets once, grouped into rest-friendly rounds."""
    if len(pool.teams) < 2:
        logger.warning("Pool %s has fewer than 2 teams (%d found). Skipping match generation.",
                       pool.name, len(pool.teams))
        return []

    matches = []
    match_number = 1
    for round_index, pairings in enumerate(_round_robin_rounds(pool.teams), start=1):
        for team1, team2 in pairings:
            matches.append(Match(
                team1_id=team1.id,
                team2_id=team2.id,
                round_number=1,  # Pool play is round 1 of the tournament
                match_number=match_number,
                pool_name=pool.name,
                pool_round=round_index,
                tournament_phase=POOL_PLAY,
            ))
            match_number += 1
    return matches


def assign_referees(matches: List[Match], all_teams: List[Team],
                    pools: Optional[List[Pool]] = None) -> List[Match]:
    """
    Give every match a referee team that is not playing in it.

    Preference order: a team from the same pool sitting out that pool round,
    any team from the same pool, then any other team. Ties go to the team
    with the fewest duties so far, then to input order.
    """
    duties = {team.id: 0 for team in all_teams}
    team_order = {team.id: index for index, team in enumerate(all_teams)}
    pool_members = {}
    for pool in pools or []:
        pool_members[pool.name] = {team.id for team in pool.teams}

    playing_in_round = {}
    for match in matches:
        key = (match.pool_name, match.pool_round)
        playing_in_round.setdefault(key, set()).update(match.team_ids())

    for match in matches:
        playing = set(match.team_ids())
        candidates = [team.id for team in all_teams if team.id not in playing]
        if not candidates:
            logger.warning("No referee available for match %s in pool %s", match.match_number, match.pool_name)
            continue

        same_pool = pool_members.get(match.pool_name, set())
        busy = playing_in_round.get((match.pool_name, match.pool_round), set())

        def preference(team_id):
            if team_id in same_pool and team_id not in busy:
                tier = 0
            elif team_id in same_pool:
                tier = 1
            else:
                tier = 2
            return (tier, duties[team_id], team_order[team_id])

        referee_id = min(candidates, key=preference)
        match.referee_team_id = referee_id
        duties[referee_id] += 1

    return matches


def _group_by_skill_level(teams: List[Team]) -> Dict[str, List[Team]]:
    groups = {}
    for team in teams:
        groups.setdefault(team.skill_level or DEFAULT_SKILL_LEVEL, []).append(team)
    return groups


def generate_pool_play_schedule_by_skill_level(teams: List[Team], first_game_time, game_duration: int,
                                               warm_up_duration: int = 7) -> Dict:
    """
    Build pools separately for each skill level, then referee and schedule
    all pool matches together with one court per pool.

    Returns dict with:
    - pools: list of Pool
    - matches: list of scheduled Match
    - required_courts: one per pool
    - skill_level_breakdown: {skill_level: {'pools', 'matches', 'teams'}}
    """
    all_pools = []
    all_matches = []
    breakdown = {}

    for skill_level, skill_teams in _group_by_skill_level(teams).items():
        pools = generate_pools(skill_teams, skill_level)
        skill_matches = []
        for pool in pools:
            skill_matches.extend(generate_round_robin_matches(pool))

        breakdown[skill_level] = {
            'pools': len(pools),
            'matches': len(skill_matches),
            'teams': len(skill_teams)
        }
        all_pools.extend(pools)
        all_matches.extend(skill_matches)

    assign_referees(all_matches, teams, all_pools)

    required_courts = len(all_pools)
    if all_matches:
        scheduler = CourtScheduler(required_courts, first_game_time, game_duration, warm_up_duration)
        scheduler.schedule_matches(all_matches)

    logger.info("Generated %d pools and %d pool matches for %d teams",
                len(all_pools), len(all_matches), len(teams))
    return {
        'pools': all_pools,
        'matches': all_matches,
        'required_courts': required_courts,
        'skill_level_breakdown': breakdown
    }


def generate_pool_play_schedule(teams: List[Team], first_game_time, game_duration: int,
                                number_of_courts: Optional[int] = None,
                                warm_up_duration: int = 7) -> Dict:
    """Pool play for a single group of teams, scheduled on the given number of courts."""
    pools = generate_pools(teams)
    matches = []
    for pool in pools:
        matches.extend(generate_round_robin_matches(pool))

    assign_referees(matches, teams, pools)

    courts = number_of_courts or len(pools)
    if matches:
        scheduler = CourtScheduler(courts, first_game_time, game_duration, warm_up_duration)
        scheduler.schedule_matches(matches)

    return {'pools': pools, 'matches': matches}
