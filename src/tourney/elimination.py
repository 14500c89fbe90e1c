"""
Single elimination playoff bracket generation and management.

Brackets are built per category (division + skill level) from pool standings
and stored as plain match rows. Rows carry an ``advances_to`` pointer
({'round_number', 'match_number', 'slot'}) to the match their winner feeds.
"""
import logging
import math
from typing import List, Dict, Tuple, Optional

from .errors import BracketGenerationError, BracketSwapError
from .models import (COMPLETED, SCHEDULED, PLAYOFFS, CHECKED_IN,
                     DEFAULT_DIVISION, DEFAULT_SKILL_LEVEL)
from .standings import calculate_all_pool_standings, team_name

logger = logging.getLogger(__name__)

# Sentinel for "every team in the pool advances"
ALL_TEAMS = 999
FIRST_ROUND_COURTS = 4
SLOTS = ('team1', 'team2')


def calculate_bracket_size(num_teams: int) -> int:
    """Calculate the bracket size (next power of 2)."""
    if num_teams <= 0:
        return 0
    return 2 ** math.ceil(math.log2(num_teams))


def calculate_total_rounds(num_teams: int) -> int:
    """Rounds needed to crown a champion: ceil(log2 N)."""
    if num_teams < 2:
        return 0
    return int(math.log2(calculate_bracket_size(num_teams)))


def calculate_byes(num_teams: int) -> int:
    """Calculate number of byes needed."""
    return calculate_bracket_size(num_teams) - num_teams


def _generate_bracket_order(bracket_size: int) -> List[int]:
    """
    Generate the standard tournament bracket order.
    This ensures that if all higher seeds win, they meet in the proper rounds.

    For 8 teams: [1, 8, 4, 5, 2, 7, 3, 6]
    This gives matchups: 1v8, 4v5, 2v7, 3v6
    Winners: 1v4 side, 2v3 side
    Final: 1v2 (if chalk)
    """
    if bracket_size <= 2:
        return list(range(1, bracket_size + 1))

    half_size = bracket_size // 2
    upper_half = _generate_bracket_order(half_size)
    lower_half = [bracket_size + 1 - seed for seed in upper_half]

    # Interleave: pair each upper seed with its complement
    result = []
    for u, l in zip(upper_half, lower_half):
        result.extend([u, l])
    return result


def category_key(division: Optional[str], skill_level: Optional[str]) -> str:
    return f"{division or DEFAULT_DIVISION}_{skill_level or DEFAULT_SKILL_LEVEL}"


def split_category(category: str) -> Tuple[str, str]:
    division, skill_level = category.rsplit('_', 1)
    return division, skill_level


def category_label(division: str, skill_level: str) -> str:
    return f"{division} {skill_level.upper()}"


def get_bracket_position_name(round_number: int, match_number: int, total_rounds: int,
                              division: Optional[str] = None, skill_level: Optional[str] = None) -> str:
    """Human readable position, e.g. 'mens A - Semifinal B'."""
    prefix = f"{category_label(division, skill_level)} - " if division and skill_level else ''

    if round_number == total_rounds:
        return f"{prefix}Final"
    if round_number == total_rounds - 1:
        return f"{prefix}{'Semifinal A' if match_number == 1 else 'Semifinal B'}"
    if round_number == total_rounds - 2:
        return f"{prefix}Quarterfinal {match_number}"
    return f"{prefix}Round {round_number} - Match {match_number}"


def get_round_name(round_number: int, total_rounds: int) -> str:
    if round_number == total_rounds:
        return "Final"
    if round_number == total_rounds - 1:
        return "Semifinals"
    if round_number == total_rounds - 2:
        return "Quarterfinals"
    return f"Round {round_number}"


def _seed_sort_key(standing: Dict) -> tuple:
    # Pool winners first, then runners-up, ...; within a finish position by record
    return (standing['position'], -standing['win_percentage'], -standing['set_diff'],
            -standing['sets_won'], -standing['point_diff'], standing['pool'] or '')


def get_advancing_teams_by_category(pool_standings: Dict[str, List[Dict]], teams_per_pool: int,
                                    team_lookup: Dict) -> Dict[str, List[Dict]]:
    """
    Take the top ``teams_per_pool`` of every pool and group them into
    seeded lists per category. Teams missing from ``team_lookup`` (not
    checked in) never advance.
    """
    advancing = {}
    for pool_name in sorted(pool_standings):
        for standing in pool_standings[pool_name][:teams_per_pool]:
            team = team_lookup.get(standing['team_id'])
            if not team:
                continue
            key = category_key(team.get('division'), team.get('skill_level'))
            advancing.setdefault(key, []).append(standing)

    for key in advancing:
        advancing[key].sort(key=_seed_sort_key)
    return advancing


def find_third_place_team_for_category(pool_standings: Dict[str, List[Dict]], advancing: List[Dict],
                                       category: str, team_lookup: Dict) -> Optional[Dict]:
    """Best finisher of the category that did not advance; it referees the first round."""
    category_teams = []
    for standings in pool_standings.values():
        for standing in standings:
            team = team_lookup.get(standing['team_id'])
            if team and category_key(team.get('division'), team.get('skill_level')) == category:
                category_teams.append(standing)
    category_teams.sort(key=_seed_sort_key)

    advancing_ids = {standing['team_id'] for standing in advancing}
    for standing in category_teams:
        if standing['team_id'] not in advancing_ids:
            return standing
    return None


def get_next_match_position(round_number: int, match_number: int) -> Dict:
    """Matches 1 and 2 feed the next round's match 1, 3 and 4 feed match 2, ..."""
    return {
        'round_number': round_number + 1,
        'match_number': (match_number + 1) // 2,
        'slot': 'team1' if match_number % 2 == 1 else 'team2'
    }


def _new_bracket_match(round_number, match_number, total_rounds, division, skill_level):
    return {
        'tournament_phase': PLAYOFFS,
        'round_number': round_number,
        'match_number': match_number,
        'team1_id': None,
        'team2_id': None,
        'referee_team_id': None,
        'scheduled_time': None,
        'court_number': 1,
        'bracket_position': get_bracket_position_name(round_number, match_number, total_rounds,
                                                      division, skill_level),
        'status': SCHEDULED,
        'division': division,
        'skill_level': skill_level,
        'winner_id': None,
        'is_bye': False,
        'advances_to': (get_next_match_position(round_number, match_number)
                        if round_number < total_rounds else None),
    }


def generate_bracket_matches_for_category(advancing: List[Dict], division: str, skill_level: str,
                                          referee_team_id: Optional[str] = None) -> List[Dict]:
    """
    Build every match row of one category's bracket.

    The first round follows the standard seeding order. Missing opponents are
    byes: the bye row is created already completed and its team is placed
    straight into the next round. Later rounds start empty.
    """
    num_teams = len(advancing)
    if num_teams < 2:
        return []

    bracket_size = calculate_bracket_size(num_teams)
    total_rounds = calculate_total_rounds(num_teams)
    seed_to_team = {seed: standing['team_id'] for seed, standing in enumerate(advancing, start=1)}
    bracket_order = _generate_bracket_order(bracket_size)

    rounds = {}
    for round_number in range(1, total_rounds + 1):
        matches_in_round = bracket_size // (2 ** round_number)
        rounds[round_number] = [
            _new_bracket_match(round_number, match_number, total_rounds, division, skill_level)
            for match_number in range(1, matches_in_round + 1)
        ]

    for index, match in enumerate(rounds[1]):
        seed1 = bracket_order[index * 2]
        seed2 = bracket_order[index * 2 + 1]
        team1 = seed_to_team.get(seed1)
        team2 = seed_to_team.get(seed2)
        match['team1_id'] = team1 if team1 else team2
        match['team2_id'] = team2 if team1 else None
        match['seeds'] = [seed1, seed2]
        match['court_number'] = (index % FIRST_ROUND_COURTS) + 1

        if team1 and team2:
            match['referee_team_id'] = referee_team_id
            continue

        # Bye: the seeded team moves on without playing
        match['is_bye'] = True
        match['status'] = COMPLETED
        match['winner_id'] = match['team1_id']
        target = match['advances_to']
        if target:
            next_match = rounds[target['round_number']][target['match_number'] - 1]
            next_match[f"{target['slot']}_id"] = match['winner_id']

    all_matches = []
    for round_number in sorted(rounds):
        all_matches.extend(rounds[round_number])
    return all_matches


def generate_playoff_brackets(matches: List[Dict], teams: List[Dict], teams_per_pool: int) -> Dict:
    """
    Seed single elimination brackets from pool play results.

    Returns dict with:
    - matches: new playoff match rows for every category
    - categories: [{'category', 'matches', 'teams'}] summary
    """
    if not isinstance(teams_per_pool, int) or teams_per_pool < 1:
        raise BracketGenerationError('Teams advancing per pool must be a positive number')

    checked_in = {team['id']: team for team in teams if team.get('check_in_status') == CHECKED_IN}
    pool_standings = calculate_all_pool_standings(matches, checked_in)
    advancing_by_category = get_advancing_teams_by_category(pool_standings, teams_per_pool, checked_in)

    if not advancing_by_category:
        raise BracketGenerationError('No teams available to advance')

    bracket_matches = []
    summary = []
    for category in sorted(advancing_by_category):
        advancing = advancing_by_category[category]
        division, skill_level = split_category(category)
        if len(advancing) < 2:
            logger.warning("Category %s has only %d advancing team(s). Skipping bracket.", category, len(advancing))
            continue

        referee = find_third_place_team_for_category(pool_standings, advancing, category, checked_in)
        category_matches = generate_bracket_matches_for_category(
            advancing, division, skill_level, referee['team_id'] if referee else None
        )
        bracket_matches.extend(category_matches)
        summary.append({
            'category': category_label(division, skill_level),
            'matches': len(category_matches),
            'teams': len(advancing)
        })

    if not bracket_matches:
        raise BracketGenerationError('Not enough advancing teams to build a bracket')

    logger.info("Generated %d playoff matches across %d categories", len(bracket_matches), len(summary))
    return {'matches': bracket_matches, 'categories': summary}


def _same_category(match: Dict, other: Dict) -> bool:
    return (match.get('division') == other.get('division')
            and match.get('skill_level') == other.get('skill_level'))


def find_bracket_match(matches: List[Dict], reference: Dict, round_number: int, match_number: int) -> Optional[Dict]:
    for match in matches:
        if (match.get('tournament_phase') == PLAYOFFS and _same_category(match, reference)
                and match.get('round_number') == round_number and match.get('match_number') == match_number):
            return match
    return None


def advance_winner(completed_match: Dict, matches: List[Dict]) -> Optional[Dict]:
    """
    Place the winner of a completed playoff match into its next-round slot.
    The loser referees the next match when it has no referee yet.

    Returns the updated next-round match, or None when there is nothing to
    advance (not a playoff match, not finished, or the final).
    """
    if completed_match.get('tournament_phase') != PLAYOFFS:
        return None
    winner_id = completed_match.get('winner_id')
    if completed_match.get('status') != COMPLETED or not winner_id:
        return None

    target = completed_match.get('advances_to')
    if not target:
        return None

    next_match = find_bracket_match(matches, completed_match, target['round_number'], target['match_number'])
    if next_match is None:
        logger.warning("No next round match found for %s", completed_match.get('bracket_position'))
        return None
    if next_match.get('status') != SCHEDULED:
        logger.warning("Next round match %s already started; winner not moved",
                       next_match.get('bracket_position'))
        return None

    next_match[f"{target['slot']}_id"] = winner_id

    loser_id = (completed_match.get('team2_id') if winner_id == completed_match.get('team1_id')
                else completed_match.get('team1_id'))
    if loser_id and not next_match.get('referee_team_id'):
        next_match['referee_team_id'] = loser_id

    logger.info("Advanced %s to %s (%s)", winner_id, next_match.get('bracket_position'), target['slot'])
    return next_match


def swap_bracket_teams(matches: List[Dict], match_id: str, slot: str, target_team_id: str) -> List[Dict]:
    """
    Exchange the team in ``slot`` of the selected match with ``target_team_id``
    wherever that team sits in the same bracket. Only matches that have not
    started can be changed.

    Returns the list of modified matches.
    """
    if slot not in SLOTS:
        raise BracketSwapError(f"Invalid slot '{slot}'")

    selected = next((m for m in matches if m.get('id') == match_id), None)
    if selected is None or selected.get('tournament_phase') != PLAYOFFS:
        raise BracketSwapError('Bracket match not found')
    if selected.get('status') != SCHEDULED:
        raise BracketSwapError('Cannot swap teams in a match that has already started')

    current_team_id = selected.get(f"{slot}_id")
    if current_team_id == target_team_id:
        raise BracketSwapError('Team is already in that slot')

    bracket = sorted(
        (m for m in matches if m.get('tournament_phase') == PLAYOFFS and _same_category(m, selected)),
        key=lambda m: (m.get('round_number', 0), m.get('match_number', 0))
    )
    in_bracket = any(target_team_id in (m.get('team1_id'), m.get('team2_id')) for m in bracket)
    if not in_bracket:
        raise BracketSwapError('Target team not found in bracket')

    target_match = None
    target_slot = None
    for match in bracket:
        if match.get('status') != SCHEDULED:
            continue
        for candidate_slot in SLOTS:
            if match.get(f"{candidate_slot}_id") == target_team_id:
                target_match, target_slot = match, candidate_slot
                break
        if target_match:
            break

    if target_match is None:
        raise BracketSwapError('Target team has no unplayed bracket match')

    selected[f"{slot}_id"] = target_team_id
    target_match[f"{target_slot}_id"] = current_team_id

    changed = [selected]
    if target_match is not selected:
        changed.append(target_match)
    return changed


def get_bracket_display(matches: List[Dict], team_lookup: Dict) -> List[Dict]:
    """
    Group playoff matches into displayable brackets.

    Returns one entry per category with its rounds (in order, each with
    named matches) and the champion once the final is decided.
    """
    categories = {}
    for match in matches:
        if match.get('tournament_phase') != PLAYOFFS:
            continue
        key = category_key(match.get('division'), match.get('skill_level'))
        categories.setdefault(key, []).append(match)

    display = []
    for key in sorted(categories):
        division, skill_level = split_category(key)
        category_matches = categories[key]
        total_rounds = max(m.get('round_number', 1) for m in category_matches)

        rounds = []
        for round_number in range(1, total_rounds + 1):
            round_matches = sorted(
                (m for m in category_matches if m.get('round_number') == round_number),
                key=lambda m: m.get('match_number', 0)
            )
            rounds.append({
                'round_number': round_number,
                'name': get_round_name(round_number, total_rounds),
                'matches': [
                    {
                        **m,
                        'team1_name': team_name(team_lookup, m.get('team1_id')) if m.get('team1_id') else None,
                        'team2_name': team_name(team_lookup, m.get('team2_id')) if m.get('team2_id') else None,
                        'winner_name': team_name(team_lookup, m.get('winner_id')) if m.get('winner_id') else None,
                    }
                    for m in round_matches
                ]
            })

        final = rounds[-1]['matches'][0] if rounds and rounds[-1]['matches'] else None
        champion = None
        if final and final.get('status') == COMPLETED and final.get('winner_id'):
            champion = team_name(team_lookup, final['winner_id'])

        display.append({
            'category': category_label(division, skill_level),
            'division': division,
            'skill_level': skill_level,
            'total_rounds': total_rounds,
            'rounds': rounds,
            'champion': champion
        })
    return display
