"""
Sample data for trying a tournament out end to end: teams, check-ins and
pool play results.
"""
import random

from .models import CHECKED_IN, CHECK_IN_PENDING, COMPLETED, POOL_PLAY
from .scoring import ScoringRules, points_needed_for_set, record_set_scores

# (name, players, captain email)
TEST_TEAMS = [
    # Advanced
    ("Thunder Spikes", 6, "thunder@test.com"),
    ("Lightning Bolts", 6, "lightning@test.com"),
    ("Storm Chasers", 5, "storm@test.com"),
    ("Power Hitters", 6, "power@test.com"),
    # Intermediate
    ("Net Ninjas", 5, "ninjas@test.com"),
    ("Spike Masters", 6, "spike@test.com"),
    ("Court Kings", 5, "kings@test.com"),
    ("Volleyball Vipers", 6, "vipers@test.com"),
    ("Beach Bombers", 5, "bombers@test.com"),
    ("Sand Sharks", 6, "sharks@test.com"),
    # Beginner
    ("Rookie Rockets", 4, "rockets@test.com"),
    ("New Nets", 5, "newnets@test.com"),
    ("First Timers", 4, "first@test.com"),
    ("Learning Legends", 5, "legends@test.com"),
    ("Practice Players", 4, "practice@test.com"),
    ("Starter Squad", 5, "starters@test.com"),
]

DEFAULT_TEST_SKILL_LEVELS = ['open', 'a', 'bb']


def _test_team(name, skill_level, division, base, check_in_status):
    _, players_count, email = base
    return {
        'name': name,
        'skill_level': skill_level,
        'division': division,
        'players_count': players_count,
        'contact_email': email,
        'check_in_status': check_in_status,
        'is_backup': False,
        'is_test_data': True,
    }


def generate_test_teams(tournament, team_count=12, skill_levels=None, existing_names=(),
                        check_in_status=CHECKED_IN):
    """
    Build ``team_count`` sample teams for every division / skill level
    combination of the tournament. Names cycle through TEST_TEAMS and carry
    the category, e.g. "Net Ninjas (M-BB)". Names already taken are skipped.

    Returns team rows without ids.
    """
    existing = set(existing_names)
    divisions = tournament.get('divisions') or []
    by_division = tournament.get('skill_levels_by_division') or {}
    fallback_levels = skill_levels or tournament.get('skill_levels') or DEFAULT_TEST_SKILL_LEVELS

    combinations = []
    if divisions:
        for division in divisions:
            for skill_index, skill_level in enumerate(by_division.get(division) or fallback_levels):
                label = f"{division[0].upper()}-{skill_level.upper()}"
                combinations.append((division, skill_level, skill_index, label))
    else:
        for skill_index, skill_level in enumerate(fallback_levels):
            combinations.append((None, skill_level, skill_index, skill_level.upper()))

    teams = []
    for division, skill_level, skill_index, label in combinations:
        for i in range(team_count):
            base = TEST_TEAMS[(skill_index * team_count + i) % len(TEST_TEAMS)]
            name = f"{base[0]} ({label})"
            if name in existing:
                continue
            existing.add(name)
            teams.append(_test_team(name, skill_level, division, base, check_in_status))
    return teams


def simulate_checkins(teams, percentage=0.8, rng=None):
    """Check in a random share of the pending test teams. Returns the teams checked in."""
    rng = rng or random.Random()
    pending = [t for t in teams if t.get('is_test_data') and t.get('check_in_status') == CHECK_IN_PENDING]
    rng.shuffle(pending)
    chosen = pending[:int(len(pending) * percentage)]
    for team in chosen:
        team['check_in_status'] = CHECKED_IN
    return chosen


def random_set_scores(rules, rng=None):
    """
    A plausible finished volleyball result under ``rules`` as a list of
    [team1, team2] set scores.
    """
    rng = rng or random.Random()
    team1_stronger = rng.random() < 0.5
    sets = []
    sets1 = sets2 = 0
    while max(sets1, sets2) < rules.sets_to_win:
        target = points_needed_for_set(rules, sets1, sets2)
        team1_wins = rng.random() < (0.7 if team1_stronger else 0.3)
        if rng.random() < 0.25:
            # Extended set
            winner_points = target + rng.randint(1, 4)
            loser_points = winner_points - rules.must_win_by
        else:
            winner_points = max(target, rules.must_win_by)
            loser_points = rng.randint(max(0, winner_points - 12), winner_points - rules.must_win_by)
        if team1_wins:
            sets.append([winner_points, loser_points])
            sets1 += 1
        else:
            sets.append([loser_points, winner_points])
            sets2 += 1
    return sets


def simulate_pool_play_results(matches, rules=None, rng=None):
    """Fill in random results for every unfinished pool match. Returns the matches updated."""
    rules = rules or ScoringRules()
    rng = rng or random.Random()
    updated = []
    for match in matches:
        if match.get('tournament_phase', POOL_PLAY) != POOL_PLAY or match.get('status') == COMPLETED:
            continue
        if not match.get('team1_id') or not match.get('team2_id'):
            continue
        record_set_scores(match, random_set_scores(rules, rng), rules)
        updated.append(match)
    return updated
