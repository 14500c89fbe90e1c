"""
Unit tests for pool completion, standings and statistics.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from conftest import make_team_rows, completed_pool_match
from tourney.models import COMPLETED, SCHEDULED, PLAYOFFS
from tourney.standings import (
    calculate_pool_standings,
    calculate_all_pool_standings,
    check_pool_completion,
    get_advancement_recommendation,
    calculate_team_stats,
    calculate_match_stats,
    determine_tournament_phase,
    group_matches_by_pool,
    UNKNOWN_TEAM,
)


@pytest.fixture
def teams():
    return make_team_rows(4)


@pytest.fixture
def lookup(teams):
    return {t['id']: t for t in teams}


@pytest.fixture
def pool_a(teams):
    """team1 beats everyone, team2 beats team3 and team4, team3 beats team4."""
    return [
        completed_pool_match('team1', 'team2', 'A', winner=1),
        completed_pool_match('team1', 'team3', 'A', winner=1),
        completed_pool_match('team1', 'team4', 'A', winner=1),
        completed_pool_match('team2', 'team3', 'A', winner=1),
        completed_pool_match('team2', 'team4', 'A', winner=1),
        completed_pool_match('team3', 'team4', 'A', winner=1),
    ]


class TestPoolStandings:
    """Tests for calculate_pool_standings."""

    def test_order_by_wins(self, pool_a, lookup):
        standings = calculate_pool_standings(pool_a, lookup, 'A')
        assert [s['team_id'] for s in standings] == ['team1', 'team2', 'team3', 'team4']
        assert [s['position'] for s in standings] == [1, 2, 3, 4]

    def test_record_fields(self, pool_a, lookup):
        top = calculate_pool_standings(pool_a, lookup, 'A')[0]
        assert top['wins'] == 3
        assert top['losses'] == 0
        assert top['sets_won'] == 6
        assert top['sets_lost'] == 0
        assert top['win_percentage'] == 1
        assert top['points_for'] == 150
        assert top['points_against'] == 114
        assert top['point_diff'] == 36
        assert top['team'] == 'Team 1'

    def test_set_differential_breaks_win_tie(self, lookup):
        matches = [
            completed_pool_match('team1', 'team2', 'A', sets=[[25, 20], [20, 25], [15, 13]]),
            completed_pool_match('team2', 'team3', 'A', winner=1),
            completed_pool_match('team3', 'team1', 'A', sets=[[25, 20], [20, 25], [15, 10]]),
        ]
        standings = calculate_pool_standings(matches, lookup, 'A')
        # All 1-1; set diff team2 +1, team1 0, team3 -1
        assert standings[0]['team_id'] == 'team2'

    def test_point_differential_breaks_set_tie(self, lookup):
        matches = [
            completed_pool_match('team1', 'team2', 'A', sets=[[25, 10], [25, 10]]),
            completed_pool_match('team2', 'team3', 'A', sets=[[25, 23], [25, 23]]),
            completed_pool_match('team3', 'team1', 'A', sets=[[25, 23], [25, 23]]),
        ]
        standings = calculate_pool_standings(matches, lookup, 'A')
        assert standings[0]['team_id'] == 'team1'

    def test_unfinished_matches_ignored(self, lookup):
        match = completed_pool_match('team1', 'team2', 'A')
        match['status'] = SCHEDULED
        standings = calculate_pool_standings([match], lookup, 'A')
        assert all(s['matches_played'] == 0 for s in standings)
        assert len(standings) == 2

    def test_unknown_team_name(self):
        standings = calculate_pool_standings([completed_pool_match('x1', 'x2', 'A')], {}, 'A')
        assert standings[0]['team'] == UNKNOWN_TEAM


class TestPoolCompletion:
    """Tests for check_pool_completion."""

    def test_no_matches(self, teams):
        result = check_pool_completion([], teams)
        assert result['total_pools'] == 0
        assert result['ready_for_brackets'] is False

    def test_all_complete(self, pool_a, teams):
        result = check_pool_completion(pool_a, teams)
        assert result['all_pools_complete'] is True
        assert result['ready_for_brackets'] is True
        assert result['pool_stats'][0]['completed_matches'] == 6
        assert len(result['pool_stats'][0]['standings']) == 4

    def test_partial_pool_has_no_standings(self, pool_a, teams):
        pool_a[0]['status'] = SCHEDULED
        pool_b = [completed_pool_match('team5', 'team6', 'B')]
        result = check_pool_completion(pool_a + pool_b, teams)
        assert result['total_pools'] == 2
        assert result['completed_pools'] == 1
        assert result['ready_for_brackets'] is False
        stats = {p['pool_name']: p for p in result['pool_stats']}
        assert stats['A']['standings'] == []
        assert stats['B']['is_complete'] is True

    def test_playoff_matches_not_counted_as_pools(self, pool_a, teams):
        playoff = {'id': 'p1', 'tournament_phase': PLAYOFFS, 'status': SCHEDULED, 'team1_id': 'team1'}
        assert check_pool_completion(pool_a + [playoff], teams)['ready_for_brackets'] is True

    def test_missing_pool_name_grouped(self):
        match = completed_pool_match('team1', 'team2', None)
        assert list(group_matches_by_pool([match])) == ['Pool']

    def test_all_pool_standings_include_incomplete(self, pool_a, lookup):
        pool_a[0]['status'] = SCHEDULED
        standings = calculate_all_pool_standings(pool_a, lookup)
        assert len(standings['A']) == 4


class TestAdvancementRecommendation:
    @pytest.mark.parametrize("teams,per_pool", [(6, 1), (8, 1), (12, 2), (20, 2), (30, 3)])
    def test_recommendation(self, teams, per_pool):
        assert get_advancement_recommendation(teams)['teams_per_pool'] == per_pool

    def test_bracket_size_capped(self):
        assert get_advancement_recommendation(40)['bracket_size'] == 32


class TestStatistics:
    """Tests for team and match statistics."""

    def test_team_stats(self, pool_a, teams):
        stats = {s['team_id']: s for s in calculate_team_stats(pool_a, teams)}
        assert stats['team1']['matches_won'] == 3
        assert stats['team4']['matches_lost'] == 3
        assert stats['team2']['win_percentage'] == pytest.approx(0.667)

    def test_team_stats_skip_byes(self, teams):
        bye = {'team1_id': 'team1', 'team2_id': None, 'status': COMPLETED, 'is_bye': True, 'winner_id': 'team1'}
        stats = {s['team_id']: s for s in calculate_team_stats([bye], teams)}
        assert stats['team1']['matches_played'] == 0

    def test_match_stats(self, lookup):
        matches = [
            completed_pool_match('team1', 'team2', 'A', sets=[[25, 23], [25, 23]]),
            completed_pool_match('team3', 'team4', 'A', sets=[[25, 5], [25, 5]]),
        ]
        stats = calculate_match_stats(matches, lookup)
        assert stats['matches_completed'] == 2
        assert stats['total_points'] == 96 + 60
        assert stats['closest_match']['winner'] == 'Team 1'
        assert stats['closest_match']['score'] == '25-23 / 25-23'
        assert stats['biggest_blowout']['margin'] == 40
        assert stats['average_margin'] == 22.0

    def test_match_stats_empty(self, lookup):
        assert calculate_match_stats([], lookup) is None

    def test_match_stats_orders_sets_numerically(self, lookup):
        sets = [[25, 20]] * 9 + [[20, 25]]
        match = completed_pool_match('team1', 'team2', 'A', sets=sets)
        score = calculate_match_stats([match], lookup)['closest_match']['score']
        assert score.endswith('20-25')


class TestTournamentPhase:
    def test_phases(self, pool_a):
        assert determine_tournament_phase([]) == 'setup'
        assert determine_tournament_phase(pool_a) == 'pool_play'

        final = {'tournament_phase': PLAYOFFS, 'status': SCHEDULED, 'advances_to': None}
        semi = {'tournament_phase': PLAYOFFS, 'status': COMPLETED,
                'advances_to': {'round_number': 2, 'match_number': 1, 'slot': 'team1'}}
        assert determine_tournament_phase(pool_a + [semi, final]) == 'bracket'

        final['status'] = COMPLETED
        assert determine_tournament_phase(pool_a + [semi, final]) == 'complete'
