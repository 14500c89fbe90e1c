"""
Unit tests for pool play generation.
"""
import pytest
import sys
import os
from itertools import combinations

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tourney.models import Team, Pool
from tourney.pools import (
    pool_match_count,
    calculate_optimal_pool_configuration,
    get_pool_name,
    generate_pools,
    generate_round_robin_matches,
    assign_referees,
    generate_pool_play_schedule,
    generate_pool_play_schedule_by_skill_level,
)


def _teams(count, skill_level='open'):
    return [Team(id=f"{skill_level}{i}", name=f"Team {i}", skill_level=skill_level) for i in range(1, count + 1)]


class TestPoolConfiguration:
    """Tests for calculate_optimal_pool_configuration."""

    def test_zero_teams(self):
        config = calculate_optimal_pool_configuration(0)
        assert config == {'num_pools': 0, 'teams_per_pool': [], 'total_matches': 0}

    @pytest.mark.parametrize("count", [2, 3, 4])
    def test_small_field_is_single_pool(self, count):
        config = calculate_optimal_pool_configuration(count)
        assert config['teams_per_pool'] == [count]
        assert config['total_matches'] == pool_match_count(count)

    def test_five_teams_single_pool_of_five(self):
        assert calculate_optimal_pool_configuration(5)['teams_per_pool'] == [5]

    def test_remainder_one_grows_a_pool(self):
        assert calculate_optimal_pool_configuration(9)['teams_per_pool'] == [4, 5]

    def test_remainder_two_forms_pool_of_two(self):
        assert calculate_optimal_pool_configuration(10)['teams_per_pool'] == [4, 4, 2]

    def test_remainder_three_forms_pool_of_three(self):
        assert calculate_optimal_pool_configuration(11)['teams_per_pool'] == [4, 4, 3]

    def test_total_matches(self):
        config = calculate_optimal_pool_configuration(12)
        assert config['num_pools'] == 3
        assert config['total_matches'] == 18

    @pytest.mark.parametrize("count", range(1, 41))
    def test_pool_sizes_sum_to_team_count(self, count):
        config = calculate_optimal_pool_configuration(count)
        assert sum(config['teams_per_pool']) == count
        assert config['num_pools'] == len(config['teams_per_pool'])


class TestPools:
    """Tests for pool naming and filling."""

    def test_pool_names(self):
        assert get_pool_name(0) == 'A'
        assert get_pool_name(2, 'bb') == 'bb-C'

    def test_generate_pools_fills_in_order(self):
        teams = _teams(9)
        pools = generate_pools(teams)
        assert [p.name for p in pools] == ['A', 'B']
        assert [t.id for t in pools[0].teams] == ['open1', 'open2', 'open3', 'open4']
        assert len(pools[1].teams) == 5


class TestRoundRobin:
    """Tests for generate_round_robin_matches."""

    @pytest.mark.parametrize("size", [2, 3, 4, 5, 6])
    def test_every_pair_meets_exactly_once(self, size):
        pool = Pool('A', _teams(size))
        matches = generate_round_robin_matches(pool)
        pairs = [frozenset((m.team1_id, m.team2_id)) for m in matches]
        expected = {frozenset((a.id, b.id)) for a, b in combinations(pool.teams, 2)}
        assert len(pairs) == len(expected)
        assert set(pairs) == expected

    @pytest.mark.parametrize("size", [4, 5])
    def test_team_plays_at_most_once_per_round(self, size):
        matches = generate_round_robin_matches(Pool('A', _teams(size)))
        rounds = {}
        for m in matches:
            rounds.setdefault(m.pool_round, []).extend([m.team1_id, m.team2_id])
        for teams_in_round in rounds.values():
            assert len(teams_in_round) == len(set(teams_in_round))

    def test_round_counts(self):
        assert len({m.pool_round for m in generate_round_robin_matches(Pool('A', _teams(4)))}) == 3
        assert len({m.pool_round for m in generate_round_robin_matches(Pool('A', _teams(5)))}) == 5

    def test_matches_numbered_sequentially(self):
        matches = generate_round_robin_matches(Pool('A', _teams(4)))
        assert [m.match_number for m in matches] == [1, 2, 3, 4, 5, 6]
        assert all(m.pool_name == 'A' and m.round_number == 1 for m in matches)

    def test_single_team_pool_has_no_matches(self):
        assert generate_round_robin_matches(Pool('A', _teams(1))) == []


class TestReferees:
    """Tests for assign_referees."""

    def test_referee_never_plays_in_match(self):
        teams = _teams(9)
        pools = generate_pools(teams)
        matches = []
        for pool in pools:
            matches.extend(generate_round_robin_matches(pool))
        assign_referees(matches, teams, pools)
        for m in matches:
            assert m.referee_team_id is not None
            assert m.referee_team_id not in (m.team1_id, m.team2_id)

    def test_prefers_same_pool_team_sitting_out(self):
        teams = _teams(5)
        pools = generate_pools(teams)
        matches = generate_round_robin_matches(pools[0])
        assign_referees(matches, teams, pools)
        for m in matches:
            same_round = [x for x in matches if x.pool_round == m.pool_round]
            playing = {t for x in same_round for t in (x.team1_id, x.team2_id)}
            assert m.referee_team_id not in playing

    def test_duties_are_spread(self):
        teams = _teams(4)
        pools = generate_pools(teams)
        matches = generate_round_robin_matches(pools[0])
        assign_referees(matches, teams, pools)
        duties = {}
        for m in matches:
            duties[m.referee_team_id] = duties.get(m.referee_team_id, 0) + 1
        assert max(duties.values()) - min(duties.values()) <= 1

    def test_no_candidate_leaves_referee_empty(self):
        teams = _teams(2)
        matches = generate_round_robin_matches(Pool('A', teams))
        assign_referees(matches, teams)
        assert matches[0].referee_team_id is None


class TestPoolPlaySchedule:
    """Tests for the full pool play pipeline."""

    def test_by_skill_level_breakdown(self, mixed_skill_teams):
        result = generate_pool_play_schedule_by_skill_level(mixed_skill_teams, '2026-07-11T09:00', 30)
        breakdown = result['skill_level_breakdown']
        assert breakdown['open'] == {'pools': 2, 'matches': 6 + 1, 'teams': 6}
        assert breakdown['a'] == {'pools': 1, 'matches': 10, 'teams': 5}
        assert breakdown['bb'] == {'pools': 1, 'matches': 6, 'teams': 4}
        assert result['required_courts'] == 4
        assert {p.name for p in result['pools']} == {'open-A', 'open-B', 'a-A', 'bb-A'}

    def test_pools_never_mix_skill_levels(self, mixed_skill_teams):
        result = generate_pool_play_schedule_by_skill_level(mixed_skill_teams, '2026-07-11T09:00', 30)
        for pool in result['pools']:
            assert len({t.skill_level for t in pool.teams}) == 1

    def test_all_matches_scheduled(self, mixed_skill_teams):
        result = generate_pool_play_schedule_by_skill_level(mixed_skill_teams, '2026-07-11T09:00', 30)
        for m in result['matches']:
            assert m.scheduled_time is not None
            assert 1 <= m.court_number <= result['required_courts']

    def test_single_group_uses_given_courts(self, sample_teams):
        result = generate_pool_play_schedule(sample_teams, '2026-07-11T09:00', 30, number_of_courts=1)
        assert {m.court_number for m in result['matches']} == {1}
        assert len(result['matches']) == 12

    def test_single_group_defaults_to_one_court_per_pool(self, sample_teams):
        result = generate_pool_play_schedule(sample_teams, '2026-07-11T09:00', 30)
        assert {m.court_number for m in result['matches']} <= {1, 2}
