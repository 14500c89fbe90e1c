"""
Live match scoring.

A match row keeps the points of every set in ``set_scores``
({'set1': {'team1': 25, 'team2': 21}, ...}); the set being played is
``set<current_set>``. Sets won are tracked in ``sets_won_team1`` /
``sets_won_team2`` and a decided match gets ``winner_id`` and status
``completed``.
"""
import datetime
import math

from .errors import ScoringError
from .models import SCHEDULED, IN_PROGRESS, COMPLETED

SLOTS = ('team1', 'team2')


class ScoringRules:
    def __init__(self, sets_per_game=3, points_per_set=25, must_win_by=2, deciding_set_points=15):
        self.sets_per_game = sets_per_game
        self.points_per_set = points_per_set
        self.must_win_by = must_win_by
        self.deciding_set_points = deciding_set_points

    @classmethod
    def from_settings(cls, settings):
        settings = settings or {}
        defaults = cls()
        return cls(
            sets_per_game=int(settings.get('sets_per_game') or defaults.sets_per_game),
            points_per_set=int(settings.get('points_per_set') or defaults.points_per_set),
            must_win_by=int(settings.get('must_win_by') or defaults.must_win_by),
            deciding_set_points=int(settings.get('deciding_set_points') or defaults.deciding_set_points),
        )

    @property
    def sets_to_win(self):
        return math.ceil(self.sets_per_game / 2)

    def __repr__(self):
        return (f"ScoringRules(sets={self.sets_per_game}, points={self.points_per_set}, "
                f"win_by={self.must_win_by}, deciding={self.deciding_set_points})")


def points_needed_for_set(rules, sets_won_team1, sets_won_team2):
    """The deciding set of a multi-set match is played to ``deciding_set_points``."""
    is_deciding_set = (rules.sets_per_game > 1
                       and sets_won_team1 + sets_won_team2 == rules.sets_per_game - 1)
    return rules.deciding_set_points if is_deciding_set else rules.points_per_set


def is_set_won(team1_score, team2_score, points_needed, win_by):
    return ((team1_score >= points_needed and team1_score - team2_score >= win_by)
            or (team2_score >= points_needed and team2_score - team1_score >= win_by))


def is_match_won(sets_won, rules):
    return sets_won >= rules.sets_to_win


def determine_winner(sets, sets_to_win=2):
    """Determine winner from set scores. Returns (winner_index, set_wins)."""
    if not sets:
        return None, (0, 0)

    wins = [0, 0]
    for set_score in sets:
        if len(set_score) >= 2 and set_score[0] is not None and set_score[1] is not None:
            if set_score[0] > set_score[1]:
                wins[0] += 1
            elif set_score[1] > set_score[0]:
                wins[1] += 1

    if wins[0] >= sets_to_win:
        return 0, tuple(wins)
    elif wins[1] >= sets_to_win:
        return 1, tuple(wins)

    return None, tuple(wins)


def _now():
    return datetime.datetime.now().isoformat(timespec='seconds')


def _check_scorable(match, slot):
    if slot not in SLOTS:
        raise ScoringError(f"Invalid team slot '{slot}'")
    if match.get('status') == COMPLETED:
        raise ScoringError('Match is already completed')
    if not match.get('team1_id') or not match.get('team2_id'):
        raise ScoringError('Both teams must be set before scoring')


def _current_set(match):
    current_set = match.get('current_set') or 1
    set_scores = match.setdefault('set_scores', {}) or {}
    match['set_scores'] = set_scores
    key = f"set{current_set}"
    scores = set_scores.setdefault(key, {'team1': 0, 'team2': 0})
    return current_set, scores


def _complete(match, winner_slot):
    match['winner_id'] = match[f"{winner_slot}_id"]
    match['status'] = COMPLETED
    match['completed_at'] = _now()


def record_point(match, slot, rules):
    """
    Add one point for ``slot`` in the current set.

    Returns 'point', 'set' (the point won the set) or 'match' (the point won
    the match).
    """
    _check_scorable(match, slot)
    current_set, scores = _current_set(match)

    if match.get('status', SCHEDULED) == SCHEDULED:
        match['status'] = IN_PROGRESS
        match['started_at'] = _now()

    scores[slot] = (scores.get(slot) or 0) + 1

    sets1 = match.get('sets_won_team1') or 0
    sets2 = match.get('sets_won_team2') or 0
    needed = points_needed_for_set(rules, sets1, sets2)
    if not is_set_won(scores['team1'], scores['team2'], needed, rules.must_win_by):
        match['current_set'] = current_set
        return 'point'

    set_winner = 'team1' if scores['team1'] > scores['team2'] else 'team2'
    if set_winner == 'team1':
        sets1 += 1
    else:
        sets2 += 1
    match['sets_won_team1'] = sets1
    match['sets_won_team2'] = sets2

    if is_match_won(max(sets1, sets2), rules):
        match['current_set'] = current_set
        _complete(match, set_winner)
        return 'match'

    match['current_set'] = current_set + 1
    return 'set'


def remove_point(match, slot):
    """Take one point back from ``slot`` in the current set; never below zero."""
    _check_scorable(match, slot)
    current_set, scores = _current_set(match)
    scores[slot] = max(0, (scores.get(slot) or 0) - 1)
    match['current_set'] = current_set
    return scores


def record_set_scores(match, sets, rules):
    """
    Replace the match score with complete set results, e.g. [[25, 20], [18, 25], [15, 12]].

    Every set must be won under the scoring rules and no set may follow the
    one that decides the match. An undecided result leaves the match in
    progress.
    """
    if not match.get('team1_id') or not match.get('team2_id'):
        raise ScoringError('Both teams must be set before scoring')
    if not sets:
        raise ScoringError('At least one set score is required')
    if len(sets) > rules.sets_per_game:
        raise ScoringError(f"A match has at most {rules.sets_per_game} sets")

    set_scores = {}
    sets1 = sets2 = 0
    for index, set_score in enumerate(sets, start=1):
        if is_match_won(max(sets1, sets2), rules):
            raise ScoringError(f"Set {index} was recorded after the match was decided")
        try:
            team1_score, team2_score = int(set_score[0]), int(set_score[1])
        except (TypeError, ValueError, IndexError):
            raise ScoringError(f"Set {index} must be a pair of scores")
        if team1_score < 0 or team2_score < 0:
            raise ScoringError(f"Set {index} has a negative score")

        needed = points_needed_for_set(rules, sets1, sets2)
        if not is_set_won(team1_score, team2_score, needed, rules.must_win_by):
            raise ScoringError(
                f"Set {index} ({team1_score}-{team2_score}) is not finished: "
                f"play to {needed}, win by {rules.must_win_by}"
            )
        if team1_score > team2_score:
            sets1 += 1
        else:
            sets2 += 1
        set_scores[f"set{index}"] = {'team1': team1_score, 'team2': team2_score}

    match['set_scores'] = set_scores
    match['sets_won_team1'] = sets1
    match['sets_won_team2'] = sets2

    winner_index, _ = determine_winner(sets, rules.sets_to_win)
    if winner_index is None:
        match['current_set'] = len(sets) + 1
        match['status'] = IN_PROGRESS
        match['winner_id'] = None
        match.setdefault('started_at', _now())
        return match

    match['current_set'] = len(sets)
    _complete(match, SLOTS[winner_index])
    return match


def update_match_status(match, status):
    """Manual status changes; a match only becomes completed through its score."""
    if status not in (SCHEDULED, IN_PROGRESS):
        raise ScoringError(f"Invalid match status '{status}'")
    if match.get('status') == COMPLETED:
        raise ScoringError('Match is already completed')
    match['status'] = status
    if status == IN_PROGRESS:
        match.setdefault('started_at', _now())
    return match
