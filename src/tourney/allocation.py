import datetime
import logging

logger = logging.getLogger(__name__)


class CourtScheduler:
    def __init__(self, number_of_courts, first_game_time, game_duration, warm_up_duration=7, transition_minutes=5):
        if number_of_courts < 1:
            raise ValueError("At least one court is required to schedule matches")
        self.first_game_time = self._parse_datetime(first_game_time)
        self.game_duration = datetime.timedelta(minutes=game_duration)
        self.warm_up = datetime.timedelta(minutes=warm_up_duration)
        self.transition = datetime.timedelta(minutes=transition_minutes)
        self.court_free_at = {court: self.first_game_time for court in range(1, number_of_courts + 1)}
        self.schedule = {court: [] for court in self.court_free_at}  # court_number: [(start, end, match)]
        self.last_game_start = {}  # team_id: start of its latest match (playing or refereeing)
        self.busy_until = {}  # team_id: end of its latest match

    def _parse_datetime(self, value):
        if isinstance(value, datetime.datetime):
            return value
        return datetime.datetime.fromisoformat(value)

    def _participants(self, match):
        participants = [match.team1_id, match.team2_id]
        if match.referee_team_id:
            participants.append(match.referee_team_id)
        return [team_id for team_id in participants if team_id]

    def _earliest_start(self, court, participants):
        # A team cannot play or referee two matches at once
        start = self.court_free_at[court]
        for team_id in participants:
            if team_id in self.busy_until and self.busy_until[team_id] > start:
                start = self.busy_until[team_id]
        return start

    def _rest_violation(self, start, participants):
        desired_rest = self.game_duration + self.warm_up
        violation = datetime.timedelta(0)
        for team_id in participants:
            last_start = self.last_game_start.get(team_id)
            if last_start is None:
                continue
            rest = start - last_start
            if rest < desired_rest:
                violation += desired_rest - rest
        return violation

    def schedule_matches(self, matches):
        """Assign court_number and scheduled_time to each match, in order."""
        for match in matches:
            participants = self._participants(match)

            best_court = None
            best_start = None
            best_violation = None
            for court in sorted(self.court_free_at):
                start = self._earliest_start(court, participants)
                violation = self._rest_violation(start, participants)
                # Prefer less back-to-back play, then the earlier slot
                if (best_court is None or violation < best_violation
                        or (violation == best_violation and start < best_start)):
                    best_court, best_start, best_violation = court, start, violation

            end = best_start + self.game_duration + self.warm_up
            match.court_number = best_court
            match.scheduled_time = best_start.isoformat()
            self.schedule[best_court].append((best_start, end, match))

            for team_id in participants:
                self.last_game_start[team_id] = best_start
                self.busy_until[team_id] = end
            self.court_free_at[best_court] = end + self.transition

            logger.debug("Scheduled match %s (%s) on court %d at %s",
                         match.match_number, match.pool_name, best_court, best_start.strftime('%H:%M'))
        return matches

    def get_schedule_output(self):
        output = []
        for court_number, matches_on_court in self.schedule.items():
            court_info = {"court_number": court_number, "matches": []}
            for start_dt, end_dt, match in matches_on_court:
                court_info["matches"].append({
                    "start_time": start_dt.strftime('%H:%M'),
                    "end_time": end_dt.strftime('%H:%M'),
                    "pool": match.pool_name,
                    "teams": (match.team1_id, match.team2_id),
                    "referee": match.referee_team_id
                })
            output.append(court_info)
        return output
