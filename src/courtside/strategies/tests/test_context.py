"""
Tests for evaluation context building.

Derived fields must be computed from the snapshot alone; missing data stays
None so conditions over it fail closed.
"""
from courtside.strategies.context import (
    ContextField,
    TeamStats,
    build_context,
    capture_trigger_snapshot,
)


class TestScoreFields:
    """Tests for score-derived fields."""

    def test_home_lead_in_third(self, game):
        """58-54 in Q3: lead of 4, home leading."""
        ctx = build_context(game)

        assert ctx.get(ContextField.CURRENT_LEAD) == 4
        assert ctx.get(ContextField.HOME_LEADING) is True
        assert ctx.get(ContextField.AWAY_LEADING) is False
        assert ctx.get(ContextField.IS_TIED) is False
        assert ctx.get(ContextField.SCORE_DIFFERENTIAL) == 4
        assert ctx.get(ContextField.TOTAL_SCORE) == 112
        assert ctx.get(ContextField.QUARTER) == 3
        assert ctx.get(ContextField.TIME_REMAINING_SECONDS) == 425
        assert ctx.get(ContextField.STATUS) == "live"

    def test_away_lead_has_negative_differential(self, make_game):
        ctx = build_context(make_game(home_score=50, away_score=57))

        assert ctx.get(ContextField.SCORE_DIFFERENTIAL) == -7
        assert ctx.get(ContextField.ABS_SCORE_DIFFERENTIAL) == 7
        assert ctx.get(ContextField.CURRENT_LEAD) == 7
        assert ctx.get(ContextField.AWAY_LEADING) is True

    def test_quarter_and_half_breakdown(self, make_game):
        game = make_game(
            q1_home=28, q1_away=22, q2_home=25, q2_away=30,
            q3_home=5, q3_away=2, halftime_home=53, halftime_away=52,
        )
        ctx = build_context(game)

        assert ctx.get(ContextField.Q1_DIFFERENTIAL) == 6
        assert ctx.get(ContextField.Q2_TOTAL) == 55
        assert ctx.get(ContextField.Q2_DIFFERENTIAL) == -5
        assert ctx.get(ContextField.FIRST_HALF_TOTAL) == 105
        assert ctx.get(ContextField.SECOND_HALF_TOTAL) == 7
        assert ctx.get(ContextField.HALFTIME_DIFFERENTIAL) == 1
        assert ctx.get(ContextField.HALFTIME_LEAD) == 1


class TestOddsFields:
    """Tests for spread/moneyline projection."""

    def test_home_leading_spreads(self, make_game):
        ctx = build_context(make_game(spread=-3.5, ml_home=-160, ml_away=140))

        assert ctx.get(ContextField.HOME_SPREAD) == -3.5
        assert ctx.get(ContextField.AWAY_SPREAD) == 3.5
        assert ctx.get(ContextField.LEADING_TEAM_SPREAD) == -3.5
        assert ctx.get(ContextField.LOSING_TEAM_SPREAD) == 3.5
        assert ctx.get(ContextField.LEADING_TEAM_MONEYLINE) == -160
        assert ctx.get(ContextField.LOSING_TEAM_MONEYLINE) == 140

    def test_away_leading_spreads(self, make_game):
        ctx = build_context(make_game(home_score=50, away_score=55, spread=4.5, ml_home=170, ml_away=-200))

        assert ctx.get(ContextField.LEADING_TEAM_SPREAD) == -4.5
        assert ctx.get(ContextField.LOSING_TEAM_SPREAD) == 4.5
        assert ctx.get(ContextField.LEADING_TEAM_MONEYLINE) == -200

    def test_tied_game_has_no_leading_spread(self, make_game):
        ctx = build_context(make_game(home_score=60, away_score=60, spread=-1.5))

        assert ctx.get(ContextField.LEADING_TEAM_SPREAD) is None
        assert ctx.get(ContextField.LOSING_TEAM_SPREAD) is None
        assert ctx.get(ContextField.HOME_SPREAD) == -1.5

    def test_missing_odds_stay_none(self, game):
        ctx = build_context(game)

        assert ctx.get(ContextField.SPREAD) is None
        assert ctx.get(ContextField.AWAY_SPREAD) is None
        assert ctx.get(ContextField.HOME_MONEYLINE) is None


class TestStatsFields:
    """Tests for head-to-head stats fields."""

    def test_stats_fields(self, game, matchup_stats):
        ctx = build_context(game, matchup_stats)

        assert ctx.get(ContextField.HOME_PLAYER_WIN_PCT) == 62.5
        assert ctx.get(ContextField.WIN_PCT_DIFF) == 7.5
        assert abs(ctx.get(ContextField.PPM_DIFF) - 4.2) < 1e-9
        assert ctx.get(ContextField.EXPERIENCE_DIFF) == 8
        assert ctx.get(ContextField.HOME_PLAYER_FORM_WINS) == 3
        assert ctx.get(ContextField.AWAY_PLAYER_FORM_WINS) == 1

    def test_missing_stats_are_none_not_zero(self, game):
        ctx = build_context(game)

        assert ctx.get(ContextField.HOME_PLAYER_WIN_PCT) is None
        assert ctx.get(ContextField.WIN_PCT_DIFF) is None
        assert ctx.get(ContextField.EXPERIENCE_DIFF) is None

    def test_one_sided_stats(self, game, matchup_stats):
        from courtside.strategies.context import MatchupStats

        ctx = build_context(game, MatchupStats(home=matchup_stats.home))

        assert ctx.get(ContextField.HOME_PLAYER_GAMES) == 40
        assert ctx.get(ContextField.AWAY_PLAYER_GAMES) is None
        assert ctx.get(ContextField.EXPERIENCE_DIFF) is None

    def test_form_wins_none_without_form(self):
        assert TeamStats(team_id="X").form_wins is None


class TestPreviousLeaderFields:
    """Tests for prev_leader_* fields derived from the prior trigger snapshot."""

    def test_leader_lost_the_lead(self, game, make_game):
        prior = capture_trigger_snapshot("t1", "Entry", game, now=1.0)
        ctx = build_context(make_game(quarter=4, home_score=60, away_score=62), prior=prior)

        assert ctx.get(ContextField.PREV_LEADER_STILL_LEADS) == 0
        assert ctx.get(ContextField.PREV_LEADER_CURRENT_SCORE) == 60
        assert ctx.get(ContextField.PREV_TRAILER_CURRENT_SCORE) == 62
        assert ctx.get(ContextField.PREV_LEADER_CURRENT_MARGIN) == -2
        assert ctx.get(ContextField.PREV_LEADER_WAS_HOME) == 1

    def test_away_leader_still_leads(self, make_game):
        prior = capture_trigger_snapshot("t1", "Entry", make_game(home_score=40, away_score=45))
        ctx = build_context(make_game(home_score=70, away_score=78), prior=prior)

        assert ctx.get(ContextField.PREV_LEADER_STILL_LEADS) == 1
        assert ctx.get(ContextField.PREV_LEADER_CURRENT_MARGIN) == 8
        assert ctx.get(ContextField.PREV_LEADER_WAS_HOME) == 0

    def test_no_prior_means_none(self, game):
        assert build_context(game).get(ContextField.PREV_LEADER_STILL_LEADS) is None

    def test_tied_prior_means_none(self, game, make_game):
        prior = capture_trigger_snapshot("t1", "Entry", make_game(home_score=50, away_score=50))

        assert build_context(game, prior=prior).get(ContextField.PREV_LEADER_STILL_LEADS) is None


class TestFieldLookup:
    """Tests for ContextField name resolution."""

    def test_lookup_by_authored_name(self):
        assert ContextField.lookup("currentLead") is ContextField.CURRENT_LEAD
        assert ContextField.lookup("q3Differential") is ContextField.Q3_DIFFERENTIAL

    def test_aliases(self):
        assert ContextField.lookup("scoreDiff") is ContextField.SCORE_DIFFERENTIAL
        assert ContextField.lookup("trailingTeamSpread") is ContextField.LOSING_TEAM_SPREAD

    def test_unknown_name(self):
        assert ContextField.lookup("playerHeight") is None

    def test_every_field_resolves_to_an_attribute(self, game):
        values = build_context(game).as_dict()

        assert set(values) == {member.value for member in ContextField}
        assert values["currentLead"] == 4


class TestTriggerSnapshot:
    """Tests for snapshot capture."""

    def test_capture(self, make_game):
        snapshot = capture_trigger_snapshot(
            "t1", "Entry", make_game(spread=-3.5, total=221.5), now=123.0
        )

        assert snapshot.leading_team == "home"
        assert snapshot.lead_amount == 4
        assert snapshot.home_spread == -3.5
        assert snapshot.away_spread == 3.5
        assert snapshot.total_line == 221.5
        assert snapshot.timestamp == 123.0
