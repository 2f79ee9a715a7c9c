import pytest

from eduvision.gamification import GamificationState, extract_xp_gain, level_for_xp, rank_for_xp


@pytest.mark.parametrize(
    "xp, level, rank",
    [
        (0, 1, "Beginner"),
        (499, 1, "Beginner"),
        (500, 2, "Intermediate"),
        (1499, 3, "Intermediate"),
        (1500, 4, "Advanced"),
        (2999, 6, "Advanced"),
        (3000, 7, "Master"),
        (12345, 25, "Master"),
    ],
)
def test_level_and_rank_boundaries(xp, level, rank):
    assert level_for_xp(xp) == level
    assert rank_for_xp(xp) == rank

    state = GamificationState(xp=xp)
    assert state.level == level
    assert state.rank == rank


def test_level_and_rank_follow_xp_for_every_value():
    for xp in range(0, 3600, 7):
        state = GamificationState(xp=xp)
        assert state.level == xp // 500 + 1
        assert state.rank == rank_for_xp(xp)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Nice work! [XP: +50]", 50),
        ("[XP:+5]", 5),
        ("[XP:   +120]", 120),
        ("first [XP: +10] then [XP: +30]", 10),
        ("no tag here", None),
        ("[XP: -10]", None),
        ("[XP: 10]", None),
        ("", None),
    ],
)
def test_extract_xp_gain(text, expected):
    assert extract_xp_gain(text) == expected


def test_reply_without_tag_leaves_state_unchanged():
    state = GamificationState(xp=120)

    assert state.apply_reply("Great explanation, keep going!") is None
    assert state.xp == 120
    assert state.notification is None


def test_reply_with_tag_awards_xp():
    state = GamificationState(xp=490)

    assert state.apply_reply("Correct! [XP: +20]") == 20
    assert state.xp == 510
    assert state.level == 2
    assert state.rank == "Intermediate"


def test_only_first_tag_counts():
    state = GamificationState()

    state.apply_reply("[XP: +20] bonus [XP: +100]")

    assert state.xp == 20


def test_notification_expires_after_three_seconds():
    now = [100.0]
    state = GamificationState(clock=lambda: now[0])

    notification = state.award(20)

    assert notification.amount == 20
    assert state.notification_visible()
    now[0] = 102.9
    assert state.notification_visible()
    now[0] = 103.0
    assert not state.notification_visible()


def test_negative_award_is_rejected():
    state = GamificationState(xp=10)

    with pytest.raises(ValueError):
        state.award(-5)
    assert state.xp == 10


def test_level_progress():
    assert GamificationState(xp=750).level_progress == 0.5


def test_reset():
    state = GamificationState()
    state.award(2000)

    state.reset()

    assert state.xp == 0
    assert state.rank == "Beginner"
    assert state.notification is None


def test_stats_snapshot():
    stats = GamificationState(xp=1600).stats()

    assert (stats.xp, stats.level, stats.rank) == (1600, 4, "Advanced")
