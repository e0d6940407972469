from app.core.config import DEFAULT_SPAM_LIMIT, DEFAULT_SPAM_WINDOW_MS
from app.services.rate_limiter import RateLimiter

from conftest import make_settings


def test_limit_plus_one_is_the_first_denied_message():
    limiter = RateLimiter(limit=5, window_ms=5000)

    decisions = [limiter.check_and_record("1", 1000 + i * 100) for i in range(6)]

    assert [d.allowed for d in decisions] == [True] * 5 + [False]
    assert decisions[-1].count == 6


def test_old_messages_leave_the_window():
    limiter = RateLimiter(limit=2, window_ms=1000)

    limiter.check_and_record("1", 0)
    limiter.check_and_record("1", 500)
    assert limiter.check_and_record("1", 1000).allowed is False

    # Everything recorded so far is more than 1000ms old
    decision = limiter.check_and_record("1", 2001)
    assert decision.allowed is True
    assert decision.count == 1


def test_users_are_counted_separately():
    limiter = RateLimiter(limit=1, window_ms=1000)

    assert limiter.check_and_record("1", 0).allowed
    assert limiter.check_and_record("2", 0).allowed
    assert not limiter.check_and_record("1", 10).allowed


def test_clear_resets_window():
    limiter = RateLimiter(limit=1, window_ms=1000)
    limiter.check_and_record("1", 0)
    limiter.check_and_record("1", 1)

    limiter.clear("1")

    assert limiter.count("1") == 0
    assert limiter.check_and_record("1", 2).allowed
    assert limiter.active_windows() == {"1": 1}


def test_bad_env_values_fall_back_to_defaults():
    for bad in ("abc", "0", "-3", ""):
        config = make_settings(SPAM_LIMIT=bad, SPAM_WINDOW_MS=bad)
        assert config.SPAM_LIMIT == DEFAULT_SPAM_LIMIT
        assert config.SPAM_WINDOW_MS == DEFAULT_SPAM_WINDOW_MS

    config = make_settings(SPAM_LIMIT="3", SPAM_WINDOW_MS="2000")
    assert (config.SPAM_LIMIT, config.SPAM_WINDOW_MS) == (3, 2000)


def test_negative_bonus_means_no_bonus():
    assert make_settings(BONUS_PERCENTAGE="-5").BONUS_PERCENTAGE == 0.0
    assert make_settings(BONUS_PERCENTAGE="abc").BONUS_PERCENTAGE == 0.0
    assert make_settings(BONUS_PERCENTAGE="7.5").BONUS_PERCENTAGE == 7.5
