from datetime import date, datetime

import pytest
import pytz

from carmarket.utils.dates import inclusive_days, to_market_date


def test_plain_dates_are_taken_as_is():
    assert to_market_date("2024-01-03") == date(2024, 1, 3)
    assert to_market_date(date(2024, 1, 3)) == date(2024, 1, 3)


def test_utc_timestamp_is_converted_to_market_day():
    # 22:00 UTC is already the next day in Bahrain (UTC+3)
    assert to_market_date("2024-01-01T22:00:00Z") == date(2024, 1, 2)
    assert to_market_date("2024-01-01T22:00:00+03:00") == date(2024, 1, 1)


def test_aware_datetime_object_is_converted():
    dt = pytz.utc.localize(datetime(2024, 1, 1, 23, 30))
    assert to_market_date(dt) == date(2024, 1, 2)


@pytest.mark.parametrize("value", ["", "tomorrow", "2024-13-01", None, 20240101])
def test_unparseable_values_raise_value_error(value):
    with pytest.raises(ValueError):
        to_market_date(value)


def test_inclusive_days_counts_both_ends():
    assert inclusive_days(date(2024, 1, 1), date(2024, 1, 3)) == 3
    assert inclusive_days(date(2024, 1, 1), date(2024, 1, 1)) == 1
