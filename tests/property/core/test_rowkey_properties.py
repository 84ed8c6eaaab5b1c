"""Property tests for row-key generation."""

from datetime import UTC, datetime

from hypothesis import given
from hypothesis import strategies as st

from tablesink.core.rowkey import ROW_KEY_TOKEN_LENGTH, RowKeyGenerator, epoch_millis, parse_row_key
from tests.property.settings import STANDARD_SETTINGS

tokens = st.text(alphabet="abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789", min_size=10, max_size=10)
moments = st.datetimes(min_value=datetime(1970, 1, 2), max_value=datetime(2400, 1, 1), timezones=st.just(UTC))


@given(token=tokens, start=st.integers(min_value=0, max_value=2**62), moments=st.lists(moments, min_size=1, max_size=50))
@STANDARD_SETTINGS
def test_keys_unique_and_parseable(token: str, start: int, moments: list[datetime]) -> None:
    generator = RowKeyGenerator(token, start=start)

    keys = [generator.generate(now) for now in moments]

    assert len(set(keys)) == len(keys)
    for offset, (key, now) in enumerate(zip(keys, moments, strict=True)):
        parts = parse_row_key(key)
        assert parts.token == token
        assert len(parts.token) == ROW_KEY_TOKEN_LENGTH
        assert parts.nonce == start + offset
        assert parts.timestamp_ms == epoch_millis(now)


@given(moment=moments)
@STANDARD_SETTINGS
def test_same_instant_never_collides(moment: datetime) -> None:
    generator = RowKeyGenerator("SameToken1")
    assert generator.generate(moment) != generator.generate(moment)
