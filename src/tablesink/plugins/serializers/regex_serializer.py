# src/tablesink/plugins/serializers/regex_serializer.py
"""Regex serializer: split each event into columns with capture groups.

If the pattern does not match the whole payload, or matches with a number
of groups different from the number of configured columns, the event is
silently dropped. The drop is visible only through dropped_events and the
committer's ``serializer.dropped`` counter.

Config options:
    regex: Pattern with one capture group per column (default: "(.*)")
    regexIgnoreCase: Case-insensitive matching (default: false)
    colNames: Comma-separated column names (default: "payload")
"""

import re

from tablesink.contracts import ConfigurationError, Increment, SerializerConfig, Write
from tablesink.plugins.base import BaseSerializer

REGEX_CONFIG = "regex"
REGEX_DEFAULT = "(.*)"

IGNORE_CASE_CONFIG = "regexIgnoreCase"
IGNORE_CASE_DEFAULT = False

COL_NAME_CONFIG = "colNames"
COLUMN_NAME_DEFAULT = "payload"


class RegexEventSerializer(BaseSerializer):
    """One Write per matching event, columns bound to capture groups in order.

    The pattern is compiled once with DOTALL so ``.`` crosses line breaks in
    multi-line payloads. Matching is a full match, never a substring search.
    Groups that did not take part in the match are stored as empty values.
    Payloads are decoded with surrogateescape, so captured values are the
    exact payload bytes even when the payload is not valid UTF-8.
    """

    name = "regex"
    plugin_version = "1.0.0"

    _pattern: re.Pattern[str]
    _columns: tuple[bytes, ...]

    def _configure(self, config: SerializerConfig) -> None:
        regex = config.get_string(REGEX_CONFIG, REGEX_DEFAULT)
        if not regex:
            raise ConfigurationError(f"Serializer option '{REGEX_CONFIG}' cannot be empty")
        flags = re.DOTALL
        if config.get_bool(IGNORE_CASE_CONFIG, IGNORE_CASE_DEFAULT):
            flags |= re.IGNORECASE
        try:
            self._pattern = re.compile(regex, flags)
        except re.error as e:
            raise ConfigurationError(f"Invalid regular expression {regex!r}: {e}") from e

        col_names = config.get_string(COL_NAME_CONFIG, COLUMN_NAME_DEFAULT)
        self._columns = tuple(name.encode("utf-8") for name in col_names.split(","))

    @property
    def pattern(self) -> re.Pattern[str]:
        return self._pattern

    @property
    def columns(self) -> tuple[bytes, ...]:
        return self._columns

    def get_write_mutations(self) -> list[Write]:
        payload, family = self._require_event()
        match = self._pattern.fullmatch(payload.decode("utf-8", errors="surrogateescape"))
        if match is None:
            self._record_drop()
            return []

        groups = match.groups()
        if len(groups) != len(self._columns):
            self._record_drop()
            return []

        values = ((group or "").encode("utf-8", errors="surrogateescape") for group in groups)
        return [Write(row_key=self._next_row_key(), family=family, columns=tuple(zip(self._columns, values, strict=True)))]

    def get_increment_mutations(self) -> list[Increment]:
        self._require_event()
        return []
