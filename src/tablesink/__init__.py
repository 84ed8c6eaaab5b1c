"""
tablesink: transactional batch delivery of channel events into wide-column tables.

Events are taken from a transactional channel in bounded batches, turned into
row mutations by a pluggable serializer and committed to storage with
all-or-nothing semantics at the channel boundary.
"""

__version__ = "0.1.0"
