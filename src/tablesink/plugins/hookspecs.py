# src/tablesink/plugins/hookspecs.py
"""pluggy hook specifications for tablesink serializers.

Plugins implement these hooks to register serializer classes. The
SerializerManager calls them to build the name -> class registry that the
``serializer`` config key selects from.

Usage (implementing a plugin):
    from tablesink.plugins.hookspecs import hookimpl

    class MyPlugin:
        @hookimpl  # NOT @hookspec - that's for defining specs
        def tablesink_get_serializers(self):
            return [MySerializer]
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from tablesink.plugins.base import BaseSerializer

PROJECT_NAME = "tablesink"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)

hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class TableSinkSerializerSpec:
    """Hook specifications for serializer plugins."""

    @hookspec
    def tablesink_get_serializers(self) -> list[type["BaseSerializer"]]:  # type: ignore[empty-body]
        """Return serializer plugin classes.

        Returns:
            List of BaseSerializer subclasses (not instances)
        """
