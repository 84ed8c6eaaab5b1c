"""Built-in serializer plugins."""

from tablesink.plugins.base import BaseSerializer
from tablesink.plugins.hookspecs import hookimpl
from tablesink.plugins.serializers.regex_serializer import RegexEventSerializer
from tablesink.plugins.serializers.simple_serializer import SimpleEventSerializer

__all__ = ["BuiltinSerializers", "RegexEventSerializer", "SimpleEventSerializer"]


class BuiltinSerializers:
    """Hook implementation registering the serializers shipped with tablesink."""

    @hookimpl
    def tablesink_get_serializers(self) -> list[type[BaseSerializer]]:
        return [RegexEventSerializer, SimpleEventSerializer]
