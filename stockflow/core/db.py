from django.db.models import Model, QuerySet

from .exceptions import NotFound


def get_or_not_found(source: type[Model] | QuerySet, pk, model_name=None):
    """Fetch a single row by primary key or raise ``NotFound``."""
    queryset = source if isinstance(source, QuerySet) else source._default_manager.all()
    try:
        return queryset.get(pk=pk)
    except queryset.model.DoesNotExist:
        raise NotFound(model_name or queryset.model.__name__, pk) from None
