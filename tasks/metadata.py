"""
Free-form task metadata.

Clients and tooling attach their own keys (code churn stats, CI links and
so on). Updates are merged one level deep: keys present in the update
overwrite, everything else is kept.
"""
from collections.abc import Mapping

from trackdesk.exceptions import ValidationError


class MetadataMap(dict):
    """String-keyed dict with a shallow, non-destructive ``merge``."""

    def __init__(self, data=None):
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ValidationError('Metadata must be an object', field='metadata')
        for key in data:
            if not isinstance(key, str):
                raise ValidationError(f'Metadata keys must be strings, got {key!r}', field='metadata')
        super().__init__(data)

    def merge(self, updates):
        """
        Return a new map with ``updates`` laid over this one.

        ``None`` leaves the map unchanged. Nested values are replaced, not
        merged recursively.
        """
        if updates is None:
            return MetadataMap(self)
        updates = MetadataMap(updates)
        merged = MetadataMap(self)
        dict.update(merged, updates)
        return merged

    def as_dict(self):
        return dict(self)
