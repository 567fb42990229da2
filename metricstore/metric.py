class Metric(object):
    """
    A single named, grouped metric sample. On the way in, ``value`` is a
    delta to be summed into every time bucket containing ``timestamp``. On the
    way out of a query, ``timestamp`` is the start of the bucket and ``value``
    is the aggregated sum.

    ``timestamp`` is in milliseconds since the epoch.
    """
    fields = ('timestamp', 'group', 'type', 'name', 'visibility', 'value')

    def __init__(self, timestamp, group='', type='', name='', visibility='',
                 value=0):
        self.timestamp = timestamp
        self.group = group
        self.type = type
        self.name = name
        self.visibility = visibility
        self.value = value

    def __eq__(self, other):
        if not isinstance(other, Metric):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self):
        return hash(tuple(getattr(self, field) for field in self.fields))

    def __repr__(self):
        return 'Metric(%s)' % ', '.join('%s=%r' % (field, getattr(self, field))
                                        for field in self.fields)

    def to_dict(self):
        return {field: getattr(self, field) for field in self.fields}

    @staticmethod
    def from_dict(vals):
        kwargs = {field: vals[field] for field in Metric.fields
                  if vals.get(field) is not None}
        return Metric(**kwargs)
