"""
Server-side stages that can be attached to a table or a single scan. Each is
built from an options dict and transforms a sorted stream of cells with
``apply(cells)``, yielding a sorted stream.
"""

import re
from itertools import groupby

from .errors import KVError


class CombinerError(KVError):
    pass


def column_of(cell):
    key = cell.key
    return key.row, key.cf, key.cq, key.visibility


class SummingCombiner(object):
    """
    Replaces all versions of a cell in the configured column families with a
    single cell holding their sum. Values are decimal strings. The combined
    cell keeps the newest version's key.
    """
    encodings = ('STRING',)

    def __init__(self, options):
        self.all = options.get('all', False)
        self.columns = set(options.get('columns', ()))
        self.encoding = options.get('type', 'STRING')
        if self.encoding not in self.encodings:
            raise CombinerError('unsupported encoding: %r' % self.encoding)
        if not self.all and not self.columns:
            raise CombinerError('no columns configured for combiner')

    @staticmethod
    def set_columns(setting, columns):
        setting.options['columns'] = sorted(str(col) for col in columns)

    @staticmethod
    def set_combine_all_columns(setting, combine_all=True):
        setting.options['all'] = combine_all

    @staticmethod
    def set_encoding_type(setting, encoding):
        setting.options['type'] = encoding

    def decode(self, cell):
        try:
            return int(cell.value)
        except (TypeError, ValueError):
            raise CombinerError('cannot sum non-numeric value %r at %r' %
                                (cell.value, cell.key))

    def apply(self, cells):
        for column, versions in groupby(cells, key=column_of):
            versions = list(versions)
            if not self.all and column[1] not in self.columns:
                for cell in versions:
                    yield cell
                continue
            total = sum(self.decode(cell) for cell in versions)
            yield versions[0]._replace(value=str(total))


class VersioningIterator(object):
    """
    Keeps only the newest ``max_versions`` versions of each cell.
    """
    def __init__(self, options):
        self.max_versions = int(options.get('max_versions', 1))

    def apply(self, cells):
        for column, versions in groupby(cells, key=column_of):
            for ii, cell in enumerate(versions):
                if ii < self.max_versions:
                    yield cell


class RegExFilter(object):
    """
    Keeps cells whose row, column family, column qualifier and value match
    the configured patterns. Unset patterns match anything. Patterns must
    match the whole field unless ``match_substring`` is set. With ``or``
    set, a cell is kept when any configured pattern matches.
    """
    fields = ('row', 'cf', 'cq', 'value')

    def __init__(self, options):
        self.or_fields = options.get('or', False)
        self.match_substring = options.get('match_substring', False)
        self.patterns = []
        for field in self.fields:
            regex = options.get('%s_regex' % field)
            if regex is not None:
                try:
                    self.patterns.append((field, re.compile(regex, re.DOTALL)))
                except re.error as e:
                    raise KVError('bad %s regex %r: %s' % (field, regex, e))

    @staticmethod
    def set_regexs(setting, row_regex=None, cf_regex=None, cq_regex=None,
                   value_regex=None, or_fields=False, match_substring=False):
        for field, regex in zip(RegExFilter.fields,
                                (row_regex, cf_regex, cq_regex, value_regex)):
            if regex is not None:
                try:
                    re.compile(regex)
                except re.error as e:
                    raise KVError('bad %s regex %r: %s' % (field, regex, e))
                setting.options['%s_regex' % field] = regex
        setting.options['or'] = or_fields
        setting.options['match_substring'] = match_substring

    def matches(self, pattern, s):
        if self.match_substring:
            return pattern.search(s) is not None
        return pattern.fullmatch(s) is not None

    def accept(self, cell):
        if not self.patterns:
            return True
        results = []
        for field, pattern in self.patterns:
            if field == 'value':
                s = cell.value
            else:
                s = getattr(cell.key, field)
            results.append(self.matches(pattern, s))
        return any(results) if self.or_fields else all(results)

    def apply(self, cells):
        for cell in cells:
            if self.accept(cell):
                yield cell


_iterator_classes = {cls.__name__: cls for cls in
                     (SummingCombiner, VersioningIterator, RegExFilter)}


def iterator_for_name(name):
    try:
        return _iterator_classes[name]
    except KeyError:
        raise KVError('unknown iterator class: %r' % name)
