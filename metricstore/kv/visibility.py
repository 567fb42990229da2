"""
Cell visibility labels. A visibility is a boolean expression over
authorization labels, like ``admin|(audit&us)``. A cell is returned by a scan
only when the scanning ``Authorizations`` satisfy its expression. The empty
expression is visible to everyone.

``&`` and ``|`` may not be mixed at the same nesting level without
parentheses.
"""

import re
from functools import lru_cache

from .errors import VisibilityParseError


label_re = re.compile(r'[A-Za-z0-9_\-.:/]+')
quoted_re = re.compile(r'"((?:[^"\\]|\\["\\])*)"')


class Authorizations(object):
    """
    The set of labels a scanner presents to unlock visibility-restricted
    cells.
    """
    def __init__(self, *labels):
        if len(labels) == 1 and not isinstance(labels[0], str):
            labels = tuple(labels[0])
        for label in labels:
            if not isinstance(label, str) or not label:
                raise VisibilityParseError('invalid authorization: %r' %
                                           (label,))
        self.labels = frozenset(labels)

    def __contains__(self, label):
        return label in self.labels

    def __iter__(self):
        return iter(sorted(self.labels))

    def __repr__(self):
        return 'Authorizations(%s)' % ', '.join(repr(l) for l in self)


class ColumnVisibility(object):

    def __init__(self, expression=''):
        self.expression = expression
        self.tree = parse(expression)

    def __repr__(self):
        return 'ColumnVisibility(%r)' % self.expression

    def __str__(self):
        return self.expression

    def evaluate(self, auths):
        if self.tree is None:
            return True
        return _evaluate(self.tree, auths)


def _evaluate(node, auths):
    op, arg = node
    if op == 'label':
        return arg in auths
    elif op == 'and':
        return all(_evaluate(child, auths) for child in arg)
    else:
        return any(_evaluate(child, auths) for child in arg)


class _Parser(object):

    def __init__(self, expression):
        self.s = expression
        self.pos = 0

    def fail(self, msg):
        raise VisibilityParseError('%s at position %d in %r' %
                                   (msg, self.pos, self.s))

    def peek(self):
        return self.s[self.pos] if self.pos < len(self.s) else None

    def parse(self):
        node = self.expr()
        if self.pos != len(self.s):
            self.fail('unexpected %r' % self.peek())
        return node

    def expr(self):
        children = [self.term()]
        op = None
        while self.peek() in ('&', '|'):
            char = self.peek()
            this_op = 'and' if char == '&' else 'or'
            if op and this_op != op:
                self.fail("cannot mix '&' and '|' without parentheses")
            op = this_op
            self.pos += 1
            children.append(self.term())
        if op is None:
            return children[0]
        return (op, children)

    def term(self):
        char = self.peek()
        if char == '(':
            self.pos += 1
            node = self.expr()
            if self.peek() != ')':
                self.fail("expected ')'")
            self.pos += 1
            return node
        if char == '"':
            m = quoted_re.match(self.s, self.pos)
            if not m:
                self.fail('unterminated quoted label')
            self.pos = m.end()
            label = re.sub(r'\\(["\\])', r'\1', m.group(1))
            if not label:
                self.fail('empty label')
            return ('label', label)
        m = label_re.match(self.s, self.pos)
        if not m:
            self.fail('expected label')
        self.pos = m.end()
        return ('label', m.group(0))


@lru_cache(maxsize=1024)
def parse(expression):
    """
    Parse a visibility expression into a tree of ``('label', name)``,
    ``('and', children)`` and ``('or', children)`` nodes. Return None for the
    empty expression.
    """
    if not expression:
        return None
    return _Parser(expression).parse()


def visible(expression, auths):
    """
    Return True if a cell labelled ``expression`` may be read with ``auths``.
    """
    tree = parse(expression)
    if tree is None:
        return True
    return _evaluate(tree, auths)
