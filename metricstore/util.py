"""
Row key helpers shared by the write and read paths of the metric store. It is
not expected that these will be used externally.
"""


"""
Delimiter placed between the parts of a row key or column qualifier. It is
unprintable and sorts before every other character, so a key made from a
shorter identifier always sorts ahead of keys made from identifiers it
prefixes.
"""
DELIM = '\x00'


def default_string(value):
    """
    Normalize a possibly missing identifier to a string.

    :param value:
        Identifier, or None.
    :type value:
        string or None
    :returns:
        ``value``, or an empty string if it was None.
    :rtype:
        string
    """
    if value is None:
        return ''
    return value


def combine(*parts):
    """
    Join ``parts`` with ``DELIM``. Parts must not contain the delimiter
    themselves, which keeps ``split()`` an exact inverse. Missing parts are
    treated as empty strings.

    :param parts:
        Ordered key parts.
    :type parts:
        strings
    :returns:
        Combined key.
    :rtype:
        string
    """
    return DELIM.join(default_string(part) for part in parts)


def split(key):
    """
    Split a key built by ``combine()`` back into its parts, preserving empty
    parts.
    """
    return key.split(DELIM)
