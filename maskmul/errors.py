"""
Errors raised for structurally invalid input.

None of these are retried: they come from bad shapes or a bad sparsity
pattern, not from transient conditions.
"""

class MaskmulError(Exception):
    pass


class DimensionMismatch(MaskmulError, ValueError):
    """ Operand shapes are incompatible. """

    def __init__(self, msg, *shapes):
        super().__init__(msg)
        self.shapes = shapes


class DegenerateMatrix(MaskmulError, ValueError):
    """ A sparse matrix was built from a matrix with no non-zero entries. """


class MissingEntry(MaskmulError, KeyError):
    """ An update targeted a (row, col) outside the stored sparsity pattern. """

    def __init__(self, row, col):
        super().__init__(row, col)
        self.row, self.col = row, col

    def __str__(self):
        return "index ({}, {}) not present in sparse matrix".format(self.row, self.col)
