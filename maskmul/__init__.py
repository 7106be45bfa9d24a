import logging
import numpy as np

log = logging.getLogger(__name__)

_the_backend = None

def init(backend='numpy', **kwargs):
    """
    Sets the process-wide default backend, by name or by class.
    """
    from maskmul.backends import get_backend
    from maskmul.backends.backend import Backend

    global _the_backend
    if isinstance(backend, str):
        _the_backend = get_backend(backend, **kwargs)
    elif isinstance(backend, type) and issubclass(backend, Backend):
        _the_backend = backend(**kwargs)
    else:
        raise ValueError("no such backend: %s" % backend)
    return _the_backend


def backend():
    if _the_backend is None:
        init()
    return _the_backend


def masked_product(A, B, P):
    """
    C = P && A * B' on the default backend. B may be dense, a scipy
    sparse matrix, or a `SparseRowStore`.
    """
    b = backend()
    return b.MaskedProduct(P, B) * np.asarray(A)
