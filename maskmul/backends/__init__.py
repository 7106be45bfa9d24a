import os
import logging

log = logging.getLogger(__name__)

def available_backends():
    backends = []

    allow = os.environ.get("MASKMUL_TEST_BACKENDS",
        "numpy,threaded,customcpu,cuda").split(',')

    try:
        from maskmul.backends.np import NumpyBackend
        if 'numpy' in allow: backends.append( NumpyBackend )
    except Exception as e:
        log.warning("couldn't find NUMPY backend: %s", e)

    try:
        from maskmul.backends.threaded import ThreadedBackend
        if 'threaded' in allow: backends.append( ThreadedBackend )
    except Exception as e:
        log.warning("couldn't find Threaded backend: %s", e)

    try:
        from maskmul.backends.customcpu import CustomCpuBackend
        if 'customcpu' in allow: backends.append( CustomCpuBackend )
    except Exception as e:
        log.warning("couldn't find CustomCpu backend: %s", e)

    try:
        from maskmul.backends.cuda import CudaBackend
        if 'cuda' in allow: backends.append( CudaBackend )
    except Exception as e:
        log.warning("couldn't find CUDA backend: %s", e)

    return backends

def get_backend(name, **init):
    """
    Instantiates the requested backend.
    """
    if name == 'numpy':
        from maskmul.backends.np import NumpyBackend
        return NumpyBackend(**init)
    elif name == 'threaded':
        from maskmul.backends.threaded import ThreadedBackend
        return ThreadedBackend(**init)
    elif name == 'customcpu':
        from maskmul.backends.customcpu import CustomCpuBackend
        return CustomCpuBackend(**init)
    elif name == 'cuda':
        from maskmul.backends.cuda import CudaBackend
        return CudaBackend(**init)
    else:
        raise ValueError("unrecognized backend: %s" % name)
