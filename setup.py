from setuptools import setup

setup(
    name = 'maskmul',
    packages = ['maskmul', 'maskmul.backends'],
    version = '1.0.0',
    license = 'BSD',
    description = 'Masked dense-times-sparse-transpose products on CPUs and GPUs',
    python_requires = '>=3.8',
    install_requires = [
        'numpy',
        'scipy',
        'numba',
    ],
    extras_require = {
        'cuda': ['cupy'],
        'test': ['pytest'],
    },
)
