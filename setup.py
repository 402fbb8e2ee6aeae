from setuptools import setup

setup(
    name='radiohead-serial-bridge',
    version='1.0.0',
    description='Asynchronous callback bridge over a blocking RadioHead reliable-datagram serial transport',
    author='',
    author_email='',
    packages=['rhbridge', 'rhbridge.config', 'rhbridge.transport'],
    python_requires='>=3.11',
    install_requires=[
        'msgspec',
        'transitions',
        'tenacity',
        'marshmallow>=3.13',
        'uvloop',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
        ],
    },
    entry_points={
        'console_scripts': [
            'rhbridge=rhbridge.cli:main',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
)
