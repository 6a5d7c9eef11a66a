from setuptools import find_packages, setup

setup(
    name='capsync',
    version='1.0.0',
    description='CapsLock indicator synchronisation daemon over MQTT (hub and clients)',
    author='isantolin',
    author_email='',
    packages=find_packages(include=['capsync', 'capsync.*']),
    python_requires='>=3.11',
    install_requires=[
        'aiomqtt>=2.0',
        'paho-mqtt>=2.0',
        'tenacity',
        'transitions',
        'msgspec',
        'construct',
        'marshmallow>=3.13',
        'prometheus_client',
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
            'capsync=capsync.daemon:main',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
)
