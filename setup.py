"""
Setup script for blindrelay - End-to-end encrypted room chat over an untrusted relay.

This package provides:
- Ephemeral P-256 ECDH key exchange between peers in a room
- AES-256-GCM authenticated encryption of every message
- A content-blind relay server that routes by room only
- A terminal client
"""

from setuptools import setup, find_packages
import os

this_directory = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(this_directory, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='blindrelay',
    version='1.0.0',
    description='End-to-end encrypted room chat over an untrusted, content-blind relay',
    long_description=long_description,
    long_description_content_type='text/markdown',
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: End Users/Desktop',
        'Topic :: Communications :: Chat',
        'Topic :: Security :: Cryptography',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Operating System :: OS Independent',
        'Environment :: Console',
    ],
    python_requires='>=3.11',
    install_requires=[
        'cryptography>=42.0.4',
        'rich>=13.7.0',
    ],
    extras_require={
        'test': [
            'pytest>=7.4.0',
            'pytest-asyncio>=0.23.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'blindrelay=blindrelay.main:main',
            'blindrelay-server=blindrelay.server:main',
        ],
    },
)
