# Always prefer setuptools over distutils
from setuptools import setup, find_packages
# To use a consistent encoding
from codecs import open
from os import path

from chronoproof import __version__

here = path.abspath(path.dirname(__file__))

# Get the long description from the README file
with open(path.join(here, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='chronoproof',

    version=__version__,

    description='Create, upgrade and verify proof-of-existence timestamps anchored in Bitcoin',
    long_description=long_description,
    long_description_content_type='text/markdown',

    license='LGPL3',

    classifiers=[
        'Development Status :: 3 - Alpha',

        'Intended Audience :: Developers',
        'Intended Audience :: End Users/Desktop',
        'Topic :: Security :: Cryptography',

        'License :: OSI Approved :: GNU Lesser General Public License v3 or later (LGPLv3+)',

        'Programming Language :: Python :: 3 :: Only',
    ],

    keywords='cryptography timestamping bitcoin',

    packages=find_packages(exclude=['contrib', 'docs']),

    python_requires='>=3.9',

    install_requires=['python-bitcoinlib>=0.12.0',
                      'safe-pysha3>=1.0.0',
                      'appdirs>=1.3.0',
                      'PySocks>=1.5.0'],

    # $ pip install -e .[test]
    extras_require={
        'test': ['pytest'],
    },

    entry_points={
        'console_scripts': [
            'chronoproof = chronoclient.main:main',
        ],
    },
)
