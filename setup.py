#!/usr/bin/env python3
"""
Setup script for Tessera - recursive template resolver.
"""

from setuptools import setup, find_packages
import os

# Read the contents of README file
this_directory = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(this_directory, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='tessera',
    version='1.0.0',
    author='Robert DeVore',
    author_email='me@robertdevore.com',
    description='Recursive template resolver with includes, layouts and pluggable preprocessors',
    long_description=long_description,
    long_description_content_type='text/markdown',
    packages=find_packages(exclude=['tests', 'tests.*']),
    install_requires=[
        'Jinja2>=3.1',
        'MarkupSafe>=2.1',
        'mistune>=3.0',
        'Markdown>=3.4',
        'PyYAML>=6.0',
        'requests>=2.31',
        'csscompressor>=0.9.5',
        'rjsmin>=1.2',
    ],
    extras_require={
        'test': [
            'pytest>=7.0',
            'pytest-asyncio>=0.23',
            'pytest-cov>=4.0',
        ],
    },
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: Software Development :: Code Generators',
        'Topic :: Text Processing :: Markup :: HTML',
    ],
    python_requires='>=3.9',
    entry_points={
        'console_scripts': [
            'tessera=tessera_pkg.cli:main',
        ],
    },
    keywords='templates, static site generator, markdown, includes, layouts',
)
