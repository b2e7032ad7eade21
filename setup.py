#!/usr/bin/env python3
"""
Setup script for the Codeforces Upsolve Tracker

Usage:
    pip install -e .                    # Install in development mode
    pip install -e .[test]              # ... with the test dependencies
    pip install .                       # Install normally
"""

import sys
from pathlib import Path
from setuptools import setup, find_packages

if sys.version_info < (3, 8):
    sys.exit("ERROR: Python 3.8 or higher is required")

here = Path(__file__).parent.absolute()

# Used when requirements.txt is not shipped alongside this script
DEFAULT_REQUIREMENTS = [
    'requests>=2.31.0',
    'urllib3>=2.0.0',
    'beautifulsoup4>=4.12.0',
    'lxml>=4.9.0',
    'selenium>=4.15.0',
    'webdriver-manager>=4.0.0',
    'matplotlib>=3.7.0',
]


def read_readme():
    """Long description for the package index"""
    readme_path = here / "README.md"
    if readme_path.exists():
        with open(readme_path, 'r', encoding='utf-8') as f:
            return f.read()
    return "Find Codeforces problems worth upsolving and scrape their statements."


def read_requirements():
    """Runtime requirements, one per non-comment line of requirements.txt"""
    requirements_path = here / "requirements.txt"
    requirements = []

    if requirements_path.exists():
        with open(requirements_path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#'):
                    requirements.append(line)

    return requirements or DEFAULT_REQUIREMENTS


def get_version():
    """Version string declared in main.py"""
    version_file = here / "main.py"
    if version_file.exists():
        with open(version_file, 'r', encoding='utf-8') as f:
            for line in f:
                if line.strip().startswith('__version__'):
                    return line.split('=')[1].strip().strip('"').strip("'")
    return "1.0.0"


PACKAGE_NAME = "codeforces-upsolve-tracker"
PACKAGE_VERSION = get_version()
PACKAGE_DESCRIPTION = "Find Codeforces problems worth upsolving and scrape their statements"

INSTALL_REQUIRES = read_requirements()

EXTRAS_REQUIRE = {
    'dev': [
        'pytest>=7.0.0',
        'pytest-cov>=4.0.0',
        'flake8>=5.0.0',
        'black>=22.0.0',
        'mypy>=1.0.0',
    ],
    'test': [
        'pytest>=7.0.0',
        'pytest-cov>=4.0.0',
        'pytest-mock>=3.8.0',
        'responses>=0.21.0',
    ]
}

EXTRAS_REQUIRE['all'] = sorted({
    dep for deps in EXTRAS_REQUIRE.values() for dep in deps
})

ENTRY_POINTS = {
    'console_scripts': [
        'upsolve-tracker=main:main',
    ],
}

CLASSIFIERS = [
    'Development Status :: 4 - Beta',
    'Intended Audience :: Developers',
    'License :: OSI Approved :: MIT License',
    'Operating System :: OS Independent',
    'Programming Language :: Python :: 3',
    'Programming Language :: Python :: 3.10',
    'Programming Language :: Python :: 3.11',
    'Programming Language :: Python :: 3.12',
    'Topic :: Internet :: WWW/HTTP :: Browsers',
    'Topic :: Text Processing :: Markup :: HTML',
    'Topic :: Internet :: WWW/HTTP :: Indexing/Search',
]

KEYWORDS = [
    'competitive-programming',
    'codeforces',
    'upsolving',
    'web-scraping',
    'selenium',
]


def main():
        setup(
        name=PACKAGE_NAME,
        version=PACKAGE_VERSION,
        description=PACKAGE_DESCRIPTION,
        long_description=read_readme(),
        long_description_content_type='text/markdown',

        packages=find_packages(exclude=['tests*', 'docs*']),
        py_modules=['main'],

        python_requires='>=3.8',

        install_requires=INSTALL_REQUIRES,
        extras_require=EXTRAS_REQUIRE,

        include_package_data=True,
        entry_points=ENTRY_POINTS,

        classifiers=CLASSIFIERS,
        keywords=' '.join(KEYWORDS),

        zip_safe=False,
        platforms=['any'],
        license='MIT',
    )


if __name__ == '__main__':
    main()
