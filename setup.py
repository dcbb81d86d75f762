#!/usr/bin/env python
from setuptools import setup, Command
from subprocess import call


# Thanks to http://patorjk.com/software/taag/
logo = r"""
 _                            _               _ _
(_) __ _ _ __ ___  ___ _   _| |__  _ __ ___ (_) |_
| |/ _` | '_ ` _ \/ __| | | | '_ \| '_ ` _ \| | __|
| | (_| | | | | | \__ \ |_| | |_) | | | | | | | |_
|_|\__,_|_| |_| |_|___/\__,_|_.__/|_| |_| |_|_|\__|
"""

REQUIREMENTS = [
    'numpy',
    'pandas>=2',
    'pandas-indexing',
    'pyam-iamc',
    'PyYAML',
    'openpyxl',
    'matplotlib',
]

EXTRA_REQUIREMENTS = {
    'tests': ['pytest', 'coverage', 'pytest-cov'],
    'deploy': ['twine', 'setuptools', 'wheel'],
}


# thank you https://stormpath.com/blog/building-simple-cli-interfaces-in-python
class RunTests(Command):
    """Run all tests."""
    description = 'run tests'
    user_options = []

    def initialize_options(self):
        pass

    def finalize_options(self):
        pass

    def run(self):
        """Run all tests!"""
        errno = call(['py.test', '--cov=iamsubmit', '--cov-report=term-missing'])
        raise SystemExit(errno)


CMDCLASS = {'test': RunTests}


def main():
    print(logo)
    classifiers = [
        'License :: OSI Approved :: Apache Software License',
    ]
    packages = [
        'iamsubmit',
    ]
    pack_dir = {
        '': 'src',
    }
    entry_points = {
        'console_scripts': [
            # list CLIs here
            'iamsubmit=iamsubmit.cli:main',
        ],
    }
    package_data = {
        # add explicit data files here
        'iamsubmit': ['summations/*.yaml'],
    }
    install_requirements = REQUIREMENTS
    extra_requirements = EXTRA_REQUIREMENTS
    setup_kwargs = {
        "name": "iamsubmit",
        'version': '0.1.0',
        "description": 'Map scenario output onto reporting templates and '
        'check regional summations',
        'cmdclass': CMDCLASS,
        'classifiers': classifiers,
        'license': 'Apache License 2.0',
        'packages': packages,
        'package_dir': pack_dir,
        'entry_points': entry_points,
        'package_data': package_data,
        'python_requires': '>=3.10',
        'install_requires': install_requirements,
        'extras_require': extra_requirements,
    }
    setup(**setup_kwargs)


if __name__ == "__main__":
    main()
