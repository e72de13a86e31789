"""
Minimal root conftest.py for Sybil testing of README.md.
Test-specific fixtures are in tests/conftest.py
"""
from sybil import Sybil
from sybil.parsers.markdown import PythonCodeBlockParser, SkipParser

pytest_collect_file = Sybil(
    parsers=[
        PythonCodeBlockParser(),
        SkipParser(),
    ],
    patterns=['README.md'],
    path='.',
).pytest()
