"""
Shared pytest fixtures for the Preop Guide test suite.
Every store is in-memory; nothing is written outside pytest's tmp_path.
Factory helpers live in tests/factories.py so they can be imported
directly by test modules as well as being used here.
"""
import sys
import os

_tests_dir = os.path.dirname(__file__)
_src_dir   = os.path.join(_tests_dir, "..", "src")
for _p in (_tests_dir, _src_dir):
    if _p not in sys.path:
        sys.path.insert(0, _p)

# Session-only storage: never open the real database during tests
os.environ["PREOP_FORCE_MEMORY_STORE"] = "true"


import pytest

from factories import make_answers, make_profile, make_settings, make_store

from preop_guide.session import GuideSession


# ─── pytest fixtures ──────────────────────────────────────────────────────────

@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def empty_store():
    return make_store()


@pytest.fixture
def senior_answers():
    return make_answers(
        age="over_65",
        lifestyle=["smoking", "low_activity"],
        health_conditions=["diabetes", "heart_disease"],
    )


@pytest.fixture
def senior_store(senior_answers):
    return make_store(senior_answers)


@pytest.fixture
def senior_profile():
    return make_profile(
        age="over_65",
        lifestyle=["smoking", "low_activity"],
        health_conditions=["diabetes", "heart_disease"],
    )


@pytest.fixture
def healthy_profile():
    return make_profile(age="under_65")


@pytest.fixture
def session(settings):
    return GuideSession(store=make_store(), settings=settings)
