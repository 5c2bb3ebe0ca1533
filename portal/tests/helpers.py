"""
Shared builders for the portal test suite.
"""

from unittest import mock

from django.contrib.auth.models import User

from portal.accounts.registry import get_role_registry
from portal.catalog.services import ExamCatalog

PASSWORD = "Tr1cky-Passw0rd"


def seed_roles():
    get_role_registry().seed()


def make_user(email, role="user", password=PASSWORD, verified=True, **extra):
    user = User.objects.create_user(username=email, email=email, password=password, **extra)
    profile = user.profile
    profile.email_verified = verified
    profile.save(update_fields=["email_verified"])
    if role != profile.role.name:
        get_role_registry().assign_role(user, role)
    return user


def mcq(text="What is 2 + 2?", marks=2, negative_marks=0, correct=(1,)):
    return {
        "text": text,
        "type": "mcq",
        "options": ["3", "4", "5"],
        "correct_answer": list(correct),
        "marks": marks,
        "negative_marks": negative_marks,
    }


def true_false(text="Python is dynamically typed.", marks=1, correct=True):
    return {"text": text, "type": "true-false", "correct_answer": correct, "marks": marks}


def match(text="Match the language with its creator.", marks=3):
    pairs = [
        {"left": "Python", "right": "Guido van Rossum"},
        {"left": "C", "right": "Dennis Ritchie"},
    ]
    return {"text": text, "type": "match", "match_pairs": pairs, "correct_answer": pairs, "marks": marks}


def descriptive(text="Explain the GIL.", marks=5):
    return {"text": text, "type": "descriptive", "correct_answer": "A global interpreter lock.", "marks": marks}


def make_catalog():
    """Catalog with a mocked image storage."""
    storage = mock.Mock()
    storage.upload.return_value = "https://bucket.example.com/questions/image.png"
    return ExamCatalog(storage=storage)


def make_exam(creator, questions=(), publish=False, **fields):
    data = {
        "title": "Python Basics",
        "duration": 30,
        "attempts": 1,
        "shuffle_questions": False,
        **fields,
        "questions": list(questions),
        "publish": publish,
    }
    return make_catalog().create_exam(data, creator)
