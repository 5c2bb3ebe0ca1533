"""
Exam Portal Models Registry

This module serves as the central models registry for the exam portal.
It imports and exposes all models from the logical submodules to ensure
they are properly registered with Django's ORM system under the single
``portal`` app label.

Architecture:
- accounts/: Roles, profiles and account activity
- catalog/: Exams, questions and the exam audit trail
- attempts/: Exam attempts and answers
- notifications/: In-app notifications
- payments/: Payments and refunds
- courses/: Courses and enrollments

Author: Exam Portal Development Team
Version: 1.0.0
"""

# Import all account-related models for registration with Django ORM
from .accounts.models import *

# Import all catalog-related models for registration with Django ORM
from .catalog.models import *

# Import all attempt-related models for registration with Django ORM
from .attempts.models import *

# Import notification, payment and course models for registration with Django ORM
from .notifications.models import *
from .payments.models import *
from .courses.models import *
