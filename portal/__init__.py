"""
Exam Portal Package

This package contains every module of the online examination portal:
account and role management, exam authoring, exam attempts with automatic
and manual evaluation, course enrollment, payments and in-app notifications.

Structure:
- common/: Shared abstract models (timestamps, soft delete)
- accounts/: Roles, permissions, profiles and account flows
- catalog/: Exams, questions and the exam audit trail
- attempts/: Exam attempts, answers and scoring
- notifications/: In-app notifications
- payments/: Payment ledger and refunds
- courses/: Courses and enrollments
- dashboard/: Aggregated views for students and administrators
- services/: E-mail and file storage collaborators
- management/: Django management commands

Author: Exam Portal Development Team
Version: 1.0.0
"""
