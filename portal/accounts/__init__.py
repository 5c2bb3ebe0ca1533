"""
Accounts: roles, the role registry, user profiles and account flows.
"""
