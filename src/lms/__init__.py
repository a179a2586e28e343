"""
E-learning platform core.

Identity, authorization and domain integrity for courses, enrollments and
lesson content.
"""

__version__ = "0.1.0"
