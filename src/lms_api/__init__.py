"""
HTTP transport for the e-learning platform core.

Run with::

    uvicorn --factory lms_api.app:create_app --reload
"""
