"""
Event submission board backend.

This package provides a FastAPI application that stores form submissions
(a name plus a cropped image) in SQLite, keeps images on local disk or in an
S3-compatible Space, and runs the SMS-driven voting and pledge features used
on the big screen.
"""
