"""Application package for the Tutorium tutoring-platform backend.

This package exposes the service, repository and model modules used by
the FastAPI application (accounts, chats, messages and the course
catalogue). Individual modules contain the concrete implementations and
documentation.
"""
