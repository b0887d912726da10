"""
Coffee rating service.

This package provides a FastAPI application for browsing roasteries and
coffees and rating them, with database and auth-provider abstractions so
the same code runs against Postgres and the hosted auth service in
production and against in-memory backends in development and tests.
"""
