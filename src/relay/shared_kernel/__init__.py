"""Shared Kernel module.

Framework-free building blocks shared by every service that owns an
outbox table: value objects, ports, retry policy and topic routing.
Nothing here may depend on SQLAlchemy, FastAPI or the infrastructure layer.
"""
