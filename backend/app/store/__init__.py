"""
store — Durable alert store and user directory (SQLAlchemy).

Sub-modules:
    models        — ORM tables
    repositories  — SqlAlertStore, SqlUserDirectory
"""
