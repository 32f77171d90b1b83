"""
Data Import Pipeline

A generic toolkit for importing records from external sources into the
service-management domain (accounts, users, tickets, time entries, billing rates).

Supports:
- Database sources (MySQL, PostgreSQL, SQLite)
- File sources (CSV, Excel, JSON)
- REST API sources with pluggable authentication
- Virtual joined tables built from a primary table plus joined tables
- Field mapping with transformation and validation rules
- Dry runs, progress tracking, cancellation and an execution audit log
"""

__version__ = "0.1.0"
