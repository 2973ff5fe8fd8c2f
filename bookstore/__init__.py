"""
FastAPI REST API for the bookstore application.

This package provides:
- User registration and login with bearer tokens
- Book listings, lookups and title search
- Daily counts of added books
- Startup creation of the database schema
"""
