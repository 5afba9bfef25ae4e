"""Concrete sources: SQL tables, the Zoho CRM API and an in-memory store."""
