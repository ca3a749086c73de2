"""Shared helpers for the Budgeteer package: key normalisation and audit logging."""
