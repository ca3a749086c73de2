"""
Budgeteer.

Multi-mode personal-finance data layer: tenant-scoped repositories over
cloud, local and demo storage backends, a recurring-transaction engine
and a bulk import/export pipeline.
"""

__version__ = "0.4.0"
